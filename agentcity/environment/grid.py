"""Grid math for the square world.

Pure, stateless helpers over integer positions. The world is a ``size`` x
``size`` square with the origin in the north-west corner; ``y`` grows southward.

Pathing is deliberately simple: ``greedy_path`` closes the X gap first and then
the Y gap, one cell per step, and ignores obstacles (every in-bounds cell is
walkable).
"""

from __future__ import annotations

import math
from typing import List, Sequence, Tuple

Position = Tuple[int, int]

# North, East, South, West. Order matters for callers that pick the first neighbour.
CARDINAL_OFFSETS: Sequence[Tuple[int, int]] = ((0, -1), (1, 0), (0, 1), (-1, 0))

# Sector labels clockwise from east, each covering 45 degrees.
COMPASS_SECTORS: Sequence[str] = (
    "east",
    "south-east",
    "south",
    "south-west",
    "west",
    "north-west",
    "north",
    "north-east",
)


def is_valid_position(x: int, y: int, size: int) -> bool:
    """True if (x, y) lies inside a ``size`` x ``size`` world."""
    return 0 <= x < size and 0 <= y < size


def manhattan_distance(a: Position, b: Position) -> int:
    return abs(a[0] - b[0]) + abs(a[1] - b[1])


def euclidean_distance(a: Position, b: Position) -> float:
    return math.hypot(a[0] - b[0], a[1] - b[1])


def chebyshev_distance(a: Position, b: Position) -> int:
    return max(abs(a[0] - b[0]), abs(a[1] - b[1]))


def adjacent_positions(pos: Position, size: int) -> List[Position]:
    """Return the in-bounds 4-neighbourhood of ``pos`` in N, E, S, W order."""
    x, y = pos
    neighbours = []
    for dx, dy in CARDINAL_OFFSETS:
        nx, ny = x + dx, y + dy
        if is_valid_position(nx, ny, size):
            neighbours.append((nx, ny))
    return neighbours


def positions_in_radius(pos: Position, radius: int, size: int) -> List[Position]:
    """Every in-bounds cell within Manhattan ``radius`` of ``pos`` (including ``pos``).

    Cells are returned row-major (by y, then x) so the order is stable.
    """
    if radius < 0:
        return []
    x, y = pos
    cells: List[Position] = []
    for cy in range(y - radius, y + radius + 1):
        span = radius - abs(cy - y)
        for cx in range(x - span, x + span + 1):
            if is_valid_position(cx, cy, size):
                cells.append((cx, cy))
    return cells


def greedy_path(start: Position, goal: Position) -> List[Position]:
    """Single-step greedy path from ``start`` to ``goal``.

    Each step reduces the X distance while it is non-zero, then the Y distance.
    The returned list excludes ``start`` and ends at ``goal``; it is empty when
    the two coincide.
    """
    x, y = start
    gx, gy = goal
    steps: List[Position] = []
    while x != gx:
        x += 1 if gx > x else -1
        steps.append((x, y))
    while y != gy:
        y += 1 if gy > y else -1
        steps.append((x, y))
    return steps


def next_step(start: Position, goal: Position) -> Position:
    """First cell of ``greedy_path`` (or ``start`` itself when already there)."""
    path = greedy_path(start, goal)
    return path[0] if path else start


def compass_direction(origin: Position, target: Position) -> str:
    """8-way compass direction from ``origin`` toward ``target``.

    Uses ``atan2(dy, dx)`` in degrees, normalised to [0, 360). Because y grows
    southward, 90 degrees is south. Returns ``"here"`` for identical positions.
    """
    dx = target[0] - origin[0]
    dy = target[1] - origin[1]
    if dx == 0 and dy == 0:
        return "here"
    angle = math.degrees(math.atan2(dy, dx))
    if angle < 0:
        angle += 360.0
    # Shift by half a sector so east covers [337.5, 22.5).
    index = int(((angle + 22.5) % 360.0) // 45.0)
    return COMPASS_SECTORS[index]


def clamp_position(pos: Position, size: int) -> Position:
    """Clamp ``pos`` into the world bounds."""
    return (min(max(pos[0], 0), size - 1), min(max(pos[1], 0), size - 1))


def cell_key(x: int, y: int) -> str:
    """Stable ``"x:y"`` key for a cell, used to index per-cell records."""
    return f"{x}:{y}"


def parse_cell_key(key: str) -> Position:
    """Inverse of ``cell_key``."""
    x, y = key.split(":", 1)
    return (int(x), int(y))
