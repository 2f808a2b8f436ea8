"""World model helpers: grid math, pathing and visibility."""

from .grid import (
    CARDINAL_OFFSETS,
    Position,
    adjacent_positions,
    cell_key,
    chebyshev_distance,
    clamp_position,
    compass_direction,
    euclidean_distance,
    greedy_path,
    is_valid_position,
    manhattan_distance,
    next_step,
    parse_cell_key,
    positions_in_radius,
)
from .visibility import visible_agents, within_box

__all__ = [
    "CARDINAL_OFFSETS",
    "Position",
    "adjacent_positions",
    "cell_key",
    "chebyshev_distance",
    "clamp_position",
    "compass_direction",
    "euclidean_distance",
    "greedy_path",
    "is_valid_position",
    "manhattan_distance",
    "next_step",
    "parse_cell_key",
    "positions_in_radius",
    "visible_agents",
    "within_box",
]
