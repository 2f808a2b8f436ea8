"""Decision-source protocol and the baseline strategy scaffolding.

A decision source turns an ``Observation`` into a ``Decision``. LLM-backed
sources are asynchronous and may fail; baseline strategies are synchronous,
deterministic under a fixed seed and never fail, which is what makes them
usable as the dispatcher's fallback.
"""

from __future__ import annotations

import random
from abc import ABC, abstractmethod
from typing import Optional, Protocol, runtime_checkable

from ..context import RandomService
from ..environment import CARDINAL_OFFSETS, Position, clamp_position
from ..schemas import Decision, Observation


@runtime_checkable
class DecisionSource(Protocol):
    """Anything the dispatcher can ask for a decision."""

    name: str

    def is_available(self) -> bool:
        ...

    async def decide(self, observation: Observation) -> Decision:
        ...


class BaselineStrategy(ABC):
    """Synchronous, seedable decision policy.

    Each call draws from its own stream scoped to ``(name, agent, tick)`` so the
    same observation always produces the same decision, independent of the
    order in which agents are decided.
    """

    name: str = "baseline"

    def __init__(self, rng: Optional[RandomService] = None):
        self.rng = rng or RandomService()

    def stream(self, observation: Observation) -> random.Random:
        return self.rng.stream("decide", self.name, observation.agent.id, observation.tick)

    @abstractmethod
    def decide(self, observation: Observation) -> Decision:
        """Pick an action for the observing agent."""


class BaselineDecisionSource:
    """Adapts a ``BaselineStrategy`` to the async ``DecisionSource`` protocol."""

    def __init__(self, strategy: BaselineStrategy):
        self.strategy = strategy
        self.name = strategy.name

    def is_available(self) -> bool:
        return True

    async def decide(self, observation: Observation) -> Decision:
        return self.strategy.decide(observation)


# ---------------------------------------------------------------------------
# Movement helpers shared by the baselines
# ---------------------------------------------------------------------------


def step_toward(origin: Position, target: Position, size: int, *, larger_gap_first: bool = False) -> Position:
    """One cardinal step from ``origin`` toward ``target``, clamped to the grid.

    By default the X gap is closed first. With ``larger_gap_first`` the axis
    with the larger gap moves (ties go to X).
    """
    dx = target[0] - origin[0]
    dy = target[1] - origin[1]
    move_x = dx != 0 and (not larger_gap_first or abs(dx) >= abs(dy))
    if move_x:
        step = (origin[0] + (1 if dx > 0 else -1), origin[1])
    elif dy != 0:
        step = (origin[0], origin[1] + (1 if dy > 0 else -1))
    else:
        step = origin
    return clamp_position(step, size)


def random_step(origin: Position, size: int, rng: random.Random) -> Position:
    dx, dy = rng.choice(CARDINAL_OFFSETS)
    return clamp_position((origin[0] + dx, origin[1] + dy), size)


def move_decision(target: Position, reasoning: str) -> Decision:
    return Decision(action="move", params={"to_x": target[0], "to_y": target[1]}, reasoning=reasoning)
