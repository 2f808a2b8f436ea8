"""Visibility filters used by the observation builder and baselines."""

from __future__ import annotations

from typing import Iterable, List, Protocol, TypeVar

from .grid import Position, chebyshev_distance, manhattan_distance


class _Positioned(Protocol):
    x: int
    y: int


class _AgentLike(_Positioned, Protocol):
    id: str
    state: str


T = TypeVar("T", bound=_Positioned)
A = TypeVar("A", bound=_AgentLike)


def visible_agents(observer: A, agents: Iterable[A], radius: int) -> List[A]:
    """Living agents other than ``observer`` within Manhattan ``radius``.

    Sorted by distance, then id, so observations are reproducible.
    """
    origin = (observer.x, observer.y)
    seen = [
        agent
        for agent in agents
        if agent.id != observer.id
        and agent.state != "dead"
        and manhattan_distance(origin, (agent.x, agent.y)) <= radius
    ]
    seen.sort(key=lambda a: (manhattan_distance(origin, (a.x, a.y)), a.id))
    return seen


def within_box(origin: Position, items: Iterable[T], radius: int) -> List[T]:
    """Items inside the Chebyshev box of ``radius`` around ``origin``.

    Sorted by Manhattan distance (stable for ties).
    """
    boxed = [item for item in items if chebyshev_distance(origin, (item.x, item.y)) <= radius]
    boxed.sort(key=lambda item: manhattan_distance(origin, (item.x, item.y)))
    return boxed
