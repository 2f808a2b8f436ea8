"""
Shared building blocks for action handlers.

A handler is a plain function ``(intent, agent, ctx) -> ActionResult``. It reads
the world through ``ResolutionContext`` and describes every mutation as a delta
(``changes`` for the actor) or a typed effect; it never writes to the world.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Tuple, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from ..config import ActionsConfig, SimulationConfig
from ..context import RandomService
from ..environment import manhattan_distance
from ..schemas import (
    ActionIntent,
    ActionResult,
    Agent,
    AgentUpdate,
    Memory,
    MemoryType,
    MemoryWrite,
    TrustChange,
    WorldEvent,
)
from ..world import World

ParamsT = TypeVar("ParamsT", bound=BaseModel)


@dataclass
class ResolutionContext:
    """Read-only view handed to every handler.

    ``world`` is the live working copy (earlier successes this tick are already
    applied). ``rng`` is the acting agent's stream for this tick.
    """

    world: World
    config: SimulationConfig
    tick: int
    rng: random.Random

    @property
    def actions(self) -> ActionsConfig:
        return self.config.actions

    @property
    def world_size(self) -> int:
        return self.world.size

    def rng_uuid(self) -> str:
        """Record id drawn from the actor's stream, reproducible under a fixed seed."""
        return RandomService.uuid(self.rng)


Handler = Callable[[ActionIntent, Agent, ResolutionContext], ActionResult]


def parse_params(
    model: Type[ParamsT], intent: ActionIntent
) -> Union[ParamsT, ActionResult]:
    """Validate ``intent.params`` into ``model`` or return a readable failure."""
    try:
        return model.model_validate(intent.params)
    except ValidationError as exc:
        issues = []
        for err in exc.errors(include_url=False):
            loc = ".".join(str(part) for part in err.get("loc", [])) or "params"
            issues.append(f"{loc}: {err.get('msg', 'invalid value')}")
        return ActionResult.failure(f"Invalid parameters for {intent.type.value}: {'; '.join(issues)}")


def event(ctx: ResolutionContext, event_type: str, agent_id: str, **payload: Any) -> WorldEvent:
    return WorldEvent(type=event_type, tick=ctx.tick, agent_id=agent_id, payload=payload)


def balance_event(ctx: ResolutionContext, agent_id: str, before: float, after: float, reason: str) -> WorldEvent:
    return event(
        ctx,
        "balance_changed",
        agent_id,
        previousBalance=before,
        newBalance=after,
        change=after - before,
        reason=reason,
    )


def remember(
    ctx: ResolutionContext,
    agent: Agent,
    content: str,
    *,
    memory_type: MemoryType = "action",
    importance: int = 5,
    valence: float = 0.0,
    involved: Optional[List[str]] = None,
) -> MemoryWrite:
    """Memory effect anchored at ``agent``'s current cell."""
    return MemoryWrite(
        memory=Memory(
            agent_id=agent.id,
            tick=ctx.tick,
            memory_type=memory_type,
            content=content,
            importance=max(1, min(10, importance)),
            emotional_valence=max(-1.0, min(1.0, valence)),
            involved_agent_ids=list(involved or []),
            x=agent.x,
            y=agent.y,
        )
    )


def trust(observer_id: str, subject_id: str, delta: float, reason: str = "") -> TrustChange:
    return TrustChange(observer_id=observer_id, subject_id=subject_id, delta=delta, reason=reason)


def update(agent_id: str, **changes: Any) -> AgentUpdate:
    return AgentUpdate(agent_id=agent_id, changes=changes)


def find_target(
    ctx: ResolutionContext,
    agent: Agent,
    target_id: str,
    *,
    max_distance: Optional[int] = None,
    self_error: str = "Cannot target yourself",
    dead_error: str = "Target agent is dead",
    distance_error: str = "Target agent is too far",
) -> Tuple[Optional[Agent], Optional[str]]:
    """Resolve and validate an interaction target.

    Returns ``(target, None)`` on success or ``(None, error)``.
    """
    if target_id == agent.id:
        return None, self_error
    target = ctx.world.agent(target_id)
    if target is None:
        return None, "Target agent not found"
    if not target.is_alive:
        return None, dead_error
    if max_distance is not None:
        distance = manhattan_distance(agent.position, target.position)
        if distance > max_distance:
            return None, f"{distance_error} (distance: {distance}, max: {max_distance})"
    return target, None
