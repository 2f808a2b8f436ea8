"""Movement: one greedy step per tick toward a destination."""

from __future__ import annotations

from ..environment import greedy_path, is_valid_position, manhattan_distance
from ..schemas import ActionIntent, ActionResult, Agent, ScentDeposit
from .base import ResolutionContext, event, parse_params
from .costs import (
    consecutive_multiplier,
    describe_penalties,
    energy_cost,
    hunger_cost,
    vitals_penalty,
)
from .params import MoveParams


def handle_move(intent: ActionIntent, agent: Agent, ctx: ResolutionContext) -> ActionResult:
    """Move one cell toward (to_x, to_y), closing the X gap before the Y gap.

    Agents re-issue ``move`` every tick to keep walking; ``remainingDistance`` in
    the event tells them how far is left. A scent is left on the cell being left.
    """
    params = parse_params(MoveParams, intent)
    if isinstance(params, ActionResult):
        return params

    to_x, to_y = params.to_x, params.to_y
    if not is_valid_position(to_x, to_y, ctx.world_size):
        return ActionResult.failure(f"Invalid position: ({to_x}, {to_y}) is outside world bounds")

    origin = agent.position
    destination = (to_x, to_y)
    if origin == destination:
        return ActionResult.failure(f"Already at destination ({to_x}, {to_y})")

    path = greedy_path(origin, destination)
    if not path:
        return ActionResult.failure(f"No path to destination ({to_x}, {to_y})")
    step = path[0]

    cfg = ctx.actions.move
    penalty = vitals_penalty(agent, ctx.actions.vitals_penalty)
    consecutive = consecutive_multiplier(agent, "walking", cfg.consecutive_penalty)
    energy = energy_cost(cfg.energy_cost, penalty.multiplier, consecutive)
    if agent.energy < energy:
        return ActionResult.failure(
            f"Not enough energy: need {energy} ({describe_penalties(cfg.energy_cost, penalty, consecutive, 'move')}), "
            f"have {agent.energy}"
        )
    hunger = hunger_cost(cfg.hunger_cost, penalty.multiplier, consecutive)

    payload = {
        "from": {"x": origin[0], "y": origin[1]},
        "to": {"x": step[0], "y": step[1]},
        "finalDestination": {"x": to_x, "y": to_y},
        "remainingDistance": manhattan_distance(step, destination),
        "energyCost": energy,
        "hungerCost": hunger,
        "vitalsPenalty": penalty.as_payload(),
        "consecutiveMovePenalty": (
            {"multiplier": consecutive, "penalty": cfg.consecutive_penalty} if consecutive > 1.0 else None
        ),
    }
    return ActionResult(
        success=True,
        changes={
            "x": step[0],
            "y": step[1],
            "energy": agent.energy - energy,
            "hunger": max(0.0, agent.hunger - hunger),
            "state": "walking",
        },
        events=[event(ctx, "agent_moved", agent.id, **payload)],
        effects=[ScentDeposit(x=origin[0], y=origin[1], agent_id=agent.id)],
    )
