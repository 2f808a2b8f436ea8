"""Territory: location claims and emergent place names."""

from __future__ import annotations

from typing import Optional, Tuple

from ..environment import is_valid_position, manhattan_distance
from ..naming import consensus_name, find_name, normalize_name, propose_name
from ..schemas import (
    ActionIntent,
    ActionResult,
    Agent,
    ClaimUpsert,
    LocationClaim,
    LocationNamesSet,
)
from .base import ResolutionContext, event, parse_params, remember
from .params import ClaimParams, NameLocationParams

CLAIM_TYPES = ("territory", "home", "resource", "danger", "meeting_point")


def _target_cell(
    agent: Agent, x: Optional[int], y: Optional[int], max_distance: int, size: int, verb: str
) -> Tuple[Optional[Tuple[int, int]], Optional[str]]:
    cell = (agent.x if x is None else x, agent.y if y is None else y)
    if not is_valid_position(cell[0], cell[1], size):
        return None, f"Invalid position: ({cell[0]}, {cell[1]}) is outside world bounds"
    if manhattan_distance(agent.position, cell) > max_distance:
        return None, (
            f"Cannot {verb} distant location ({cell[0]}, {cell[1]}). Must be at or adjacent to the location."
        )
    return cell, None


def handle_claim(intent: ActionIntent, agent: Agent, ctx: ResolutionContext) -> ActionResult:
    """Mark a cell. Repeating your own claim of the same type reinforces it."""
    params = parse_params(ClaimParams, intent)
    if isinstance(params, ActionResult):
        return params

    cfg = ctx.actions.claim
    cell, error = _target_cell(agent, params.x, params.y, cfg.max_distance, ctx.world_size, "claim")
    if error:
        return ActionResult.failure(error)
    if params.claim_type not in CLAIM_TYPES:
        return ActionResult.failure(
            f"Invalid claim type: {params.claim_type}. Valid types: {', '.join(CLAIM_TYPES)}"
        )
    if agent.energy < cfg.energy_cost:
        return ActionResult.failure(f"Not enough energy: need {cfg.energy_cost:g}, have {agent.energy}")

    x, y = cell
    here = ctx.world.claims_at(x, y)
    own = next(
        (c for c in here if c.agent_id == agent.id and c.claim_type == params.claim_type),
        None,
    )
    others = [c for c in here if c.agent_id != agent.id]

    if own is not None:
        claim = own.model_copy(
            update={
                "strength": min(cfg.max_strength, own.strength + 1),
                "last_reinforced_tick": ctx.tick,
                "description": params.description or own.description,
            }
        )
        event_type = "claim_reinforced"
        content = f"Reinforced my {params.claim_type} claim at ({x}, {y}) (strength {claim.strength})."
    else:
        claim = LocationClaim(
            id=ctx.rng_uuid(),
            agent_id=agent.id,
            x=x,
            y=y,
            claim_type=params.claim_type,
            description=params.description,
            strength=1,
            claimed_at_tick=ctx.tick,
            last_reinforced_tick=ctx.tick,
        )
        event_type = "location_claimed"
        content = f"Claimed ({x}, {y}) as {params.claim_type}."
    if others:
        content += f" {len(others)} other agent(s) also claim it."

    payload = {
        "claimId": claim.id,
        "x": x,
        "y": y,
        "claimType": claim.claim_type,
        "strength": claim.strength,
        "description": claim.description,
    }
    if others:
        payload["contestedBy"] = [
            {"agentId": c.agent_id, "claimType": c.claim_type, "strength": c.strength} for c in others
        ]
    return ActionResult(
        success=True,
        changes={"energy": agent.energy - cfg.energy_cost},
        events=[event(ctx, event_type, agent.id, **payload)],
        effects=[
            ClaimUpsert(claim=claim),
            remember(ctx, agent, content, importance=4, valence=0.2),
        ],
    )


def handle_name_location(intent: ActionIntent, agent: Agent, ctx: ResolutionContext) -> ActionResult:
    """Propose or support a name for a cell; the most used name is the consensus."""
    params = parse_params(NameLocationParams, intent)
    if isinstance(params, ActionResult):
        return params

    cfg = ctx.actions.name_location
    cell, error = _target_cell(agent, params.x, params.y, cfg.max_distance, ctx.world_size, "name")
    if error:
        return ActionResult.failure(error)

    name = normalize_name(params.name)
    if len(name) < cfg.min_length:
        return ActionResult.failure(f"Name too short. Minimum {cfg.min_length} characters.")
    if len(name) > cfg.max_length:
        return ActionResult.failure(f"Name too long. Maximum {cfg.max_length} characters.")

    x, y = cell
    current = ctx.world.names_at(x, y)
    supporting = find_name(current, name) is not None
    updated = propose_name(current, x, y, name, agent.id, ctx.tick, cfg.max_names_per_cell)
    if updated is None:
        return ActionResult.failure(
            f"Too many names already exist for this location (max {cfg.max_names_per_cell}). "
            "Try using an existing name."
        )

    entry = find_name(updated, name)
    previous = consensus_name(current)
    consensus = consensus_name(updated)
    events = [
        event(
            ctx,
            "name_supported" if supporting else "location_named",
            agent.id,
            x=x,
            y=y,
            name=entry.name,
            usageCount=entry.usage_count,
            consensus=consensus,
        )
    ]
    if consensus != previous:
        events.append(
            event(
                ctx,
                "name_consensus_changed",
                agent.id,
                x=x,
                y=y,
                previousConsensus=previous,
                newConsensus=consensus,
            )
        )
    content = (
        f'Called ({x}, {y}) "{entry.name}" like others do.'
        if supporting
        else f'Named ({x}, {y}) "{entry.name}".'
    )
    return ActionResult(
        success=True,
        events=events,
        effects=[
            LocationNamesSet(x=x, y=y, names=updated),
            remember(ctx, agent, content, importance=3, valence=0.1),
        ],
    )
