"""Hostile actions: harm, steal and deceive."""

from __future__ import annotations

import hashlib

from ..schemas import ActionIntent, ActionResult, Agent, InventoryChange
from .base import ResolutionContext, event, find_target, parse_params, remember, trust, update
from .economy import short
from .params import DeceiveParams, HarmParams, StealParams

DECEPTION_CLAIM_TYPES = (
    "resource_location",
    "agent_reputation",
    "danger_warning",
    "trade_offer",
    "other",
)
CLAIM_MIN_LENGTH = 5
CLAIM_MAX_LENGTH = 500
MEMORY_CLAIM_PREVIEW = 100
MONEY = "money"


def hash_claim(claim: str) -> str:
    """Stable fingerprint of a claim, so events never carry its text."""
    return hashlib.sha256(claim.encode("utf-8")).hexdigest()


def _preview(claim: str) -> str:
    return claim if len(claim) <= MEMORY_CLAIM_PREVIEW else claim[:MEMORY_CLAIM_PREVIEW] + "..."


def handle_harm(intent: ActionIntent, agent: Agent, ctx: ResolutionContext) -> ActionResult:
    params = parse_params(HarmParams, intent)
    if isinstance(params, ActionResult):
        return params

    cfg = ctx.actions.harm
    if params.intensity not in cfg.damage:
        return ActionResult.failure(
            f"Invalid intensity. Must be one of: {', '.join(cfg.damage)}"
        )
    target, error = find_target(
        ctx,
        agent,
        params.target_agent_id,
        max_distance=cfg.max_distance,
        self_error="Cannot harm yourself",
        dead_error="Target agent is already dead",
        distance_error="Target must be adjacent",
    )
    if error:
        return ActionResult.failure(error)

    energy_cost = cfg.energy_cost[params.intensity]
    if agent.energy < energy_cost:
        return ActionResult.failure(f"Not enough energy: need {energy_cost:g}, have {agent.energy}")

    damage = cfg.damage[params.intensity]
    new_health = max(0.0, target.health - damage)
    killed = new_health <= 0
    target_changes = {"health": new_health}
    if killed:
        target_changes.update(state="dead", died_at_tick=ctx.tick, cause_of_death=f"harmed by {agent.id}")

    events = [
        event(
            ctx,
            "agent_harmed",
            agent.id,
            targetId=target.id,
            intensity=params.intensity,
            damage=damage,
            targetHealthBefore=target.health,
            targetHealthAfter=new_health,
            energyCost=energy_cost,
        )
    ]
    if killed:
        events.append(event(ctx, "agent_died", target.id, cause="harm", killerId=agent.id))

    return ActionResult(
        success=True,
        changes={"energy": agent.energy - energy_cost},
        events=events,
        effects=[
            update(target.id, **target_changes),
            trust(target.id, agent.id, cfg.trust_penalty[params.intensity], f"Harmed ({params.intensity})"),
            remember(
                ctx, agent, f"Attacked {short(target.id)} ({params.intensity}), dealing {damage:g} damage.",
                importance=6, valence=-0.3, involved=[target.id],
            ),
            remember(
                ctx, target, f"{short(agent.id)} attacked me ({params.intensity}). Lost {damage:g} health.",
                memory_type="interaction", importance=8, valence=-0.8, involved=[agent.id],
            ),
        ],
    )


def handle_steal(intent: ActionIntent, agent: Agent, ctx: ResolutionContext) -> ActionResult:
    """Attempt to take goods (or ``money``) from an adjacent agent.

    Success is drawn from the actor's random stream, so replays with the same
    seed reproduce the outcome. The victim notices either way.
    """
    params = parse_params(StealParams, intent)
    if isinstance(params, ActionResult):
        return params

    cfg = ctx.actions.steal
    if params.quantity < 1 or params.quantity > cfg.max_per_action:
        return ActionResult.failure(f"Invalid quantity: must be between 1 and {cfg.max_per_action}")
    target, error = find_target(
        ctx,
        agent,
        params.target_agent_id,
        max_distance=cfg.max_distance,
        self_error="Cannot steal from yourself",
        dead_error="Cannot steal from a dead agent",
        distance_error="Target must be adjacent",
    )
    if error:
        return ActionResult.failure(error)
    if agent.energy < cfg.energy_cost:
        return ActionResult.failure(f"Not enough energy: need {cfg.energy_cost:g}, have {agent.energy}")

    if params.item_type == MONEY:
        held = target.balance
    else:
        held = ctx.world.item_quantity(target.id, params.item_type)
    if held < params.quantity:
        return ActionResult.failure(
            f"Target does not have enough {params.item_type} (have: {held:g}, need: {params.quantity})"
        )

    changes = {"energy": agent.energy - cfg.energy_cost}
    loot = f"{params.quantity}x {params.item_type}"
    succeeded = ctx.rng.random() < cfg.success_probability
    if not succeeded:
        return ActionResult(
            success=True,
            changes=changes,
            events=[
                event(
                    ctx,
                    "agent_steal_failed",
                    agent.id,
                    targetId=target.id,
                    itemType=params.item_type,
                    quantity=params.quantity,
                )
            ],
            effects=[
                trust(target.id, agent.id, cfg.trust_penalty_caught, "Caught stealing"),
                remember(
                    ctx, agent, f"Tried to steal {loot} from {short(target.id)} and got caught.",
                    importance=6, valence=-0.5, involved=[target.id],
                ),
                remember(
                    ctx, target, f"Caught {short(agent.id)} trying to steal {loot} from me.",
                    memory_type="interaction", importance=7, valence=-0.7, involved=[agent.id],
                ),
            ],
        )

    effects = []
    if params.item_type == MONEY:
        changes["balance"] = agent.balance + params.quantity
        effects.append(update(target.id, balance=target.balance - params.quantity))
    else:
        effects += [
            InventoryChange(agent_id=target.id, item_type=params.item_type, delta=-params.quantity),
            InventoryChange(agent_id=agent.id, item_type=params.item_type, delta=params.quantity),
        ]
    effects += [
        trust(target.id, agent.id, cfg.trust_penalty_success, "Stole from me"),
        remember(
            ctx, agent, f"Stole {loot} from {short(target.id)}.",
            importance=6, valence=0.2, involved=[target.id],
        ),
        remember(
            ctx, target, f"{short(agent.id)} stole {loot} from me.",
            memory_type="interaction", importance=7, valence=-0.7, involved=[agent.id],
        ),
    ]
    return ActionResult(
        success=True,
        changes=changes,
        events=[
            event(
                ctx,
                "agent_stole",
                agent.id,
                targetId=target.id,
                itemType=params.item_type,
                quantity=params.quantity,
            )
        ],
        effects=effects,
    )


def handle_deceive(intent: ActionIntent, agent: Agent, ctx: ResolutionContext) -> ActionResult:
    """Tell a nearby agent something false.

    Delivery always succeeds; how believable it is depends on the target's trust
    in the deceiver. The event carries only a hash of the claim.
    """
    params = parse_params(DeceiveParams, intent)
    if isinstance(params, ActionResult):
        return params

    claim = params.claim
    if len(claim) < CLAIM_MIN_LENGTH or len(claim) > CLAIM_MAX_LENGTH:
        return ActionResult.failure(f"Claim must be {CLAIM_MIN_LENGTH}-{CLAIM_MAX_LENGTH} characters")
    if params.claim_type not in DECEPTION_CLAIM_TYPES:
        return ActionResult.failure(
            f"Invalid claim type. Must be one of: {', '.join(DECEPTION_CLAIM_TYPES)}"
        )

    cfg = ctx.actions.deceive
    target, error = find_target(
        ctx,
        agent,
        params.target_agent_id,
        max_distance=cfg.max_distance,
        self_error="Cannot deceive yourself",
        dead_error="Cannot communicate with dead agent",
        distance_error="Target too far for communication",
    )
    if error:
        return ActionResult.failure(error)
    if agent.energy < cfg.energy_cost:
        return ActionResult.failure(f"Not enough energy (have: {agent.energy}, need: {cfg.energy_cost:g})")

    trust_score = ctx.world.trust(target.id, agent.id)
    credibility = max(0.1, min(0.9, 0.5 + trust_score / 200))

    return ActionResult(
        success=True,
        changes={"energy": max(0.0, agent.energy - cfg.energy_cost)},
        events=[
            event(
                ctx,
                "agent_deceived",
                agent.id,
                deceiverId=agent.id,
                targetId=target.id,
                claimType=params.claim_type,
                claimHash=hash_claim(claim),
                credibilityScore=credibility,
                position={"x": agent.x, "y": agent.y},
            )
        ],
        effects=[
            remember(
                ctx, agent, f'Told a lie to another agent: "{_preview(claim)}" ({params.claim_type})',
                importance=5, valence=0.0, involved=[target.id],
            ),
            remember(
                ctx, target, f'Another agent told me: "{_preview(claim)}" (claim type: {params.claim_type})',
                memory_type="interaction", importance=4 + int(credibility * 3), valence=0.1,
                involved=[agent.id],
            ),
        ],
    )
