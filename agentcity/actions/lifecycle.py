"""Reproduction. Gestation is started here and completed by maintenance."""

from __future__ import annotations

from ..environment import manhattan_distance
from ..schemas import ActionIntent, ActionResult, Agent, Reproduction, ReproductionUpsert
from .base import ResolutionContext, event, parse_params, remember, trust
from .params import SpawnOffspringParams


def handle_spawn_offspring(intent: ActionIntent, agent: Agent, ctx: ResolutionContext) -> ActionResult:
    params = parse_params(SpawnOffspringParams, intent)
    if isinstance(params, ActionResult):
        return params

    cfg = ctx.actions.spawn_offspring
    if params.mutation_intensity < 0.0 or params.mutation_intensity > 1.0:
        return ActionResult.failure("Mutation intensity must be between 0.0 and 1.0")
    if ctx.world.active_reproduction(agent.id) is not None:
        return ActionResult.failure("Already in reproduction process. Wait for gestation to complete.")
    if agent.balance < cfg.min_balance:
        return ActionResult.failure(
            f"Not enough balance for reproduction (have: {agent.balance:g}, need: {cfg.min_balance:g})"
        )
    if agent.energy < cfg.min_energy:
        return ActionResult.failure(
            f"Not enough energy for reproduction (have: {agent.energy:g}, need: {cfg.min_energy:g})"
        )
    if agent.health < cfg.min_health:
        return ActionResult.failure(
            f"Not healthy enough for reproduction (have: {agent.health:g}, need: {cfg.min_health:g})"
        )

    partner = None
    if params.partner_id is not None:
        if params.partner_id == agent.id:
            return ActionResult.failure("Cannot reproduce with yourself")
        partner = ctx.world.agent(params.partner_id)
        if partner is None:
            return ActionResult.failure("Partner agent not found")
        if not partner.is_alive:
            return ActionResult.failure("Cannot reproduce with a dead agent")
        distance = manhattan_distance(agent.position, partner.position)
        if distance > cfg.max_partner_distance:
            return ActionResult.failure(
                f"Partner too far (distance: {distance}, max: {cfg.max_partner_distance})"
            )
        if ctx.world.trust(partner.id, agent.id) < cfg.min_partner_trust:
            return ActionResult.failure(
                f"Partner doesn't trust you enough for reproduction (need trust >= {cfg.min_partner_trust:g})"
            )
        if partner.balance < cfg.min_balance / 2:
            return ActionResult.failure("Partner does not have enough resources")

    record = Reproduction(
        id=ctx.rng_uuid(),
        parent_id=agent.id,
        partner_id=partner.id if partner else None,
        gestation_start_tick=ctx.tick,
        gestation_ticks=cfg.gestation_ticks,
        inherit_personality=params.inherit_personality,
        mutation_intensity=params.mutation_intensity,
        endowment=cfg.balance_cost,
    )
    effects = [ReproductionUpsert(reproduction=record)]
    if partner is not None:
        effects += [
            trust(agent.id, partner.id, cfg.trust_gain_on_reproduction, "Reproduced together"),
            trust(partner.id, agent.id, cfg.trust_gain_on_reproduction, "Reproduced together"),
            remember(
                ctx, partner, "Agreed to reproduction with another agent. Our offspring will arrive soon.",
                memory_type="interaction", importance=8, valence=0.7, involved=[agent.id],
            ),
        ]
        content = f"Started reproduction with a partner. Offspring due in {cfg.gestation_ticks} ticks."
    else:
        content = f"Started reproducing alone. Offspring due in {cfg.gestation_ticks} ticks."
    effects.append(remember(ctx, agent, content, importance=8, valence=0.6))

    return ActionResult(
        success=True,
        changes={
            "balance": agent.balance - cfg.balance_cost,
            "energy": agent.energy - cfg.energy_cost,
        },
        events=[
            event(
                ctx,
                "reproduction_started",
                agent.id,
                reproductionId=record.id,
                partnerId=record.partner_id,
                gestationTicks=record.gestation_ticks,
                dueTick=record.due_tick,
                inheritPersonality=record.inherit_personality,
                mutationIntensity=record.mutation_intensity,
                balanceCost=cfg.balance_cost,
                energyCost=cfg.energy_cost,
            )
        ],
        effects=effects,
    )
