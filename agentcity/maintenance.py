"""
End-of-tick world maintenance.

Runs after every intent of the tick has been resolved, against the same working
copy, so its writes land in the same atomic commit:

1. Resource regeneration (clamped to each spawn's maximum)
2. Needs decay: hunger/energy drain by state, starvation and exhaustion damage,
   auto-eating while asleep, passive health regeneration
3. Deaths for anyone whose health reached 0
4. Sleep wake-ups
5. Gestation completion (offspring are born)
6. Job offer expiry with escrow refunds
7. Currency decay on idle wealth (disabled by default)
8. Proximity discovery and stale knowledge pruning

Every pass returns the events it emitted; ``run_maintenance`` concatenates them
in the order above.
"""

from __future__ import annotations

from typing import List, Optional

from .config import NeedsConfig, SimulationConfig
from .context import RandomService
from .environment import adjacent_positions, visible_agents
from .knowledge import prune_stale_knowledge, record_direct_discovery
from .schemas import PERSONALITY_TRAITS, Agent, WorldEvent
from .world import World, apply_agent_changes, change_inventory


def _event(event_type: str, tick: int, agent_id: Optional[str] = None, **payload) -> WorldEvent:
    return WorldEvent(type=event_type, tick=tick, agent_id=agent_id, payload=payload)


def regenerate_resources(world: World) -> None:
    for spawn_id, spawn in world.spawns.items():
        if spawn.regen_rate <= 0 or spawn.current_amount >= spawn.max_amount:
            continue
        amount = min(spawn.max_amount, spawn.current_amount + spawn.regen_rate)
        world.spawns[spawn_id] = spawn.model_copy(update={"current_amount": amount})


def apply_needs_decay(
    world: World,
    agent: Agent,
    cfg: NeedsConfig,
    tick: int,
    food_restore: float = 30.0,
) -> List[WorldEvent]:
    """Drain one agent's needs for one tick.

    Critical hunger only starts hurting after ``starvation_grace_ticks``
    consecutive ticks below the threshold; the counter lives on the agent so it
    survives persistence and resets as soon as hunger recovers.
    """
    events: List[WorldEvent] = []
    hunger_mult, energy_mult = cfg.state_multipliers.get(agent.state, cfg.state_multipliers["idle"])

    hunger = max(0.0, agent.hunger - cfg.hunger_decay * hunger_mult)
    energy_drain = cfg.energy_decay * energy_mult
    health = agent.health
    grace = agent.hunger_grace_ticks

    if hunger < cfg.low_hunger:
        energy_drain += cfg.low_hunger_energy_drain
        events.append(_event("needs_warning", tick, agent.id, need="hunger", level="low", value=hunger))

    if hunger < cfg.critical_hunger:
        grace += 1
        if grace > cfg.starvation_grace_ticks:
            health = max(0.0, health - cfg.starvation_damage)
            events.append(
                _event(
                    "needs_warning",
                    tick,
                    agent.id,
                    need="hunger",
                    level="critical",
                    value=hunger,
                    healthDamage=cfg.starvation_damage,
                    gracePeriodExpired=True,
                )
            )
        else:
            events.append(
                _event(
                    "needs_warning",
                    tick,
                    agent.id,
                    need="hunger",
                    level="critical",
                    value=hunger,
                    graceTicksRemaining=cfg.starvation_grace_ticks - grace,
                    gracePeriodActive=True,
                )
            )
    else:
        grace = 0

    if agent.state == "sleeping" and hunger < cfg.sleep_auto_eat_hunger and world.item_quantity(agent.id, "food") > 0:
        change_inventory(world, agent.id, "food", -1)
        hunger = min(100.0, hunger + food_restore)
        events.append(
            _event(
                "auto_consumed",
                tick,
                agent.id,
                itemType="food",
                quantity=1,
                hungerRestored=food_restore,
                newHunger=hunger,
            )
        )

    energy = max(0.0, agent.energy - energy_drain)
    changes = {"hunger": hunger, "energy": energy, "hunger_grace_ticks": grace}

    if cfg.critical_energy <= energy < cfg.low_energy:
        events.append(_event("needs_warning", tick, agent.id, need="energy", level="low", value=energy))
    if energy < cfg.critical_energy:
        health = max(0.0, health - cfg.exhaustion_damage)
        events.append(
            _event(
                "needs_warning",
                tick,
                agent.id,
                need="energy",
                level="critical",
                value=energy,
                healthDamage=cfg.exhaustion_damage,
                forcedRest=True,
            )
        )
        if agent.state != "sleeping":
            changes["state"] = "sleeping"
            changes["sleep_until_tick"] = tick + 1

    if hunger > cfg.regen_threshold and energy > cfg.regen_threshold and health < 100.0:
        healed = min(cfg.health_regen, 100.0 - health)
        health += healed
        events.append(_event("health_regenerated", tick, agent.id, amount=healed, newHealth=health))

    changes["health"] = health
    apply_agent_changes(world, agent.id, changes)
    return events


def settle_deaths(world: World, cfg: NeedsConfig, tick: int) -> List[WorldEvent]:
    """Mark every living agent at zero health as dead."""
    events = []
    for agent in world.living_agents():
        if agent.health > 0:
            continue
        if agent.hunger < cfg.critical_hunger:
            cause = "starvation"
        elif agent.energy < cfg.critical_energy:
            cause = "exhaustion"
        else:
            cause = "injury"
        apply_agent_changes(
            world, agent.id, {"state": "dead", "died_at_tick": tick, "cause_of_death": cause, "sleep_until_tick": None}
        )
        events.append(_event("agent_died", tick, agent.id, cause=cause))
    return events


def wake_sleepers(world: World, tick: int) -> List[WorldEvent]:
    events = []
    for agent in world.living_agents():
        if agent.state != "sleeping" or agent.sleep_until_tick is None:
            continue
        if tick >= agent.sleep_until_tick:
            apply_agent_changes(world, agent.id, {"state": "idle", "sleep_until_tick": None})
            events.append(_event("agent_woke", tick, agent.id, energy=agent.energy))
    return events


def _child_personality(parent: Agent, inherit: bool, mutation: float, rng) -> Optional[str]:
    if not inherit:
        return rng.choice(PERSONALITY_TRAITS)
    if parent.personality is not None and rng.random() < mutation:
        others = [t for t in PERSONALITY_TRAITS if t != parent.personality]
        return rng.choice(others)
    return parent.personality


def complete_gestations(world: World, tick: int, rng: RandomService) -> List[WorldEvent]:
    """Turn every due reproduction into a newborn agent next to its parent."""
    events = []
    for record_id in sorted(world.reproductions):
        record = world.reproductions[record_id]
        if record.status != "gestating" or tick < record.due_tick:
            continue
        parent = world.agent(record.parent_id)
        if parent is None:
            continue
        stream = rng.stream("birth", record.id)
        child_id = RandomService.uuid(stream)
        cells = adjacent_positions(parent.position, world.size) or [parent.position]
        x, y = stream.choice(cells)
        child = Agent(
            id=child_id,
            name=f"{parent.name or parent.id[:8]} Jr.",
            x=x,
            y=y,
            balance=record.endowment,
            personality=_child_personality(parent, record.inherit_personality, record.mutation_intensity, stream),
            decision_source=parent.decision_source,
            parent_ids=[p for p in (record.parent_id, record.partner_id) if p],
            born_at_tick=tick,
        )
        world.agents[child.id] = child
        world.reproductions[record_id] = record.model_copy(update={"status": "born", "child_id": child.id})
        events.append(
            _event(
                "offspring_born",
                tick,
                parent.id,
                childId=child.id,
                parentIds=child.parent_ids,
                reproductionId=record.id,
                x=x,
                y=y,
                personality=child.personality,
                endowment=record.endowment,
            )
        )
    return events


def expire_job_offers(world: World, tick: int) -> List[WorldEvent]:
    """Expire open offers past their deadline and refund the escrow to the employer."""
    events = []
    for offer_id in sorted(world.job_offers):
        offer = world.job_offers[offer_id]
        if offer.status != "open" or offer.expires_at_tick > tick:
            continue
        refund = offer.escrow_amount
        employer = world.agent(offer.employer_id)
        if employer is not None and refund > 0:
            apply_agent_changes(world, employer.id, {"balance": employer.balance + refund})
        world.job_offers[offer_id] = offer.model_copy(update={"status": "expired", "escrow_amount": 0.0})
        events.append(_event("job_offer_expired", tick, offer.employer_id, jobOfferId=offer.id, refunded=refund))
    return events


def apply_currency_decay(world: World, config: SimulationConfig, tick: int) -> List[WorldEvent]:
    cfg = config.currency_decay
    if not cfg.enabled or cfg.interval_ticks <= 0 or tick % cfg.interval_ticks != 0:
        return []
    events = []
    for agent in world.living_agents():
        if agent.balance <= cfg.threshold:
            continue
        decay = max(1, int(agent.balance * cfg.rate))
        new_balance = max(cfg.threshold, agent.balance - decay)
        apply_agent_changes(world, agent.id, {"balance": new_balance})
        events.append(
            _event(
                "currency_decay",
                tick,
                agent.id,
                previousBalance=agent.balance,
                newBalance=new_balance,
                decayAmount=agent.balance - new_balance,
                decayRate=cfg.rate,
            )
        )
    return events


def discover_nearby_agents(world: World, radius: int, tick: int) -> int:
    """Record direct discoveries between every pair of living agents within ``radius``."""
    living = world.living_agents()
    count = 0
    for observer in living:
        for other in visible_agents(observer, living, radius):
            record_direct_discovery(world, observer.id, other.id, tick, other.position)
            count += 1
    return count


def run_maintenance(
    world: World,
    config: SimulationConfig,
    tick: int,
    rng: RandomService,
) -> List[WorldEvent]:
    """Run every end-of-tick pass on ``world`` in place and return the emitted events."""
    events: List[WorldEvent] = []
    regenerate_resources(world)

    food_restore = config.actions.item_effects.get("food", {}).get("hunger", 30.0)
    for agent in world.living_agents():
        events.extend(apply_needs_decay(world, agent, config.needs, tick, food_restore))
    events.extend(settle_deaths(world, config.needs, tick))

    events.extend(wake_sleepers(world, tick))
    events.extend(complete_gestations(world, tick, rng))
    events.extend(expire_job_offers(world, tick))
    events.extend(apply_currency_decay(world, config, tick))
    discover_nearby_agents(world, config.visibility_radius, tick)
    prune_stale_knowledge(world, tick, config.knowledge_max_age)
    return events
