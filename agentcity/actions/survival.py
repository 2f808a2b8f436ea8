"""Survival actions: gather, forage, sleep, consume and buy."""

from __future__ import annotations

from ..schemas import ActionIntent, ActionResult, Agent, InventoryChange, SpawnAmountChange
from .base import ResolutionContext, balance_event, event, parse_params, remember
from .params import BuyParams, ConsumeParams, ForageParams, GatherParams, SleepParams

RESOURCE_TO_ITEM = {"food": "food", "energy": "battery", "material": "material"}


def handle_gather(intent: ActionIntent, agent: Agent, ctx: ResolutionContext) -> ActionResult:
    params = parse_params(GatherParams, intent)
    if isinstance(params, ActionResult):
        return params

    cfg = ctx.actions.gather
    if params.quantity < 1 or params.quantity > cfg.max_per_action:
        return ActionResult.failure(f"Invalid quantity: must be between 1 and {cfg.max_per_action}")

    spawns = ctx.world.spawns_at(agent.x, agent.y)
    if not spawns:
        return ActionResult.failure(f"No resources at position ({agent.x}, {agent.y})")

    if params.resource_type:
        matching = [s for s in spawns if s.resource_type == params.resource_type]
        if not matching:
            return ActionResult.failure(
                f"No {params.resource_type} resource at position ({agent.x}, {agent.y})"
            )
        spawn = max(matching, key=lambda s: s.current_amount)
    else:
        spawn = max(spawns, key=lambda s: s.current_amount)

    if spawn.current_amount <= 0:
        return ActionResult.failure("Resource spawn is depleted (will regenerate over time)")

    # Earlier gatherers this tick have already drawn the spawn down.
    gathered = min(params.quantity, spawn.current_amount)
    energy_cost = cfg.energy_cost_per_unit * gathered
    if agent.energy < energy_cost:
        return ActionResult.failure(f"Not enough energy: need {energy_cost}, have {agent.energy}")
    hunger_cost = cfg.hunger_cost_per_unit * gathered

    item_type = RESOURCE_TO_ITEM.get(spawn.resource_type, spawn.resource_type)
    remaining = spawn.current_amount - gathered
    new_energy = agent.energy - energy_cost
    new_hunger = max(0.0, agent.hunger - hunger_cost)
    return ActionResult(
        success=True,
        changes={"energy": new_energy, "hunger": new_hunger},
        events=[
            event(
                ctx,
                "agent_gathered",
                agent.id,
                position={"x": agent.x, "y": agent.y},
                spawnId=spawn.id,
                resourceType=spawn.resource_type,
                itemType=item_type,
                amountRequested=params.quantity,
                amountGathered=gathered,
                spawnRemainingAmount=remaining,
                energyCost=energy_cost,
                hungerCost=hunger_cost,
                newEnergy=new_energy,
                newHunger=new_hunger,
            )
        ],
        effects=[
            SpawnAmountChange(spawn_id=spawn.id, delta=-gathered),
            InventoryChange(agent_id=agent.id, item_type=item_type, delta=gathered),
            remember(
                ctx,
                agent,
                f"Gathered {gathered}x {spawn.resource_type} at ({agent.x}, {agent.y}). "
                f"Spawn has {remaining} remaining.",
                importance=5,
                valence=0.4,
            ),
        ],
    )


def handle_forage(intent: ActionIntent, agent: Agent, ctx: ResolutionContext) -> ActionResult:
    """Search the current cell for scraps of food; no spawn needed, low odds.

    Costs energy whether or not anything turns up. Each agent must wait
    ``cooldown_ticks`` before foraging the same cell again.
    """
    params = parse_params(ForageParams, intent)
    if isinstance(params, ActionResult):
        return params

    cfg = ctx.actions.forage
    if agent.energy < cfg.energy_cost:
        return ActionResult.failure(f"Not enough energy: need {cfg.energy_cost:g}, have {agent.energy}")

    cell = f"{agent.x}:{agent.y}"
    last = agent.forage_log.get(cell)
    if last is not None and ctx.tick - last < cfg.cooldown_ticks:
        remaining = cfg.cooldown_ticks - (ctx.tick - last)
        return ActionResult.failure(
            f"Recently foraged here. Wait {remaining} more tick(s) or move to another location."
        )

    forage_log = {key: t for key, t in agent.forage_log.items() if ctx.tick - t < cfg.cooldown_ticks}
    forage_log[cell] = ctx.tick
    found = ctx.rng.random() < cfg.success_rate
    food = cfg.food_yield if found else 0
    new_energy = agent.energy - cfg.energy_cost

    effects = []
    if found:
        effects.append(InventoryChange(agent_id=agent.id, item_type="food", delta=food))
        effects.append(
            remember(
                ctx, agent, f"Foraged at ({agent.x}, {agent.y}) and found {food} food! A lucky find.",
                importance=4, valence=0.3,
            )
        )
    else:
        effects.append(
            remember(
                ctx, agent, f"Foraged at ({agent.x}, {agent.y}) but found nothing useful.",
                importance=2, valence=-0.1,
            )
        )
    return ActionResult(
        success=True,
        changes={"energy": new_energy, "forage_log": forage_log},
        events=[
            event(
                ctx,
                "agent_foraged",
                agent.id,
                position={"x": agent.x, "y": agent.y},
                found=found,
                foodFound=food,
                energyCost=cfg.energy_cost,
                newEnergy=new_energy,
            )
        ],
        effects=effects,
    )


def handle_sleep(intent: ActionIntent, agent: Agent, ctx: ResolutionContext) -> ActionResult:
    params = parse_params(SleepParams, intent)
    if isinstance(params, ActionResult):
        return params

    cfg = ctx.actions.sleep
    if params.duration < 1 or params.duration > cfg.max_duration:
        return ActionResult.failure(
            f"Invalid sleep duration: must be between 1 and {cfg.max_duration} ticks"
        )
    if agent.state == "sleeping":
        return ActionResult.failure("Agent is already sleeping")

    restored = cfg.energy_per_tick * params.duration
    new_energy = min(100.0, agent.energy + restored)
    wake_tick = ctx.tick + params.duration
    return ActionResult(
        success=True,
        changes={"state": "sleeping", "energy": new_energy, "sleep_until_tick": wake_tick},
        events=[
            event(
                ctx,
                "agent_sleeping",
                agent.id,
                duration=params.duration,
                energyBefore=agent.energy,
                energyAfter=new_energy,
                energyRestored=new_energy - agent.energy,
                wakeTick=wake_tick,
            )
        ],
    )


def handle_consume(intent: ActionIntent, agent: Agent, ctx: ResolutionContext) -> ActionResult:
    params = parse_params(ConsumeParams, intent)
    if isinstance(params, ActionResult):
        return params

    item_type = params.item_type
    held = ctx.world.item_quantity(agent.id, item_type)
    if held < 1:
        return ActionResult.failure(f"No {item_type} in inventory")

    effects = ctx.actions.item_effects.get(item_type)
    if not effects:
        return ActionResult.failure(f"Item {item_type} cannot be consumed or has no effects")

    changes = {
        vital: min(100.0, getattr(agent, vital) + amount) for vital, amount in effects.items()
    }
    before = {"hunger": agent.hunger, "energy": agent.energy, "health": agent.health}
    after = {vital: changes.get(vital, value) for vital, value in before.items()}
    return ActionResult(
        success=True,
        changes=changes,
        events=[
            event(
                ctx,
                "agent_consumed",
                agent.id,
                itemType=item_type,
                effects=dict(effects),
                previousState=before,
                newState=after,
            )
        ],
        effects=[InventoryChange(agent_id=agent.id, item_type=item_type, delta=-1)],
    )


def handle_buy(intent: ActionIntent, agent: Agent, ctx: ResolutionContext) -> ActionResult:
    params = parse_params(BuyParams, intent)
    if isinstance(params, ActionResult):
        return params

    price = ctx.actions.item_prices.get(params.item_type)
    if price is None:
        return ActionResult.failure(f"Unknown item type: {params.item_type}")
    if params.quantity < 1:
        return ActionResult.failure("Quantity must be at least 1")

    total = price * params.quantity
    if agent.balance < total:
        return ActionResult.failure(f"Not enough money: need {total} CITY, have {agent.balance}")
    if not ctx.world.shelters_at(agent.x, agent.y):
        return ActionResult.failure(
            f"Must be at a shelter to buy items. Current position: ({agent.x}, {agent.y})"
        )

    new_balance = agent.balance - total
    return ActionResult(
        success=True,
        changes={"balance": new_balance},
        events=[
            event(
                ctx,
                "agent_bought",
                agent.id,
                itemType=params.item_type,
                quantity=params.quantity,
                unitPrice=price,
                totalCost=total,
                newBalance=new_balance,
            ),
            balance_event(ctx, agent.id, agent.balance, new_balance, f"Bought {params.quantity}x {params.item_type}"),
        ],
        effects=[
            InventoryChange(agent_id=agent.id, item_type=params.item_type, delta=params.quantity),
            remember(
                ctx,
                agent,
                f"Bought {params.quantity}x {params.item_type} for {total} CITY at shelter "
                f"({agent.x}, {agent.y}). Balance now {new_balance} CITY.",
                importance=4,
                valence=0.2,
            ),
        ],
    )
