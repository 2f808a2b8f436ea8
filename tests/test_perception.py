"""Tests for partial observation construction."""

import pytest

from agentcity.actions import ActionResolver
from agentcity.config import SimulationConfig
from agentcity.perception import available_actions, build_observation, format_event
from agentcity.schemas import Agent, Memory, ResourceSpawn, Shelter, WorldEvent
from agentcity.stigmergy import InMemoryKeyValueStore, ScentStore
from agentcity.world import World, add_memory, change_trust

CATALOGUE = ActionResolver().catalogue


def make_world() -> World:
    world = World(tick=5, size=40)
    world.agents["alice"] = Agent(id="alice", name="Alice", x=10, y=10)
    world.agents["bob"] = Agent(id="bob", name="Bob", x=12, y=10)
    world.agents["carol"] = Agent(id="carol", x=25, y=10)
    world.agents["dave"] = Agent(id="dave", x=11, y=10, state="dead", health=0.0)
    world.spawns["orchard"] = ResourceSpawn(
        id="orchard", x=18, y=18, resource_type="food", current_amount=5, max_amount=10
    )
    world.spawns["quarry"] = ResourceSpawn(
        id="quarry", x=21, y=10, resource_type="material", current_amount=5, max_amount=10
    )
    world.shelters["inn"] = Shelter(id="inn", x=10, y=10)
    change_trust(world, "alice", "bob", 10.0, tick=1)
    change_trust(world, "alice", "carol", 20.0, tick=1)
    return world


def make_scents() -> ScentStore:
    return ScentStore(InMemoryKeyValueStore(), scent_duration_ticks=10, tick_interval_ms=1000)


async def observe(world: World, agent_id: str = "alice", scent_store=None, recent_events=()):
    return await build_observation(
        world,
        agent_id,
        tick=5,
        scent_store=scent_store,
        recent_events=list(recent_events),
        config=SimulationConfig(),
        catalogue=CATALOGUE,
    )


@pytest.mark.asyncio
async def test_visibility_is_bounded():
    observation = await observe(make_world())

    assert [a.id for a in observation.nearby_agents] == ["bob"]
    bob = observation.nearby_agents[0]
    assert (bob.distance, bob.direction) == (2, "east")

    assert [s.id for s in observation.nearby_resource_spawns] == ["orchard"]
    assert observation.nearby_resource_spawns[0].distance == 16
    assert [s.id for s in observation.nearby_shelters] == ["inn"]
    assert [r.agent_id for r in observation.relationships] == ["bob"]
    assert observation.agent.id == "alice"
    assert observation.world_size == 40


@pytest.mark.asyncio
async def test_scents_cover_adjacent_cells_and_skip_own_traces():
    world = make_world()
    scents = make_scents()
    await scents.leave_scent(10, 10, "alice", tick=4)
    await scents.leave_scent(11, 10, "bob", tick=4)
    await scents.leave_scent(10, 12, "carol", tick=4)

    observation = await observe(world, scent_store=scents)
    assert [(s.x, s.y, s.agent_id, s.strength) for s in observation.scents] == [(11, 10, "bob", "strong")]


@pytest.mark.asyncio
async def test_signals_from_the_previous_tick_within_range():
    world = make_world()
    events = [
        WorldEvent(
            type="agent_signaled",
            tick=4,
            agent_id="carol",
            payload={"message": "Water!", "intensity": 2, "range": 20, "x": 25, "y": 10},
        ),
        WorldEvent(
            type="agent_signaled",
            tick=4,
            agent_id="bob",
            payload={"message": "Too quiet", "intensity": 1, "range": 1, "x": 12, "y": 10},
        ),
        WorldEvent(
            type="agent_signaled",
            tick=3,
            agent_id="bob",
            payload={"message": "Old news", "intensity": 5, "range": 50, "x": 12, "y": 10},
        ),
    ]
    observation = await observe(world, recent_events=events)

    assert len(observation.signals) == 1
    heard = observation.signals[0]
    assert (heard.from_agent_id, heard.message, heard.distance, heard.direction) == ("carol", "Water!", 15, "east")
    assert not heard.loud


@pytest.mark.asyncio
async def test_recent_events_only_include_the_viewer():
    world = make_world()
    events = [
        WorldEvent(
            type="agent_harmed",
            tick=4,
            agent_id="bob",
            payload={"targetId": "alice", "intensity": "light", "damage": 10.0},
        ),
        WorldEvent(type="agent_gathered", tick=4, agent_id="carol", payload={"quantity": 1, "resourceType": "food"}),
    ]
    observation = await observe(world, recent_events=events)
    assert observation.recent_events == ["Agent bob attacked you (light, 10.0 damage)"]


@pytest.mark.asyncio
async def test_memories_and_inventory_are_reported():
    world = make_world()
    world.inventories["alice"] = {"water": 1, "food": 2}
    for tick in range(7):
        add_memory(world, Memory(agent_id="alice", tick=tick, content=f"memory {tick}"), retention=100)

    observation = await observe(world)
    assert observation.recent_memories == [f"memory {tick}" for tick in range(2, 7)]
    assert [(i.type, i.quantity) for i in observation.inventory] == [("food", 2), ("water", 1)]
    assert observation.item_quantity("food") == 2
    assert observation.item_quantity("tool") == 0


@pytest.mark.asyncio
async def test_unknown_agent_is_a_caller_bug():
    with pytest.raises(KeyError):
        await observe(make_world(), agent_id="nobody")


def test_available_actions_follow_preconditions():
    world = make_world()
    alice = world.agents["alice"]
    bob = world.agents["bob"]

    with_company = available_actions(world, alice, CATALOGUE, [bob], [])
    assert "buy" in with_company
    assert "trade" in with_company
    assert "sleep" in with_company
    assert "gather" not in with_company
    assert "consume" not in with_company
    assert "work" not in with_company
    assert "accept_job" not in with_company

    alone = available_actions(world, alice, CATALOGUE, [], [])
    assert "trade" not in alone
    assert "harm" not in alone
    assert "move" in alone
    assert "signal" in alone

    world.inventories["alice"] = {"food": 1}
    asleep = alice.model_copy(update={"state": "sleeping", "x": 18, "y": 18})
    options = available_actions(world, asleep, CATALOGUE, [], [])
    assert "sleep" not in options
    assert "consume" in options
    assert "gather" in options
    assert "buy" not in options


def test_format_event_lines():
    failed = WorldEvent(
        type="action_failed", tick=3, agent_id="alice", payload={"action": "move", "error": "Blocked"}
    )
    assert format_event(failed, "alice") == "ACTION FAILED: move - Blocked"

    moved = WorldEvent(
        type="agent_moved",
        tick=3,
        agent_id="bob",
        payload={"to": {"x": 4, "y": 5}, "remainingDistance": 2},
    )
    assert format_event(moved, "alice") == "Agent bob moved to (4, 5), 2 steps from destination"
    assert format_event(moved, "bob") == "You moved to (4, 5), 2 steps from destination"

    other = WorldEvent(type="claim_reinforced", tick=3, agent_id="alice", payload={"x": 1, "strength": 2})
    assert format_event(other, "alice") == "You: claim reinforced (x=1, strength=2)"
