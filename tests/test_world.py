"""Tests for world state helpers, delta validation and record flattening."""

import pytest

from agentcity.knowledge import record_direct_discovery
from agentcity.naming import propose_name
from agentcity.schemas import (
    ActionResult,
    Agent,
    AgentUpdate,
    InventoryChange,
    JobOffer,
    JobOfferUpsert,
    Memory,
    MemoryWrite,
    ResourceSpawn,
    ScentDeposit,
    Shelter,
    SpawnAmountChange,
    TrustChange,
)
from agentcity.world import (
    COLLECTIONS,
    InvalidDeltaError,
    World,
    add_memory,
    apply_agent_changes,
    apply_result,
    change_inventory,
    change_trust,
)


def make_world() -> World:
    world = World(tick=4, size=30)
    world.agents["alice"] = Agent(id="alice", name="Alice", x=1, y=2, personality="curious")
    world.agents["bob"] = Agent(id="bob", x=3, y=4, balance=10.0)
    world.spawns["farm"] = ResourceSpawn(id="farm", x=1, y=2, resource_type="food", current_amount=4, max_amount=10)
    world.shelters["inn"] = Shelter(id="inn", x=3, y=4, owner_id="bob")
    world.inventories["alice"] = {"food": 2}
    return world


def test_living_agents_are_sorted_and_exclude_the_dead():
    world = make_world()
    world.agents["aaron"] = Agent(id="aaron", x=0, y=0, state="dead", health=0.0)
    world.agents["zoe"] = Agent(id="zoe", x=0, y=0)
    assert [a.id for a in world.living_agents()] == ["alice", "bob", "zoe"]


def test_vitals_are_clamped_and_wake_clears_sleep_deadline():
    world = make_world()
    apply_agent_changes(world, "alice", {"hunger": 140.0, "energy": -5.0, "state": "sleeping", "sleep_until_tick": 9})
    alice = world.agents["alice"]
    assert alice.hunger == 100.0
    assert alice.energy == 0.0
    assert alice.sleep_until_tick == 9

    apply_agent_changes(world, "alice", {"state": "idle"})
    assert world.agents["alice"].sleep_until_tick is None


def test_trust_is_clamped():
    world = make_world()
    change_trust(world, "alice", "bob", 80.0, tick=1)
    change_trust(world, "alice", "bob", 80.0, tick=2)
    rel = world.relationship("alice", "bob")
    assert rel.trust_score == 100.0
    assert rel.interaction_count == 2
    assert rel.last_interaction_tick == 2
    assert world.trust("bob", "alice") == 0.0


def test_memory_retention_drops_oldest():
    world = make_world()
    for tick in range(5):
        add_memory(world, Memory(agent_id="alice", tick=tick, content=f"m{tick}"), retention=3)
    assert [m.content for m in world.memories["alice"]] == ["m2", "m3", "m4"]


def test_inventory_entries_vanish_at_zero():
    world = make_world()
    change_inventory(world, "alice", "food", -2)
    change_inventory(world, "alice", "water", 3)
    assert world.inventories["alice"] == {"water": 3}


def test_apply_result_runs_every_effect():
    world = make_world()
    result = ActionResult(
        success=True,
        changes={"energy": 90.0},
        effects=[
            AgentUpdate(agent_id="bob", changes={"balance": 15.0}),
            InventoryChange(agent_id="alice", item_type="food", delta=1),
            SpawnAmountChange(spawn_id="farm", delta=-1),
            TrustChange(observer_id="bob", subject_id="alice", delta=5.0),
            MemoryWrite(memory=Memory(agent_id="bob", tick=4, content="Alice was here")),
            ScentDeposit(x=1, y=2, agent_id="alice"),
        ],
    )
    scents = apply_result(world, "alice", result, tick=4)

    assert world.agents["alice"].energy == 90.0
    assert world.agents["bob"].balance == 15.0
    assert world.item_quantity("alice", "food") == 3
    assert world.spawns["farm"].current_amount == 3
    assert world.trust("bob", "alice") == 5.0
    assert world.memories["bob"][0].content == "Alice was here"
    assert scents == [ScentDeposit(x=1, y=2, agent_id="alice")]


@pytest.mark.parametrize(
    "result",
    [
        ActionResult(success=True, changes={"personality": "grumpy"}),
        ActionResult(success=True, effects=[AgentUpdate(agent_id="bob", changes={"born_at_tick": 2})]),
        ActionResult(success=True, changes={"balance": -1.0}),
        ActionResult(success=True, effects=[AgentUpdate(agent_id="ghost", changes={"energy": 1.0})]),
        ActionResult(success=True, effects=[InventoryChange(agent_id="alice", item_type="food", delta=-3)]),
        ActionResult(success=True, effects=[SpawnAmountChange(spawn_id="nowhere", delta=1)]),
    ],
)
def test_invalid_deltas_are_rejected_before_anything_changes(result):
    world = make_world()
    before = world.snapshot()
    with pytest.raises(InvalidDeltaError):
        apply_result(world, "alice", result, tick=4)
    assert world == before


def test_inventory_validation_sums_deltas_per_item():
    world = make_world()
    result = ActionResult(
        success=True,
        effects=[
            InventoryChange(agent_id="alice", item_type="food", delta=-2),
            InventoryChange(agent_id="alice", item_type="food", delta=1),
        ],
    )
    apply_result(world, "alice", result, tick=4)
    assert world.item_quantity("alice", "food") == 1


def test_snapshot_is_independent():
    world = make_world()
    copy = world.snapshot()
    change_inventory(copy, "alice", "food", 5)
    apply_agent_changes(copy, "bob", {"energy": 1.0})

    assert world.item_quantity("alice", "food") == 2
    assert world.agents["bob"].energy == 100.0


def test_records_round_trip_every_collection():
    world = make_world()
    change_trust(world, "alice", "bob", 12.0, tick=1)
    add_memory(world, Memory(agent_id="alice", tick=1, content="hello"), retention=10)
    record_direct_discovery(world, "alice", "bob", tick=2, position=(3, 4))
    world.location_names["1:2"] = propose_name([], 1, 2, "Green Field", "alice", tick=2)
    offer = JobOffer(
        id="offer-1",
        employer_id="alice",
        salary=10.0,
        duration_ticks=2,
        payment_type="per_tick",
        created_at_tick=1,
        expires_at_tick=51,
    )
    apply_result(world, "alice", ActionResult(success=True, effects=[JobOfferUpsert(offer=offer)]), tick=4)

    records = world.to_records()
    assert set(records) == set(COLLECTIONS)
    assert records["relationships"]["alice:bob"]["trust_score"] == 12.0
    assert records["inventories"]["alice"] == {"agent_id": "alice", "items": {"food": 2}}

    restored = World.from_records(records, tick=world.tick, size=world.size)
    assert restored == world
