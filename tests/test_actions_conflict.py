"""Tests for harm, steal and deceive."""

import random

from agentcity.actions import ActionResolver, ResolutionContext
from agentcity.actions.conflict import hash_claim
from agentcity.config import SimulationConfig
from agentcity.schemas import ActionIntent, ActionType, Agent
from agentcity.world import World, apply_result, change_trust


class FixedRandom(random.Random):
    """A generator whose ``random()`` always returns the same value."""

    def __init__(self, value: float):
        super().__init__(0)
        self.value = value

    def random(self) -> float:
        return self.value


def make_world() -> World:
    world = World(tick=0, size=20)
    world.agents["alice"] = Agent(id="alice", x=5, y=5)
    world.agents["bob"] = Agent(id="bob", x=6, y=5)
    world.agents["carol"] = Agent(id="carol", x=10, y=5)
    world.inventories["bob"] = {"food": 3}
    return world


def resolve(world: World, action: ActionType, params: dict, rng=None, agent_id: str = "alice", tick: int = 1):
    intent = ActionIntent(agent_id=agent_id, type=action, params=params, tick=tick)
    ctx = ResolutionContext(world=world, config=SimulationConfig(), tick=tick, rng=rng or random.Random(3))
    return ActionResolver().resolve(intent, world.agents[agent_id], ctx)


def test_harm_damages_target_and_costs_trust():
    world = make_world()
    result = resolve(world, ActionType.HARM, {"target_agent_id": "bob", "intensity": "severe"})

    assert result.success
    assert result.changes == {"energy": 90.0}
    payload = result.events[0].payload
    assert payload["damage"] == 30.0
    assert payload["targetHealthAfter"] == 70.0

    apply_result(world, "alice", result, tick=1)
    assert world.agents["bob"].health == 70.0
    assert world.trust("bob", "alice") == -50.0
    assert world.agents["bob"].is_alive


def test_harm_can_kill():
    world = make_world()
    world.agents["bob"] = world.agents["bob"].model_copy(update={"health": 10.0})
    result = resolve(world, ActionType.HARM, {"target_agent_id": "bob", "intensity": "moderate"})

    assert [e.type for e in result.events] == ["agent_harmed", "agent_died"]
    apply_result(world, "alice", result, tick=1)
    bob = world.agents["bob"]
    assert bob.state == "dead"
    assert bob.died_at_tick == 1
    assert bob.cause_of_death == "harmed by alice"


def test_harm_validation():
    world = make_world()
    assert resolve(world, ActionType.HARM, {"target_agent_id": "alice"}).error == "Cannot harm yourself"
    assert resolve(world, ActionType.HARM, {"target_agent_id": "carol"}).error == (
        "Target must be adjacent (distance: 5, max: 1)"
    )
    assert resolve(world, ActionType.HARM, {"target_agent_id": "bob", "intensity": "lethal"}).error == (
        "Invalid intensity. Must be one of: light, moderate, severe"
    )
    assert resolve(world, ActionType.HARM, {"target_agent_id": "zed"}).error == "Target agent not found"


def test_successful_steal_moves_goods():
    world = make_world()
    result = resolve(
        world, ActionType.STEAL, {"target_agent_id": "bob", "item_type": "food", "quantity": 2}, rng=FixedRandom(0.1)
    )
    assert result.events[0].type == "agent_stole"

    apply_result(world, "alice", result, tick=1)
    assert world.item_quantity("alice", "food") == 2
    assert world.item_quantity("bob", "food") == 1
    assert world.agents["alice"].energy == 97.0
    assert world.trust("bob", "alice") == -20.0


def test_caught_steal_costs_energy_and_trust_only():
    world = make_world()
    result = resolve(
        world, ActionType.STEAL, {"target_agent_id": "bob", "item_type": "food"}, rng=FixedRandom(0.9)
    )
    assert result.success
    assert result.events[0].type == "agent_steal_failed"

    apply_result(world, "alice", result, tick=1)
    assert world.item_quantity("bob", "food") == 3
    assert world.trust("bob", "alice") == -35.0


def test_steal_money_and_missing_goods():
    world = make_world()
    result = resolve(
        world, ActionType.STEAL, {"target_agent_id": "bob", "item_type": "money", "quantity": 5}, rng=FixedRandom(0.0)
    )
    apply_result(world, "alice", result, tick=1)
    assert world.agents["alice"].balance == 105.0
    assert world.agents["bob"].balance == 95.0

    missing = resolve(world, ActionType.STEAL, {"target_agent_id": "bob", "item_type": "material"})
    assert missing.error == "Target does not have enough material (have: 0, need: 1)"


def test_deceive_records_hash_and_credibility():
    world = make_world()
    claim = "There is a huge food stash at the old mill"
    result = resolve(
        world,
        ActionType.DECEIVE,
        {"target_agent_id": "bob", "claim": claim, "claim_type": "resource_location"},
    )
    assert result.success
    assert result.changes == {"energy": 98.0}

    payload = result.events[0].payload
    assert payload["claimHash"] == hash_claim(claim)
    assert claim not in str(payload)
    assert payload["credibilityScore"] == 0.5

    apply_result(world, "alice", result, tick=1)
    heard = world.memories["bob"][-1]
    assert heard.memory_type == "interaction"
    assert heard.importance == 5
    assert claim in heard.content


def test_deceive_credibility_follows_trust():
    world = make_world()
    change_trust(world, "bob", "alice", 100.0, tick=0)
    result = resolve(
        world, ActionType.DECEIVE, {"target_agent_id": "bob", "claim": "Trust me on this", "claim_type": "other"}
    )
    assert result.events[0].payload["credibilityScore"] == 0.9


def test_deceive_validation():
    world = make_world()
    base = {"target_agent_id": "bob", "claim": "A perfectly fine lie", "claim_type": "other"}

    assert resolve(world, ActionType.DECEIVE, {**base, "claim": "hey"}).error == "Claim must be 5-500 characters"
    assert resolve(world, ActionType.DECEIVE, {**base, "claim": "x" * 501}).error == "Claim must be 5-500 characters"
    assert resolve(world, ActionType.DECEIVE, {**base, "claim_type": "rumor"}).error.startswith(
        "Invalid claim type. Must be one of: resource_location"
    )
    assert resolve(world, ActionType.DECEIVE, {**base, "target_agent_id": "alice"}).error == "Cannot deceive yourself"
    assert resolve(world, ActionType.DECEIVE, {**base, "target_agent_id": "carol"}).error == (
        "Target too far for communication (distance: 5, max: 3)"
    )

    world.agents["bob"] = world.agents["bob"].model_copy(update={"state": "dead"})
    assert resolve(world, ActionType.DECEIVE, base).error == "Cannot communicate with dead agent"

    world = make_world()
    world.agents["alice"] = world.agents["alice"].model_copy(update={"energy": 1.0})
    assert resolve(world, ActionType.DECEIVE, base).error == "Not enough energy (have: 1.0, need: 2)"
