"""Tests for scenario loading and procedural world generation."""

import json

import pytest

from agentcity.config import SimulationConfig
from agentcity.context import RandomService
from agentcity.scenario import ScenarioLoader, build_world, load_scenario, parse_scenario


def minimal_scenario(**extra):
    data = {
        "name": "Tiny",
        "description": "Two residents and a farm",
        "world_size": 12,
        "seed": 7,
        "agents": [
            {"id": "alice", "x": 1, "y": 1, "inventory": {"food": 2}},
            {"id": "bob", "x": 3, "y": 2, "decision_source": "random"},
        ],
        "resource_spawns": [{"id": "farm", "x": 5, "y": 5, "resource_type": "food", "max_amount": 6}],
    }
    data.update(extra)
    return data


def test_city_center_scenario_loads():
    loader = ScenarioLoader()
    assert "city_center" in loader.list_scenarios()

    scenario = loader.load("city_center")
    world = scenario.world

    assert scenario.name == "City Center"
    assert scenario.config.world_size == 30
    assert scenario.config.visibility_radius == 8
    assert scenario.metadata["recommended_ticks"] == 100
    assert len(world.agents) == 8
    assert world.agents["alice"].decision_source == "rule_based"
    assert world.inventories["dave"] == {"food": 1, "material": 3}
    assert world.spawns["spring"].current_amount == 12
    assert len(world.shelters) == 2
    for agent in world.agents.values():
        assert 0 <= agent.x < 30 and 0 <= agent.y < 30

    info = loader.get_scenario_info("city_center")
    assert info["num_agents"] == 8


def test_parse_scenario_explicit_entities():
    scenario = parse_scenario(minimal_scenario())
    world = scenario.world

    assert world.tick == 0
    assert world.size == 12
    assert scenario.config.seed == 7
    assert world.inventories == {"alice": {"food": 2}}
    assert world.agents["bob"].decision_source == "random"
    assert world.spawns["farm"].current_amount == 6
    assert scenario.metadata["recommended_ticks"] == 50


def test_generated_entities_are_seeded():
    data = minimal_scenario(generate={"agents": 3, "spawns_per_type": 1, "decision_source": ["random", "qlearning"]})
    first = parse_scenario(data).world
    second = parse_scenario(data).world

    assert first.to_records()["agents"] == second.to_records()["agents"]
    assert len(first.agents) == 5
    assert len(first.spawns) == 4
    generated = [a for a in first.agents.values() if a.id not in ("alice", "bob")]
    assert sorted(a.decision_source for a in generated) == ["qlearning", "random", "random"]


@pytest.mark.parametrize(
    "data, message",
    [
        ({"description": "x", "agents": [{"id": "a", "x": 0, "y": 0}]}, "missing required fields"),
        ({"name": "x", "description": "y"}, "at least one agent"),
        (minimal_scenario(agents=[{"id": "far", "x": 40, "y": 0}]), "outside the 12x12 grid"),
    ],
)
def test_invalid_scenarios(data, message):
    with pytest.raises(ValueError, match=message):
        parse_scenario(data)


def test_load_scenario_from_path(tmp_path):
    path = tmp_path / "tiny.json"
    path.write_text(json.dumps(minimal_scenario()), "utf-8")

    assert load_scenario(path).name == "Tiny"

    loader = ScenarioLoader(scenarios_dir=tmp_path)
    assert loader.list_scenarios() == ["tiny"]
    assert loader.load("tiny").world.size == 12
    with pytest.raises(FileNotFoundError, match="Scenario 'missing' not found"):
        loader.load("missing")


def test_build_world_defaults_scale_with_population():
    config = SimulationConfig(world_size=40, seed=11)
    world = build_world(config, agent_count=6)

    assert len(world.agents) == 6
    assert len(world.spawns) == 18
    assert len(world.shelters) == 2
    assert {a.decision_source for a in world.agents.values()} == {"rule_based"}

    again = build_world(config, RandomService(11), agent_count=6)
    assert again.to_records() == world.to_records()
