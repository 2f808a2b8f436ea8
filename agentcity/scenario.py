"""
Scenario loading and world generation.

Two ways to get an initial ``World``:

- ``build_world`` generates one procedurally from a seeded ``RandomService``:
  agents, resource spawns (food, energy, material) and shelters are scattered
  over the grid. The same seed always yields the same world.
- ``load_scenario`` / ``ScenarioLoader`` read a JSON world description. Explicit
  entities are taken as-is; an optional ``generate`` block adds procedurally
  placed entities on top.

Scenario file structure:
```json
{
  "name": "City Center",
  "description": "...",
  "world_size": 50,
  "seed": 42,
  "agents": [
    {"id": "alice", "name": "Alice", "x": 10, "y": 10,
     "decision_source": "rule_based", "inventory": {"food": 2}}
  ],
  "resource_spawns": [
    {"id": "farm-1", "x": 12, "y": 10, "resource_type": "food", "max_amount": 10}
  ],
  "shelters": [{"id": "inn", "x": 25, "y": 25}],
  "generate": {"agents": 6, "spawns_per_type": 4, "shelters": 2, "decision_source": "random"},
  "config": {"visibility_radius": 8}
}
```

Usage:
    loader = ScenarioLoader()
    scenario = loader.load("city_center")
    scheduler = TickScheduler(scenario.world, context=SimulationContext(scenario.config))
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from .config import Config, SimulationConfig
from .context import RandomService
from .schemas import PERSONALITY_TRAITS, Agent, ResourceSpawn, Shelter
from .world import World

RESOURCE_TYPES = ("food", "energy", "material")


@dataclass
class Scenario:
    name: str
    description: str
    world: World
    config: SimulationConfig
    metadata: Dict[str, Any] = field(default_factory=dict)


def _free_cell(rng, size: int, taken: set) -> tuple[int, int]:
    # Falls back to a shared cell when the grid is crowded.
    for _ in range(size * size):
        cell = (rng.randrange(size), rng.randrange(size))
        if cell not in taken:
            taken.add(cell)
            return cell
    return (rng.randrange(size), rng.randrange(size))


def populate_world(
    world: World,
    rng: RandomService,
    *,
    agent_count: int = 0,
    spawns_per_type: int = 0,
    shelter_count: int = 0,
    decision_sources: Union[str, Sequence[Optional[str]], None] = None,
    starting_balance: float = 100.0,
    starting_items: Optional[Dict[str, int]] = None,
) -> World:
    """Add generated agents, spawns and shelters to ``world`` in place.

    ``decision_sources`` is either one key for every agent or a sequence that
    is cycled (so ``["random", "rule_based"]`` alternates the two).
    """
    size = world.size
    taken = {(a.x, a.y) for a in world.agents.values()}
    taken |= {(s.x, s.y) for s in world.spawns.values()}
    taken |= {(s.x, s.y) for s in world.shelters.values()}

    if isinstance(decision_sources, str) or decision_sources is None:
        sources: List[Optional[str]] = [decision_sources]
    else:
        sources = list(decision_sources) or [None]

    spawn_rng = rng.stream("scenario", "spawns", len(world.spawns))
    for resource_type in RESOURCE_TYPES:
        for _ in range(spawns_per_type):
            x, y = _free_cell(spawn_rng, size, taken)
            max_amount = spawn_rng.randint(5, 15)
            spawn = ResourceSpawn(
                id=RandomService.uuid(spawn_rng),
                x=x,
                y=y,
                resource_type=resource_type,
                current_amount=max_amount,
                max_amount=max_amount,
                regen_rate=1,
            )
            world.spawns[spawn.id] = spawn

    shelter_rng = rng.stream("scenario", "shelters", len(world.shelters))
    for _ in range(shelter_count):
        x, y = _free_cell(shelter_rng, size, taken)
        shelter = Shelter(id=RandomService.uuid(shelter_rng), x=x, y=y)
        world.shelters[shelter.id] = shelter

    agent_rng = rng.stream("scenario", "agents", len(world.agents))
    offset = len(world.agents)
    for index in range(agent_count):
        x, y = _free_cell(agent_rng, size, taken)
        agent = Agent(
            id=RandomService.uuid(agent_rng),
            name=f"Agent {offset + index + 1}",
            x=x,
            y=y,
            balance=starting_balance,
            personality=agent_rng.choice(PERSONALITY_TRAITS),
            decision_source=sources[index % len(sources)],
        )
        world.agents[agent.id] = agent
        if starting_items:
            world.inventories[agent.id] = dict(starting_items)
    return world


def build_world(
    config: Optional[SimulationConfig] = None,
    rng: Optional[RandomService] = None,
    agent_count: int = 6,
    *,
    spawns_per_type: Optional[int] = None,
    shelter_count: Optional[int] = None,
    decision_sources: Union[str, Sequence[Optional[str]], None] = "rule_based",
    starting_balance: float = 100.0,
    starting_items: Optional[Dict[str, int]] = None,
) -> World:
    """Generate a fresh world at tick 0.

    Spawn and shelter counts default to values scaled with the population.
    """
    config = config or SimulationConfig()
    rng = rng or RandomService(config.seed)
    world = World(tick=0, size=config.world_size)
    return populate_world(
        world,
        rng,
        agent_count=agent_count,
        spawns_per_type=spawns_per_type if spawns_per_type is not None else max(2, agent_count),
        shelter_count=shelter_count if shelter_count is not None else max(1, agent_count // 3),
        decision_sources=decision_sources,
        starting_balance=starting_balance,
        starting_items=starting_items,
    )


def _validate_scenario(data: Dict[str, Any]) -> None:
    missing = [name for name in ("name", "description") if name not in data]
    if missing:
        raise ValueError(f"Scenario missing required fields: {missing}")
    if not data.get("agents") and not data.get("generate", {}).get("agents"):
        raise ValueError("Scenario must define at least one agent (explicitly or via 'generate')")


def parse_scenario(data: Dict[str, Any]) -> Scenario:
    """Build a ``Scenario`` from an already-decoded JSON document."""
    _validate_scenario(data)

    overrides = dict(data.get("config", {}))
    if "world_size" in data:
        overrides["world_size"] = data["world_size"]
    if "seed" in data:
        overrides["seed"] = data["seed"]
    config = SimulationConfig(**overrides)
    rng = RandomService(config.seed)

    world = World(tick=0, size=config.world_size)
    for entry in data.get("agents", []):
        entry = dict(entry)
        inventory = entry.pop("inventory", None)
        agent = Agent.model_validate(entry)
        if not (0 <= agent.x < world.size and 0 <= agent.y < world.size):
            raise ValueError(f"Agent {agent.id} starts outside the {world.size}x{world.size} grid")
        world.agents[agent.id] = agent
        if inventory:
            world.inventories[agent.id] = {item: int(qty) for item, qty in inventory.items()}
    for entry in data.get("resource_spawns", []):
        entry = dict(entry)
        entry.setdefault("current_amount", entry.get("max_amount", 0))
        spawn = ResourceSpawn.model_validate(entry)
        world.spawns[spawn.id] = spawn
    for entry in data.get("shelters", []):
        shelter = Shelter.model_validate(entry)
        world.shelters[shelter.id] = shelter

    generate = data.get("generate")
    if generate:
        populate_world(
            world,
            rng,
            agent_count=int(generate.get("agents", 0)),
            spawns_per_type=int(generate.get("spawns_per_type", 0)),
            shelter_count=int(generate.get("shelters", 0)),
            decision_sources=generate.get("decision_source", "rule_based"),
            starting_balance=float(generate.get("starting_balance", 100.0)),
            starting_items=generate.get("starting_items"),
        )

    return Scenario(
        name=data["name"],
        description=data["description"],
        world=world,
        config=config,
        metadata={"recommended_ticks": data.get("recommended_ticks", 50), **data.get("metadata", {})},
    )


def load_scenario(path: Union[str, Path]) -> Scenario:
    """Read and parse one scenario file.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If required fields are missing or entities are invalid
        json.JSONDecodeError: If the file is not valid JSON
    """
    scenario_path = Path(path)
    if not scenario_path.exists():
        raise FileNotFoundError(f"Scenario file not found: {scenario_path}")
    data = json.loads(scenario_path.read_text())
    return parse_scenario(data)


class ScenarioLoader:
    """Load scenarios by name from a directory of JSON files.

    Args:
        scenarios_dir: Directory containing ``<name>.json`` files.
            Defaults to ``{PROJECT_ROOT}/examples/scenarios``. Relative paths
            are resolved against the project root.
    """

    def __init__(self, scenarios_dir: Optional[Union[str, Path]] = None):
        directory = Path(scenarios_dir) if scenarios_dir is not None else Path("examples") / "scenarios"
        if not directory.is_absolute():
            directory = Config.PROJECT_ROOT / directory
        self.scenarios_dir = directory

    def path_for(self, scenario_name: str) -> Path:
        candidate = Path(scenario_name)
        if candidate.suffix == ".json":
            return candidate if candidate.is_absolute() else self.scenarios_dir / candidate
        return self.scenarios_dir / f"{scenario_name}.json"

    def load(self, scenario_name: str) -> Scenario:
        scenario_path = self.path_for(scenario_name)
        if not scenario_path.exists():
            raise FileNotFoundError(f"Scenario '{scenario_name}' not found at {scenario_path}")
        return load_scenario(scenario_path)

    def list_scenarios(self) -> List[str]:
        if not self.scenarios_dir.exists():
            return []
        return sorted(f.stem for f in self.scenarios_dir.glob("*.json") if not f.name.startswith("_"))

    def get_scenario_info(self, scenario_name: str) -> Dict[str, Any]:
        """Scenario metadata without building the world."""
        data = json.loads(self.path_for(scenario_name).read_text())
        return {
            "name": data.get("name", scenario_name),
            "description": data.get("description", "No description"),
            "num_agents": len(data.get("agents", [])) + int(data.get("generate", {}).get("agents", 0)),
            "recommended_ticks": data.get("recommended_ticks", 50),
        }
