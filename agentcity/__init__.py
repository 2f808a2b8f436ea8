"""
AgentCity - tick-driven multi-agent city simulation.

Agents on a square grid decide one action per tick through pluggable decision
sources (LLMs or baseline strategies). A single scheduler resolves every
intent deterministically, applies the deltas and commits each tick atomically.

All dependencies (config, RNG, decision sources, persistence) are injected;
nothing reads ambient state during a tick.
"""

__version__ = "0.1.0"

# Main simulation components
from .scheduler import SchedulerStateError, SchedulerStatus, TickAbortedError, TickReport, TickScheduler
from .dispatch import DecisionDispatcher, DecisionRequest, DispatchOutcome
from .events import EventBus, Subscription, SubscriptionClosed
from .context import RandomService, SimulationContext
from .config import Config, SimulationConfig

# World model and resolution
from .world import World, apply_result
from .actions import ActionResolver, ResolutionContext
from .maintenance import run_maintenance
from .perception import build_observation, format_event
from .stigmergy import InMemoryKeyValueStore, KeyValueStore, ScentStore, StigmergyError

# Decision sources
from .cognition import (
    BaselineDecisionSource,
    BaselineStrategy,
    DecisionSource,
    LLMDecisionSource,
    QLearningStrategy,
    RandomStrategy,
    RuleBasedStrategy,
    SugarscapeStrategy,
    create_baseline,
)

# Persistence
from .persistence import (
    InMemoryPersistence,
    JsonPersistence,
    PersistenceError,
    PersistenceStrategy,
    PostgresPersistence,
    create_persistence,
)

# Core schemas
from .schemas import (
    ActionIntent,
    ActionResult,
    ActionType,
    Agent,
    Decision,
    Observation,
    ResourceSpawn,
    Shelter,
    WorldEvent,
)

# Scenario helpers
from .scenario import Scenario, ScenarioLoader, build_world, load_scenario

__all__ = [
    # Main classes
    "TickScheduler",
    "TickReport",
    "SchedulerStatus",
    "TickAbortedError",
    "SchedulerStateError",
    "DecisionDispatcher",
    "DecisionRequest",
    "DispatchOutcome",
    "EventBus",
    "Subscription",
    "SubscriptionClosed",
    "RandomService",
    "SimulationContext",
    "Config",
    "SimulationConfig",
    # World
    "World",
    "apply_result",
    "ActionResolver",
    "ResolutionContext",
    "run_maintenance",
    "build_observation",
    "format_event",
    "KeyValueStore",
    "InMemoryKeyValueStore",
    "ScentStore",
    "StigmergyError",
    # Decision sources
    "DecisionSource",
    "BaselineStrategy",
    "BaselineDecisionSource",
    "LLMDecisionSource",
    "RandomStrategy",
    "RuleBasedStrategy",
    "SugarscapeStrategy",
    "QLearningStrategy",
    "create_baseline",
    # Persistence
    "PersistenceStrategy",
    "PersistenceError",
    "InMemoryPersistence",
    "JsonPersistence",
    "PostgresPersistence",
    "create_persistence",
    # Schemas
    "ActionIntent",
    "ActionResult",
    "ActionType",
    "Agent",
    "Decision",
    "Observation",
    "ResourceSpawn",
    "Shelter",
    "WorldEvent",
    # Scenarios
    "Scenario",
    "ScenarioLoader",
    "build_world",
    "load_scenario",
]
