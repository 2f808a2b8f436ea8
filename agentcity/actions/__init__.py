"""Action resolution: handlers turn intents into deltas and typed effects."""

from .base import ResolutionContext
from .costs import VitalsPenalty, consecutive_multiplier, energy_cost, hunger_cost, vitals_penalty
from .registry import DEFAULT_HANDLERS, ActionResolver

__all__ = [
    "ActionResolver",
    "DEFAULT_HANDLERS",
    "ResolutionContext",
    "VitalsPenalty",
    "consecutive_multiplier",
    "energy_cost",
    "hunger_cost",
    "vitals_penalty",
]
