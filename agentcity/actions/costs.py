"""Energy and hunger cost rules shared by every action that tires an agent."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from ..config import VitalsPenaltyConfig
from ..schemas import Agent


@dataclass
class VitalsPenalty:
    """Cost multiplier from low hunger/energy. ``breakdown`` maps vital -> added fraction."""

    multiplier: float = 1.0
    breakdown: Dict[str, float] = field(default_factory=dict)

    @property
    def has_penalty(self) -> bool:
        return self.multiplier > 1.0

    def as_payload(self) -> Optional[Dict[str, Any]]:
        if not self.has_penalty:
            return None
        return {"multiplier": self.multiplier, "breakdown": dict(self.breakdown)}


def vitals_penalty(agent: Agent, config: VitalsPenaltyConfig) -> VitalsPenalty:
    """Each of hunger and energy adds ``low_penalty`` below the low threshold,
    or ``critical_penalty`` instead below the critical threshold."""
    breakdown: Dict[str, float] = {}
    for vital in ("hunger", "energy"):
        value = getattr(agent, vital)
        if value < config.critical_threshold:
            breakdown[vital] = config.critical_penalty
        elif value < config.low_threshold:
            breakdown[vital] = config.low_penalty
    return VitalsPenalty(multiplier=1.0 + sum(breakdown.values()), breakdown=breakdown)


def consecutive_multiplier(agent: Agent, resulting_state: str, penalty: float) -> float:
    """Repeating the same kind of action (same resulting state) costs more."""
    return 1.0 + penalty if agent.state == resulting_state else 1.0


def energy_cost(base: float, *multipliers: float) -> int:
    """Rounded up so a fractional cost can never be underpaid."""
    total = base
    for multiplier in multipliers:
        total *= multiplier
    # Guard against float noise such as 1.0000000000000002 rounding up to 2.
    return math.ceil(round(total, 9))


def hunger_cost(base: float, *multipliers: float) -> float:
    total = base
    for multiplier in multipliers:
        total *= multiplier
    return total


def describe_penalties(base: float, penalty: VitalsPenalty, consecutive: float, label: str) -> str:
    """Human-readable list of every component behind a cost, for error messages."""
    parts = [f"base: {base:g}"]
    for vital, added in penalty.breakdown.items():
        parts.append(f"+{round(added * 100)}% low {vital}")
    if consecutive > 1.0:
        parts.append(f"+{round((consecutive - 1.0) * 100)}% consecutive {label}")
    return ", ".join(parts)
