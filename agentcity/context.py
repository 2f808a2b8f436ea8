"""
Per-run context: the seeded random service and the decision-source registry.

Everything that would otherwise be ambient module state (random source,
decision-source cache, decision counters) lives on one ``SimulationContext``
constructed by the host and passed to the scheduler and dispatcher, so several
simulations can run side by side in one process.
"""

from __future__ import annotations

import hashlib
import random
import uuid
from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, Optional

from .config import SimulationConfig

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .cognition.base import BaselineStrategy, DecisionSource


class RandomService:
    """One seeded randomness source per simulation run.

    Callers never share a ``random.Random`` across concurrent work. Instead they
    derive a stream for a named scope (e.g. ``("decide", agent_id, tick)``); the
    same seed and scope always yield the same sequence, regardless of the order
    in which concurrent tasks happen to run.
    """

    def __init__(self, seed: Optional[int] = None):
        if seed is None:
            seed = random.SystemRandom().randrange(2**63)
        self.seed = seed

    def stream(self, *scope: object) -> random.Random:
        """Return a deterministic generator for ``scope``."""
        material = ":".join([str(self.seed), *(str(part) for part in scope)])
        digest = hashlib.sha256(material.encode("utf-8")).digest()
        return random.Random(int.from_bytes(digest[:8], "big"))

    @staticmethod
    def uuid(rng: random.Random) -> str:
        """Reproducible UUID4 string drawn from ``rng``."""
        return str(uuid.UUID(int=rng.getrandbits(128), version=4))


@dataclass
class DecisionCounters:
    """Running totals of decision outcomes, keyed by source name."""

    requested: Counter = field(default_factory=Counter)
    succeeded: Counter = field(default_factory=Counter)
    # (source name, reason) -> count
    fallbacks: Counter = field(default_factory=Counter)

    def record_success(self, source: str) -> None:
        self.requested[source] += 1
        self.succeeded[source] += 1

    def record_fallback(self, source: str, reason: str) -> None:
        self.requested[source] += 1
        self.fallbacks[(source, reason)] += 1

    def summary(self) -> Dict[str, Dict[str, int]]:
        out: Dict[str, Dict[str, int]] = {}
        for source, total in self.requested.items():
            entry = {"requested": total, "succeeded": self.succeeded[source]}
            for (name, reason), count in self.fallbacks.items():
                if name == source:
                    entry[f"fallback_{reason}"] = count
            out[source] = entry
        return out

    def reset(self) -> None:
        self.requested.clear()
        self.succeeded.clear()
        self.fallbacks.clear()


class SimulationContext:
    """Registry object shared by the scheduler and the dispatcher.

    Args:
        config: Run configuration
        rng: Seeded random service (defaults to one seeded from ``config.seed``)
        sources: Mapping of decision-source key -> DecisionSource. Agents point
            at a key through ``Agent.decision_source``.
        fallback: Baseline strategy used whenever a decision source cannot
            produce a usable decision in time. Defaults to the rule-based baseline.
    """

    def __init__(
        self,
        config: Optional[SimulationConfig] = None,
        *,
        rng: Optional[RandomService] = None,
        sources: Optional[Dict[str, "DecisionSource"]] = None,
        fallback: Optional["BaselineStrategy"] = None,
    ):
        self.config = config or SimulationConfig()
        self.rng = rng or RandomService(self.config.seed)
        self.sources: Dict[str, "DecisionSource"] = dict(sources or {})
        if fallback is None:
            from .cognition.rule_based import RuleBasedStrategy

            fallback = RuleBasedStrategy(self.rng)
        self.fallback = fallback
        self.counters = DecisionCounters()

    def register_source(self, key: str, source: "DecisionSource") -> None:
        self.sources[key] = source

    def source_for(self, key: Optional[str]) -> Optional["DecisionSource"]:
        if key is None:
            return None
        return self.sources.get(key)
