"""
Concurrent decision dispatch.

Every living agent gets one decision request per tick. Requests run
concurrently, at most ``max_concurrent_decisions`` in flight, and each call
gets its own ``decision_timeout_seconds`` deadline. A request that times out,
raises, returns an action outside the catalogue, or targets an unavailable
source is replaced by the fallback strategy's decision for the same
observation. Nothing is retried.

``dispatch`` returns only after every request has completed or been
cancelled, so resolution never races an outstanding call.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from pydantic import ValidationError

from .context import SimulationContext
from .llm_utils import describe_validation_error
from .logging_utils import LOG_TAG_ERROR, LOG_TAG_LLM, log_debug, log_error, log_llm
from .schemas import ActionType, Decision, Observation

FALLBACK_TIMEOUT = "timeout"
FALLBACK_ERROR = "error"
FALLBACK_UNAVAILABLE = "unavailable"
FALLBACK_UNPARSEABLE = "unparseable"

_ACTION_NAMES = {t.value for t in ActionType}


@dataclass
class DecisionRequest:
    agent_id: str
    observation: Observation
    source_key: Optional[str] = None


@dataclass
class DispatchOutcome:
    agent_id: str
    decision: Decision
    source_name: str
    fallback_reason: Optional[str] = None

    @property
    def used_fallback(self) -> bool:
        return self.fallback_reason is not None


class DecisionDispatcher:
    """Fans decision requests out to their sources under a concurrency cap."""

    def __init__(self, context: SimulationContext):
        self.context = context

    @property
    def timeout(self) -> float:
        return self.context.config.decision_timeout_seconds

    async def dispatch(self, requests: Sequence[DecisionRequest]) -> Dict[str, DispatchOutcome]:
        if not requests:
            return {}
        semaphore = asyncio.Semaphore(max(1, self.context.config.max_concurrent_decisions))
        tasks = [asyncio.ensure_future(self._decide_one(request, semaphore)) for request in requests]
        try:
            outcomes: List[DispatchOutcome] = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return {outcome.agent_id: outcome for outcome in outcomes}

    async def _decide_one(self, request: DecisionRequest, semaphore: asyncio.Semaphore) -> DispatchOutcome:
        fallback = self.context.fallback
        if request.source_key is None:
            # No assigned source: the fallback strategy is the agent's policy.
            decision = fallback.decide(request.observation)
            self.context.counters.record_success(fallback.name)
            return DispatchOutcome(request.agent_id, decision, fallback.name)

        source = self.context.source_for(request.source_key)
        source_name = getattr(source, "name", request.source_key)
        if source is None or not source.is_available():
            return self._fall_back(request, source_name, FALLBACK_UNAVAILABLE, "source not available")

        async with semaphore:
            try:
                decision = await asyncio.wait_for(source.decide(request.observation), timeout=self.timeout)
            except asyncio.TimeoutError:
                return self._fall_back(request, source_name, FALLBACK_TIMEOUT, f"no decision within {self.timeout:g}s")
            except ValidationError as exc:
                issues = "; ".join(describe_validation_error(exc))
                return self._fall_back(request, source_name, FALLBACK_UNPARSEABLE, issues)
            except Exception as exc:
                return self._fall_back(request, source_name, FALLBACK_ERROR, f"{type(exc).__name__}: {exc}")

        if decision.action not in _ACTION_NAMES:
            return self._fall_back(
                request, source_name, FALLBACK_UNPARSEABLE, f"unknown action '{decision.action}'"
            )

        self.context.counters.record_success(source_name)
        log_llm(f"  {LOG_TAG_LLM} [{request.agent_id[:8]}] {source_name} -> {decision.action}")
        log_debug(f"{request.agent_id[:8]} reasoning: {decision.reasoning[:80]}")
        return DispatchOutcome(request.agent_id, decision, source_name)

    def _fall_back(self, request: DecisionRequest, source_name: str, reason: str, detail: str) -> DispatchOutcome:
        fallback = self.context.fallback
        decision = fallback.decide(request.observation)
        self.context.counters.record_fallback(source_name, reason)
        log_error(
            f"  {LOG_TAG_ERROR} [{request.agent_id[:8]}] {source_name} {reason} ({detail}); "
            f"{fallback.name} fallback -> {decision.action}"
        )
        return DispatchOutcome(request.agent_id, decision, source_name, fallback_reason=reason)
