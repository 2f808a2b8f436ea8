"""
Tick scheduler: the simulation clock and the only writer of world state.

Each tick:
1. Snapshot the committed world; every observation reads the snapshot
2. Dispatch decisions concurrently (see ``dispatch``); failures fall back
3. Resolve intents one at a time in ascending agent id against a working copy
4. Apply each successful result's delta and effects immediately
5. Run maintenance on the working copy
6. Commit atomically, then swap the working copy in, deposit scents, publish
   the tick's events and notify tick listeners

A persistence or scent-store failure before the commit aborts the tick before
anything becomes visible: the working copy is discarded, persistence is closed,
the scheduler stops and ``TickAbortedError`` is raised (or recorded in
``status()`` when running in the background). Scent deposits after a
successful commit are best-effort: a failure there is logged and the committed
tick stands.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Literal, NoReturn, Optional, Sequence

from .actions import ActionResolver, ResolutionContext
from .cognition import BASELINES, BaselineDecisionSource, create_baseline
from .context import SimulationContext
from .dispatch import DecisionDispatcher, DecisionRequest, DispatchOutcome
from .events import EventBus
from .logging_utils import (
    LOG_TAG_DETERMINISTIC,
    LOG_TAG_ERROR,
    LOG_TAG_SUCCESS,
    log_deterministic,
    log_error,
    log_info,
    log_success,
)
from .maintenance import run_maintenance
from .perception import build_observation
from .persistence import InMemoryPersistence, PersistenceError, PersistenceStrategy
from .schemas import ActionIntent, ActionResult, ActionType, ScentDeposit, WorldEvent
from .stigmergy import InMemoryKeyValueStore, ScentStore, StigmergyError
from .world import InvalidDeltaError, World, apply_result

SchedulerState = Literal["stopped", "running", "paused"]
TickListener = Callable[[int, World, World, List[WorldEvent]], None]


class TickAbortedError(Exception):
    """Raised when a tick cannot be committed; nothing from the tick was applied."""

    def __init__(self, *, tick: int, cause: BaseException) -> None:
        self.tick = tick
        self.cause = cause
        message = (
            f"Tick {tick} aborted: {cause}\n\n"
            "The world was left at the last committed tick and the scheduler is stopped.\n"
            "Remediation tips:\n"
            "  - Check that the persistence backend is reachable (DATABASE_URL, AGENTCITY_JSON_DIR)\n"
            "  - Check disk space and permissions for the JSON store\n"
            "  - Check that the scent key/value store is reachable\n"
            "  - Call reset() or start() again once the backend is healthy"
        )
        super().__init__(message)


class SchedulerStateError(Exception):
    """Raised on an illegal state-machine transition."""

    def __init__(self, *, operation: str, state: str) -> None:
        self.operation = operation
        self.state = state
        message = (
            f"Cannot {operation}() while the scheduler is {state}.\n"
            "Valid transitions: stopped -> start() -> running; running -> pause() -> paused; "
            "paused -> resume() -> running; running/paused -> stop() -> stopped.\n"
            "Remediation tips:\n"
            "  - Use status() to inspect the current state\n"
            "  - step() and run() only work while the background loop is not running"
        )
        super().__init__(message)


@dataclass
class TickReport:
    tick: int
    events: List[WorldEvent]
    outcomes: Dict[str, DispatchOutcome]
    actions_executed: int = 0
    actions_failed: int = 0
    deaths: int = 0
    duration_ms: float = 0.0

    @property
    def fallbacks(self) -> int:
        return sum(1 for o in self.outcomes.values() if o.used_fallback)


@dataclass
class SchedulerStatus:
    state: SchedulerState
    tick: int
    living_agents: int
    total_agents: int
    last_tick_duration_ms: Optional[float] = None
    last_error: Optional[str] = None
    decisions: Dict[str, Dict[str, int]] = field(default_factory=dict)


def _event(event_type: str, tick: int, agent_id: Optional[str] = None, **payload: Any) -> WorldEvent:
    return WorldEvent(type=event_type, tick=tick, agent_id=agent_id, payload=payload)


class TickScheduler:
    """Owns the clock, the committed world and every write to it.

    Args:
        world: Initial world (usually from ``scenario.build_world``)
        context: Run context (config, RNG, decision sources, fallback)
        persistence: Storage backend (defaults to in-memory)
        scent_store: Stigmergy store (defaults to an in-memory TTL store)
        resolver: Action resolver (defaults to the full catalogue)
        event_bus: Live event feed (a fresh bus when omitted)
        tick_listeners: Callables invoked after each commit with
            ``(tick, previous_world, new_world, events)``. Failures are logged.
    """

    def __init__(
        self,
        world: World,
        *,
        context: Optional[SimulationContext] = None,
        persistence: Optional[PersistenceStrategy] = None,
        scent_store: Optional[ScentStore] = None,
        resolver: Optional[ActionResolver] = None,
        event_bus: Optional[EventBus] = None,
        tick_listeners: Optional[Sequence[TickListener]] = None,
    ) -> None:
        self.context = context or SimulationContext()
        self.config = self.context.config
        self.world = world
        self._initial_world = world.snapshot()
        self.persistence = persistence or InMemoryPersistence()
        self.scent_store = scent_store or ScentStore(
            InMemoryKeyValueStore(),
            scent_duration_ticks=self.config.scent_duration_ticks,
            tick_interval_ms=self.config.tick_interval_ms,
        )
        self.resolver = resolver or ActionResolver()
        self.event_bus = event_bus or EventBus()
        self.tick_listeners: List[TickListener] = list(tick_listeners or [])
        self.dispatcher = DecisionDispatcher(self.context)

        self.state: SchedulerState = "stopped"
        self.last_error: Optional[str] = None
        self.last_report: Optional[TickReport] = None
        self._recent: Deque[List[WorldEvent]] = deque(maxlen=max(1, self.config.recent_event_ticks))
        self._initialized = False
        self._task: Optional[asyncio.Task] = None
        self._unpaused = asyncio.Event()
        self._stopping = asyncio.Event()
        self._tick_lock = asyncio.Lock()

    @property
    def tick(self) -> int:
        return self.world.tick

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Begin ticking every ``tick_interval_ms`` in a background task."""
        if self.state != "stopped":
            raise SchedulerStateError(operation="start", state=self.state)
        await self._ensure_initialized()
        self.state = "running"
        self.last_error = None
        self._stopping.clear()
        self._unpaused.set()
        log_info(f"Scheduler started at tick {self.tick} ({self.config.tick_interval_ms}ms interval)")
        self._task = asyncio.create_task(self._loop())

    def pause(self) -> None:
        """Stop dispatching new ticks. A tick already in flight still commits."""
        if self.state != "running":
            raise SchedulerStateError(operation="pause", state=self.state)
        self.state = "paused"
        self._unpaused.clear()
        log_info(f"Scheduler paused at tick {self.tick}")

    def resume(self) -> None:
        if self.state != "paused":
            raise SchedulerStateError(operation="resume", state=self.state)
        self.state = "running"
        self._unpaused.set()
        log_info(f"Scheduler resumed at tick {self.tick}")

    async def stop(self) -> None:
        """Stop the loop; returns once the in-flight tick has committed or aborted."""
        task = self._task
        if self.state != "stopped":
            self.state = "stopped"
            self._stopping.set()
            self._unpaused.set()
        if task is not None:
            await task
            self._task = None
        if self._initialized:
            await self._close_persistence()
        log_info(f"Scheduler stopped at tick {self.tick}")

    def reset(self, world: Optional[World] = None) -> None:
        """Rewind to ``world`` (default: the initial world). Only while stopped."""
        if self.state != "stopped" or (self._task is not None and not self._task.done()):
            raise SchedulerStateError(operation="reset", state=self.state)
        self._task = None
        self.world = (world or self._initial_world).snapshot()
        self._initial_world = self.world.snapshot()
        self._recent.clear()
        self.last_error = None
        self.last_report = None
        self.context.counters.reset()

    def status(self) -> SchedulerStatus:
        return SchedulerStatus(
            state=self.state,
            tick=self.tick,
            living_agents=len(self.world.living_agents()),
            total_agents=len(self.world.agents),
            last_tick_duration_ms=self.last_report.duration_ms if self.last_report else None,
            last_error=self.last_error,
            decisions=self.context.counters.summary(),
        )

    # ------------------------------------------------------------------
    # Explicit driving
    # ------------------------------------------------------------------

    async def step(self) -> TickReport:
        """Run exactly one tick. Not allowed while the background loop runs."""
        if self.state == "running":
            raise SchedulerStateError(operation="step", state=self.state)
        await self._ensure_initialized()
        return await self._run_tick()

    async def run(self, num_ticks: int) -> Dict[str, Any]:
        """Run ``num_ticks`` ticks back to back, then close persistence.

        Returns:
            Dict with the final world, the tick reached and decision counters

        Raises:
            TickAbortedError: a tick could not be committed
        """
        if self.state != "stopped":
            raise SchedulerStateError(operation="run", state=self.state)
        await self._ensure_initialized()
        try:
            log_info(f"Starting simulation: {len(self.world.living_agents())} agents, {num_ticks} ticks")
            for _ in range(num_ticks):
                await self._run_tick()
                if not self.world.living_agents():
                    log_info(f"\nSimulation ended early at tick {self.tick}: no living agents.")
                    break
            log_success(f"\n{LOG_TAG_SUCCESS} Simulation complete at tick {self.tick}")
            return {
                "tick": self.tick,
                "world": self.world,
                "decisions": self.context.counters.summary(),
            }
        finally:
            if self._initialized:
                await self._close_persistence()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _ensure_initialized(self) -> None:
        if self._initialized:
            return
        try:
            await self.persistence.initialize()
            if self.world.tick == 0:
                await self.persistence.commit_tick(self.world, [])
        except PersistenceError as exc:
            await self._abort(self.world.tick, exc, "Persistence")
        self._initialized = True

    async def _close_persistence(self) -> None:
        self._initialized = False
        try:
            await self.persistence.close()
        except PersistenceError as exc:
            log_error(f"  {LOG_TAG_ERROR} [Persistence] Close failed: {exc}")

    async def _record_failure(self, tick: int, exc: BaseException, component: str) -> None:
        """Stop, surface ``exc`` in ``status()`` and release the backend."""
        self.state = "stopped"
        self.last_error = f"tick {tick}: {exc}"
        log_error(f"  {LOG_TAG_ERROR} [{component}] Tick {tick} aborted: {exc}")
        await self._close_persistence()

    async def _abort(self, tick: int, exc: Exception, component: str) -> NoReturn:
        await self._record_failure(tick, exc, component)
        raise TickAbortedError(tick=tick, cause=exc) from exc

    async def _loop(self) -> None:
        interval = self.config.tick_interval_ms / 1000.0
        while self.state != "stopped":
            await self._unpaused.wait()
            if self.state == "stopped":
                break
            started = time.perf_counter()
            try:
                await self._run_tick()
            except TickAbortedError:
                break
            except Exception as exc:
                await self._record_failure(self.tick + 1, exc, "Scheduler")
                break
            remaining = max(0.0, interval - (time.perf_counter() - started))
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=remaining)
            except asyncio.TimeoutError:
                pass

    def _ensure_baseline_sources(self) -> None:
        for agent in self.world.living_agents():
            key = agent.decision_source
            if key in BASELINES and self.context.source_for(key) is None:
                strategy = create_baseline(key, self.context.rng)
                self.context.register_source(key, BaselineDecisionSource(strategy))

    async def _run_tick(self) -> TickReport:
        async with self._tick_lock:
            return await self._run_tick_locked()

    async def _run_tick_locked(self) -> TickReport:
        tick = self.world.tick + 1
        started = time.perf_counter()
        log_info(f"=== Tick {tick} ===")
        events: List[WorldEvent] = [_event("tick_start", tick)]
        self._ensure_baseline_sources()

        # 1-2. Observations from the tick-start snapshot, decisions in parallel.
        snapshot = self.world.snapshot()
        recent = [e for batch in self._recent for e in batch]
        catalogue = self.resolver.catalogue
        requests: List[DecisionRequest] = []
        try:
            for agent in snapshot.living_agents():
                if agent.state == "sleeping":
                    continue
                observation = await build_observation(
                    snapshot, agent.id, tick, self.scent_store, recent, self.config, catalogue
                )
                requests.append(DecisionRequest(agent.id, observation, agent.decision_source))
        except StigmergyError as exc:
            await self._abort(tick, exc, "Stigmergy")
        outcomes = await self.dispatcher.dispatch(requests)

        for outcome in outcomes.values():
            if outcome.used_fallback:
                events.append(
                    _event(
                        "decision_fallback",
                        tick,
                        outcome.agent_id,
                        reason=outcome.fallback_reason,
                        source=outcome.source_name,
                        action=outcome.decision.action,
                    )
                )

        # 3-4. Sequential resolution against the working copy.
        working = self.world.snapshot()
        report = TickReport(tick=tick, events=events, outcomes=outcomes)
        scents: List[ScentDeposit] = []
        log_deterministic(f"  {LOG_TAG_DETERMINISTIC} [Resolver] Resolving {len(outcomes)} intents...")
        for agent_id in sorted(outcomes):
            decision = outcomes[agent_id].decision
            result = self._resolve(working, agent_id, decision.action, decision.params, tick)
            if result.success:
                try:
                    scents.extend(
                        apply_result(working, agent_id, result, tick=tick, memory_retention=self.config.memory_retention)
                    )
                except InvalidDeltaError as exc:
                    result = ActionResult.failure(str(exc))
                else:
                    events.extend(result.events)
                    report.actions_executed += 1
                    continue
            report.actions_failed += 1
            events.append(_event("action_failed", tick, agent_id, action=decision.action, error=result.error))

        # 5. Maintenance.
        events.extend(run_maintenance(working, self.config, tick, self.context.rng))
        if self.scent_store.enabled:
            try:
                await self.scent_store.purge_expired()
            except StigmergyError as exc:
                await self._abort(tick, exc, "Stigmergy")

        working.tick = tick
        report.deaths = sum(1 for e in events if e.type == "agent_died")
        report.duration_ms = (time.perf_counter() - started) * 1000.0
        events.append(
            _event(
                "tick_end",
                tick,
                duration=report.duration_ms,
                agentCount=len(working.living_agents()),
                actionsExecuted=report.actions_executed,
                deaths=report.deaths,
            )
        )

        # 6. Commit, then make the tick visible.
        try:
            await self.persistence.commit_tick(working, events)
        except PersistenceError as exc:
            await self._abort(tick, exc, "Persistence")

        previous = self.world
        self.world = working
        self._recent.append(events)
        self.last_report = report
        await self._deposit_scents(scents, tick)
        self.event_bus.publish(events)

        log_success(
            f"  {LOG_TAG_SUCCESS} [Tick {tick}] committed: {report.actions_executed} actions, "
            f"{report.actions_failed} failed, {report.fallbacks} fallbacks, {report.deaths} deaths "
            f"({report.duration_ms:.0f}ms)"
        )

        for listener in self.tick_listeners:
            try:
                listener(tick, previous, working, events)
            except Exception as exc:  # pragma: no cover - diagnostic hook
                log_error(f"  {LOG_TAG_ERROR} [Analysis] Listener failed: {exc}")
        return report

    async def _deposit_scents(self, scents: List[ScentDeposit], tick: int) -> None:
        try:
            for deposit in scents:
                await self.scent_store.leave_scent(deposit.x, deposit.y, deposit.agent_id, tick)
        except StigmergyError as exc:
            log_error(f"  {LOG_TAG_ERROR} [Stigmergy] Tick {tick} committed without all of its scent traces: {exc}")

    def _resolve(self, working: World, agent_id: str, action: str, params: Dict[str, Any], tick: int) -> ActionResult:
        agent = working.agent(agent_id)
        if agent is None:
            return ActionResult.failure(f"Agent not found: {agent_id}")
        if not self.resolver.supports(action):
            return ActionResult.failure(f"Unknown action type: {action}")
        intent = ActionIntent(agent_id=agent_id, type=ActionType(action), params=params, tick=tick)
        context = ResolutionContext(
            world=working,
            config=self.config,
            tick=tick,
            rng=self.context.rng.stream("resolve", agent_id, tick),
        )
        try:
            return self.resolver.resolve(intent, agent, context)
        except Exception as exc:
            log_error(f"  {LOG_TAG_ERROR} [Resolver] {action} handler raised for {agent_id[:8]}: {exc}")
            return ActionResult.failure(f"Internal error while resolving {action}: {exc}")
