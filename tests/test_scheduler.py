"""Tests for the tick scheduler: commit semantics, state machine and event flow."""

import asyncio

import pytest

from agentcity.actions import ActionResolver
from agentcity.config import SimulationConfig
from agentcity.context import RandomService, SimulationContext
from agentcity.events import EventBus
from agentcity.persistence import InMemoryPersistence, PersistenceError
from agentcity.scheduler import SchedulerStateError, TickAbortedError, TickScheduler
from agentcity.schemas import ActionType, Agent, Decision, Observation
from agentcity.stigmergy import InMemoryKeyValueStore, ScentStore, StigmergyError
from agentcity.world import World


class WalkEast:
    """Decision source that always steps one cell east."""

    name = "walk_east"

    def is_available(self) -> bool:
        return True

    async def decide(self, observation: Observation) -> Decision:
        me = observation.agent
        return Decision(action="move", params={"to_x": me.x + 1, "to_y": me.y}, reasoning="east")


class FailingPersistence(InMemoryPersistence):
    def __init__(self, fail_from_tick: int):
        super().__init__()
        self.fail_from_tick = fail_from_tick
        self.opened = 0
        self.closed = 0

    async def initialize(self):
        self.opened += 1

    async def close(self):
        self.closed += 1

    async def commit_tick(self, world, events):
        if world.tick >= self.fail_from_tick:
            raise PersistenceError("disk full")
        await super().commit_tick(world, events)


class BrokenCommit(InMemoryPersistence):
    async def commit_tick(self, world, events):
        if world.tick > 0:
            raise RuntimeError("serializer bug")
        await super().commit_tick(world, events)


class UnwritableScents(InMemoryKeyValueStore):
    async def set(self, key, value, ttl_seconds=None):
        raise ConnectionError("scent store unreachable")


class UnreadableScents(InMemoryKeyValueStore):
    async def get_many(self, keys):
        raise ConnectionError("scent store unreachable")


class SlowSource:
    """Records what it was shown, then takes far longer than any deadline."""

    name = "slow"

    def __init__(self, delay: float = 5.0):
        self.delay = delay
        self.seen = []

    def is_available(self) -> bool:
        return True

    async def decide(self, observation: Observation) -> Decision:
        self.seen.append(observation)
        await asyncio.sleep(self.delay)
        return Decision(action="sleep", params={"duration": 1}, reasoning="too late")


class GatedSource:
    """Holds its decision until the test opens the gate."""

    name = "gated"

    def __init__(self):
        self.called = asyncio.Event()
        self.gate = asyncio.Event()

    def is_available(self) -> bool:
        return True

    async def decide(self, observation: Observation) -> Decision:
        self.called.set()
        await self.gate.wait()
        me = observation.agent
        return Decision(action="move", params={"to_x": me.x + 1, "to_y": me.y}, reasoning="east")


def make_world() -> World:
    world = World(tick=0, size=20)
    world.agents["alice"] = Agent(id="alice", x=5, y=5, decision_source="walk_east")
    world.agents["bob"] = Agent(id="bob", x=15, y=15, state="sleeping", sleep_until_tick=5)
    return world


def make_scheduler(world=None, config=None, sources=None, **kwargs) -> TickScheduler:
    context = SimulationContext(config or SimulationConfig(tick_interval_ms=10), rng=RandomService(3))
    context.register_source("walk_east", WalkEast())
    for name, source in (sources or {}).items():
        context.register_source(name, source)
    return TickScheduler(world or make_world(), context=context, **kwargs)


@pytest.mark.asyncio
async def test_step_commits_one_tick():
    persistence = InMemoryPersistence()
    scheduler = make_scheduler(persistence=persistence)

    report = await scheduler.step()

    assert report.tick == 1
    assert scheduler.tick == 1
    assert scheduler.world.agents["alice"].position == (6, 5)
    assert list(report.outcomes) == ["alice"]
    assert report.actions_executed == 1
    assert report.actions_failed == 0

    stored = await persistence.load_world()
    assert stored.tick == 1
    assert stored.agents["alice"].x == 6
    assert await persistence.get_events(since_tick=1) == report.events


@pytest.mark.asyncio
async def test_tick_events_are_bracketed_and_published():
    bus = EventBus()
    subscription = bus.subscribe()
    scheduler = make_scheduler(event_bus=bus)

    report = await scheduler.step()

    types = [e.type for e in report.events]
    assert types[0] == "tick_start"
    assert types[-1] == "tick_end"
    assert "agent_moved" in types
    assert report.events[-1].payload["actionsExecuted"] == 1

    received = []
    while (event := subscription.get_nowait()) is not None:
        received.append(event)
    assert received == report.events


@pytest.mark.asyncio
async def test_scents_are_deposited_after_commit():
    scheduler = make_scheduler()
    await scheduler.step()

    traces = await scheduler.scent_store.scents_at([(5, 5), (6, 5)])
    assert [(t.x, t.y, t.agent_id, t.tick) for t in traces] == [(5, 5, "alice", 1)]


@pytest.mark.asyncio
async def test_failed_actions_are_recorded_not_raised():
    world = make_world()
    world.agents["alice"] = world.agents["alice"].model_copy(update={"x": 19})
    scheduler = make_scheduler(world)

    report = await scheduler.step()

    assert report.actions_failed == 1
    failure = next(e for e in report.events if e.type == "action_failed")
    assert failure.agent_id == "alice"
    assert failure.payload["action"] == "move"
    assert "outside world bounds" in failure.payload["error"]


@pytest.mark.asyncio
async def test_persistence_failure_aborts_the_tick():
    bus = EventBus()
    subscription = bus.subscribe()
    scheduler = make_scheduler(persistence=FailingPersistence(fail_from_tick=1), event_bus=bus)

    with pytest.raises(TickAbortedError) as excinfo:
        await scheduler.step()

    assert excinfo.value.tick == 1
    assert isinstance(excinfo.value.cause, PersistenceError)
    assert scheduler.tick == 0
    assert scheduler.world.agents["alice"].position == (5, 5)
    assert scheduler.state == "stopped"
    assert scheduler.status().last_error == "tick 1: disk full"
    assert len(subscription) == 0
    assert await scheduler.scent_store.scents_at([(5, 5)]) == []


@pytest.mark.asyncio
async def test_disabled_actions_fail_without_reaching_a_handler():
    scheduler = make_scheduler(resolver=ActionResolver(enabled=[ActionType.SLEEP]))

    report = await scheduler.step()

    failure = next(e for e in report.events if e.type == "action_failed")
    assert failure.payload["error"] == "Unknown action type: move"
    assert scheduler.world.agents["alice"].position == (5, 5)


@pytest.mark.asyncio
async def test_tick_listeners_see_both_worlds():
    seen = []

    def record(tick, previous, current, events):
        seen.append((tick, previous.agents["alice"].x, current.agents["alice"].x, len(events)))

    def explode(tick, previous, current, events):
        raise RuntimeError("listener bug")

    scheduler = make_scheduler(tick_listeners=[explode, record])
    report = await scheduler.step()

    assert seen == [(1, 5, 6, len(report.events))]


@pytest.mark.asyncio
async def test_run_stops_early_when_everyone_is_dead():
    world = World(tick=0, size=10)
    world.agents["alice"] = Agent(id="alice", x=5, y=5, hunger=0.0, health=1.0, hunger_grace_ticks=3)
    scheduler = make_scheduler(world)

    result = await scheduler.run(5)

    assert result["tick"] == 1
    assert result["world"].agents["alice"].state == "dead"
    assert result["decisions"] == {"rule_based": {"requested": 1, "succeeded": 1}}


@pytest.mark.asyncio
async def test_runs_are_reproducible_for_a_seed():
    async def final_records():
        world = World(tick=0, size=15)
        for i in range(3):
            world.agents[f"agent-{i}"] = Agent(id=f"agent-{i}", x=2 + 4 * i, y=7)
        context = SimulationContext(SimulationConfig(), rng=RandomService(21))
        result = await TickScheduler(world, context=context).run(4)
        records = result["world"].to_records()
        return records["agents"], records["inventories"]

    assert await final_records() == await final_records()


@pytest.mark.asyncio
async def test_state_machine_transitions():
    scheduler = make_scheduler()

    with pytest.raises(SchedulerStateError, match=r"Cannot pause\(\) while the scheduler is stopped"):
        scheduler.pause()
    with pytest.raises(SchedulerStateError):
        scheduler.resume()

    await scheduler.start()
    assert scheduler.status().state == "running"
    with pytest.raises(SchedulerStateError):
        await scheduler.start()
    with pytest.raises(SchedulerStateError):
        await scheduler.step()
    with pytest.raises(SchedulerStateError):
        scheduler.reset()

    await asyncio.sleep(0.05)
    scheduler.pause()
    assert scheduler.state == "paused"
    scheduler.resume()
    await scheduler.stop()

    assert scheduler.state == "stopped"
    assert scheduler.tick >= 1


@pytest.mark.asyncio
async def test_reset_rewinds_to_the_initial_world():
    scheduler = make_scheduler()
    await scheduler.step()
    await scheduler.step()
    assert scheduler.tick == 2

    scheduler.reset()
    assert scheduler.tick == 0
    assert scheduler.world.agents["alice"].position == (5, 5)
    assert scheduler.status().decisions == {}
    assert scheduler.last_report is None

    custom = World(tick=0, size=20)
    custom.agents["zed"] = Agent(id="zed", x=1, y=1)
    scheduler.reset(custom)
    assert list(scheduler.world.agents) == ["zed"]


@pytest.mark.asyncio
async def test_abort_closes_persistence_and_reinitializes_on_retry():
    persistence = FailingPersistence(fail_from_tick=1)
    scheduler = make_scheduler(persistence=persistence)

    with pytest.raises(TickAbortedError):
        await scheduler.step()

    assert persistence.opened == 1
    assert persistence.closed == 1

    persistence.fail_from_tick = 10
    report = await scheduler.step()

    assert report.tick == 1
    assert persistence.opened == 2
    assert persistence.tick == 1


@pytest.mark.asyncio
async def test_failed_scent_deposit_keeps_the_committed_tick():
    persistence = InMemoryPersistence()
    scents = ScentStore(UnwritableScents(), scent_duration_ticks=10, tick_interval_ms=10)
    scheduler = make_scheduler(persistence=persistence, scent_store=scents)

    report = await scheduler.step()

    assert report.tick == 1
    assert scheduler.tick == 1
    assert persistence.tick == 1
    assert scheduler.world.agents["alice"].position == (6, 5)
    assert (await persistence.load_world()).agents["alice"].position == (6, 5)
    assert scheduler.state == "stopped"
    assert scheduler.last_error is None
    assert await scents.scents_at([(5, 5), (6, 5)]) == []

    await scheduler.step()
    assert scheduler.tick == persistence.tick == 2


@pytest.mark.asyncio
async def test_unreadable_scents_abort_before_commit():
    persistence = InMemoryPersistence()
    scents = ScentStore(UnreadableScents(), scent_duration_ticks=10, tick_interval_ms=10)
    scheduler = make_scheduler(persistence=persistence, scent_store=scents)

    with pytest.raises(TickAbortedError) as excinfo:
        await scheduler.step()

    assert isinstance(excinfo.value.cause, StigmergyError)
    assert scheduler.tick == 0
    assert persistence.tick == 0
    assert scheduler.status().last_error == "tick 1: Reading scents failed: scent store unreachable"


@pytest.mark.asyncio
async def test_background_loop_stops_and_reports_scent_failures():
    persistence = InMemoryPersistence()
    scents = ScentStore(UnreadableScents(), scent_duration_ticks=10, tick_interval_ms=10)
    scheduler = make_scheduler(persistence=persistence, scent_store=scents)

    await scheduler.start()
    for _ in range(100):
        if scheduler.state == "stopped":
            break
        await asyncio.sleep(0.01)

    status = scheduler.status()
    assert status.state == "stopped"
    assert status.tick == 0
    assert status.last_error.startswith("tick 1:")
    assert persistence.tick == 0
    await scheduler.stop()


@pytest.mark.asyncio
async def test_background_loop_reports_unexpected_errors():
    scheduler = make_scheduler(persistence=BrokenCommit())

    await scheduler.start()
    for _ in range(100):
        if scheduler.state == "stopped":
            break
        await asyncio.sleep(0.01)

    assert scheduler.state == "stopped"
    assert scheduler.status().last_error == "tick 1: serializer bug"
    assert scheduler.tick == 0
    await scheduler.stop()


@pytest.mark.asyncio
async def test_slow_source_times_out_within_the_tick():
    world = make_world()
    world.agents["alice"] = world.agents["alice"].model_copy(update={"decision_source": "slow"})
    slow = SlowSource()
    config = SimulationConfig(tick_interval_ms=10, decision_timeout_seconds=0.05)
    scheduler = make_scheduler(world, config=config, sources={"slow": slow})

    started = asyncio.get_running_loop().time()
    report = await scheduler.step()
    elapsed = asyncio.get_running_loop().time() - started

    assert elapsed < 1.0
    assert report.duration_ms < 1000.0
    outcome = report.outcomes["alice"]
    assert outcome.fallback_reason == "timeout"
    assert report.fallbacks == 1

    expected = scheduler.context.fallback.decide(slow.seen[0])
    assert outcome.decision == expected
    if expected.action == "move":
        target = (expected.params["to_x"], expected.params["to_y"])
        assert scheduler.world.agents["alice"].position == target
    assert scheduler.status().decisions["slow"]["fallback_timeout"] == 1


@pytest.mark.asyncio
async def test_pause_lets_the_in_flight_tick_commit():
    world = make_world()
    world.agents["alice"] = world.agents["alice"].model_copy(update={"decision_source": "gated"})
    gated = GatedSource()
    committed = asyncio.Event()

    def on_commit(tick, previous, current, events):
        committed.set()

    scheduler = make_scheduler(world, sources={"gated": gated}, tick_listeners=[on_commit])

    await scheduler.start()
    await asyncio.wait_for(gated.called.wait(), timeout=1.0)
    scheduler.pause()
    gated.gate.set()
    await asyncio.wait_for(committed.wait(), timeout=1.0)
    await asyncio.sleep(0.05)

    assert scheduler.state == "paused"
    assert scheduler.tick == 1
    assert scheduler.world.agents["alice"].position == (6, 5)

    await scheduler.stop()
    assert scheduler.tick == 1
