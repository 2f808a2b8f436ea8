"""Tests for the scent store and its TTL key/value backend."""

import pytest

from agentcity.stigmergy import (
    InMemoryKeyValueStore,
    ScentStore,
    scent_key,
    scent_strength,
    scent_ttl_seconds,
)


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def make_store(duration_ticks: int = 10, tick_interval_ms: int = 1000):
    clock = FakeClock()
    kv = InMemoryKeyValueStore(clock=clock)
    store = ScentStore(kv, scent_duration_ticks=duration_ticks, tick_interval_ms=tick_interval_ms)
    return store, kv, clock


def test_scent_strength_thresholds():
    assert scent_strength(current_tick=12, scent_tick=12, duration_ticks=10) == "strong"
    assert scent_strength(current_tick=14, scent_tick=12, duration_ticks=10) == "strong"
    assert scent_strength(current_tick=15, scent_tick=12, duration_ticks=10) == "weak"
    assert scent_strength(current_tick=18, scent_tick=12, duration_ticks=10) == "weak"
    assert scent_strength(current_tick=19, scent_tick=12, duration_ticks=10) == "faint"


def test_scent_strength_degenerate_inputs_are_faint():
    assert scent_strength(current_tick=5, scent_tick=8, duration_ticks=10) == "faint"
    assert scent_strength(current_tick=5, scent_tick=5, duration_ticks=0) == "faint"


def test_scent_ttl_never_below_one_second():
    assert scent_ttl_seconds(10, 1000) == 10
    assert scent_ttl_seconds(3, 1500) == 5
    assert scent_ttl_seconds(1, 10) == 1


@pytest.mark.asyncio
async def test_leave_and_read_scents():
    store, kv, _ = make_store()
    await store.leave_scent(4, 7, "alice", tick=12)

    traces = await store.scents_at([(4, 7), (4, 8)])
    assert len(traces) == 1
    trace = traces[0]
    assert (trace.x, trace.y, trace.agent_id, trace.tick) == (4, 7, "alice", 12)
    assert trace.strength == 100
    assert store.strength_of(trace, current_tick=14) == "strong"
    assert await kv.get(scent_key(4, 7)) is not None


@pytest.mark.asyncio
async def test_newer_visit_overwrites_the_cell():
    store, _, _ = make_store()
    await store.leave_scent(1, 1, "alice", tick=1)
    await store.leave_scent(1, 1, "bob", tick=2)

    traces = await store.scents_at([(1, 1)])
    assert [(t.agent_id, t.tick) for t in traces] == [("bob", 2)]


@pytest.mark.asyncio
async def test_scents_expire_with_the_clock():
    store, kv, clock = make_store(duration_ticks=5, tick_interval_ms=1000)
    await store.leave_scent(2, 3, "alice", tick=1)

    clock.now = 4.9
    assert len(await store.scents_at([(2, 3)])) == 1

    clock.now = 5.0
    assert await store.scents_at([(2, 3)]) == []
    assert len(kv) == 0


@pytest.mark.asyncio
async def test_purge_expired_reports_evictions():
    store, kv, clock = make_store(duration_ticks=2, tick_interval_ms=1000)
    await store.leave_scent(0, 0, "a", tick=1)
    await store.leave_scent(0, 1, "b", tick=1)
    await kv.set("persistent", {"value": 1})

    clock.now = 10.0
    assert await store.purge_expired() == 2
    assert len(kv) == 1
    assert await kv.get("persistent") == {"value": 1}


@pytest.mark.asyncio
async def test_disabled_store_writes_nothing():
    store, kv, _ = make_store(duration_ticks=0)
    assert not store.enabled
    await store.leave_scent(1, 1, "alice", tick=1)
    assert len(kv) == 0
    assert await store.scents_at([]) == []
