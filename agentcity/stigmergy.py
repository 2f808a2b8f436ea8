"""
Stigmergy: ephemeral scent markers left on the grid.

A scent trace records that an agent passed through a cell at a given tick. Traces
live in a TTL-capable key/value store and disappear on their own; how strong a
trace looks is never stored but recomputed from the live tick on every read.

Usage:
    store = ScentStore(InMemoryKeyValueStore(), scent_duration_ticks=10, tick_interval_ms=1000)
    await store.leave_scent(4, 7, "alice", tick=12)
    traces = await store.scents_at([(4, 7), (4, 8)])
    scent_strength(current_tick=14, scent_tick=12, duration_ticks=10)  # "strong"
"""

from __future__ import annotations

import math
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterable, List, Literal, Optional, Tuple

from pydantic import BaseModel

ScentStrength = Literal["strong", "weak", "faint"]

SCENT_KEY_PREFIX = "world:scent"
SCENT_INITIAL_STRENGTH = 100


class StigmergyError(Exception):
    """The key/value store behind the scent layer failed.

    Wraps whatever the backend raised (connection loss, timeouts) so the
    scheduler can treat it like any other infrastructure failure.
    """

    def __init__(self, message: str, *, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class KeyValueStore(ABC):
    """Async key/value store with per-key expiry."""

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        """Store ``value`` under ``key``; expire after ``ttl_seconds`` if given."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the live value for ``key`` or None if missing/expired."""

    @abstractmethod
    async def get_many(self, keys: List[str]) -> List[Optional[Any]]:
        """Batch read. Result order matches ``keys``."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove ``key`` if present."""

    @abstractmethod
    async def purge_expired(self) -> int:
        """Evict expired entries and return how many were removed."""


class InMemoryKeyValueStore(KeyValueStore):
    """Dict-backed TTL store.

    ``clock`` returns seconds and defaults to ``time.monotonic``; tests inject a
    fake clock to drive expiry.
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self._clock = clock or time.monotonic
        self._data: Dict[str, Tuple[Any, Optional[float]]] = {}

    def _live(self, key: str, now: float) -> Optional[Any]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= now:
            # Lazy eviction on read.
            del self._data[key]
            return None
        return value

    async def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        expires_at = None if ttl_seconds is None else self._clock() + ttl_seconds
        self._data[key] = (value, expires_at)

    async def get(self, key: str) -> Optional[Any]:
        return self._live(key, self._clock())

    async def get_many(self, keys: List[str]) -> List[Optional[Any]]:
        now = self._clock()
        return [self._live(key, now) for key in keys]

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def purge_expired(self) -> int:
        now = self._clock()
        expired = [
            key
            for key, (_, expires_at) in self._data.items()
            if expires_at is not None and expires_at <= now
        ]
        for key in expired:
            del self._data[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._data)


class ScentTrace(BaseModel):
    x: int
    y: int
    agent_id: str
    tick: int
    strength: int = SCENT_INITIAL_STRENGTH


def scent_key(x: int, y: int) -> str:
    return f"{SCENT_KEY_PREFIX}:{x}:{y}"


def scent_ttl_seconds(duration_ticks: int, tick_interval_ms: int) -> int:
    """TTL for a scent, never below one second so it cannot expire instantly."""
    return max(1, math.ceil(duration_ticks * tick_interval_ms / 1000))


def scent_strength(current_tick: int, scent_tick: int, duration_ticks: int) -> ScentStrength:
    """Classify a trace by age relative to the configured duration.

    ``strong`` below 30% of the duration, ``weak`` below 70%, ``faint`` beyond.
    Negative ages (clock reset, replay) and non-positive durations are ``faint``.
    """
    if duration_ticks <= 0:
        return "faint"
    age = current_tick - scent_tick
    if age < 0:
        return "faint"
    if age < duration_ticks * 0.3:
        return "strong"
    if age < duration_ticks * 0.7:
        return "weak"
    return "faint"


class ScentStore:
    """Reads and writes scent traces through a ``KeyValueStore``.

    One trace per cell: a newer visit overwrites the previous trace.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        *,
        scent_duration_ticks: int,
        tick_interval_ms: int,
    ):
        self.kv = kv
        self.scent_duration_ticks = scent_duration_ticks
        self.tick_interval_ms = tick_interval_ms

    @property
    def enabled(self) -> bool:
        return self.scent_duration_ticks > 0

    async def leave_scent(self, x: int, y: int, agent_id: str, tick: int) -> None:
        """Deposit a trace at (x, y). No-op when scent is disabled."""
        if not self.enabled:
            return
        payload = {"agent_id": agent_id, "tick": tick, "strength": SCENT_INITIAL_STRENGTH}
        ttl = scent_ttl_seconds(self.scent_duration_ticks, self.tick_interval_ms)
        try:
            await self.kv.set(scent_key(x, y), payload, ttl_seconds=ttl)
        except Exception as exc:
            raise StigmergyError(f"Leaving scent at ({x}, {y}) failed: {exc}", cause=exc) from exc

    async def scents_at(self, cells: Iterable[Tuple[int, int]]) -> List[ScentTrace]:
        """Batch-fetch live traces for ``cells``. Expired or empty cells are skipped."""
        cell_list = list(cells)
        if not cell_list:
            return []
        try:
            values = await self.kv.get_many([scent_key(x, y) for x, y in cell_list])
        except Exception as exc:
            raise StigmergyError(f"Reading scents failed: {exc}", cause=exc) from exc
        traces: List[ScentTrace] = []
        for (x, y), value in zip(cell_list, values):
            if value is None:
                continue
            traces.append(
                ScentTrace(
                    x=x,
                    y=y,
                    agent_id=value["agent_id"],
                    tick=value["tick"],
                    strength=value.get("strength", SCENT_INITIAL_STRENGTH),
                )
            )
        return traces

    def strength_of(self, trace: ScentTrace, current_tick: int) -> ScentStrength:
        return scent_strength(current_tick, trace.tick, self.scent_duration_ticks)

    async def purge_expired(self) -> int:
        try:
            return await self.kv.purge_expired()
        except Exception as exc:
            raise StigmergyError(f"Purging expired scents failed: {exc}", cause=exc) from exc
