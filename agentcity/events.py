"""
Live event feed.

The scheduler publishes each tick's committed events to an ``EventBus``;
observers (dashboards, analysis tools) consume them through a ``Subscription``.
Delivery is at-most-once per subscriber: a slow subscriber overflows its own
bounded buffer and loses events, never stalling the simulation. The persisted
event log stays the durable source of truth.

Example:
    bus = EventBus()
    subscription = bus.subscribe(max_buffer=500)
    async for event in subscription:
        print(event.type, event.payload)
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Deque, Iterable, List, Literal, Optional

from .schemas import WorldEvent

OverflowPolicy = Literal["drop_new", "drop_oldest"]


class SubscriptionClosed(Exception):
    """Raised by ``Subscription.get`` once the subscription is closed and drained."""


class Subscription:
    def __init__(self, bus: "EventBus", max_buffer: int, overflow: OverflowPolicy):
        if max_buffer < 1:
            raise ValueError("max_buffer must be >= 1")
        if overflow not in ("drop_new", "drop_oldest"):
            raise ValueError(f"Unknown overflow policy '{overflow}'. Use 'drop_new' or 'drop_oldest'.")
        self._bus = bus
        self._buffer: Deque[WorldEvent] = deque()
        self._ready = asyncio.Event()
        self.max_buffer = max_buffer
        self.overflow = overflow
        self.dropped = 0
        self.closed = False

    def __len__(self) -> int:
        return len(self._buffer)

    def _offer(self, event: WorldEvent) -> None:
        if self.closed:
            return
        if len(self._buffer) >= self.max_buffer:
            self.dropped += 1
            if self.overflow == "drop_new":
                return
            self._buffer.popleft()
        self._buffer.append(event)
        self._ready.set()

    def get_nowait(self) -> Optional[WorldEvent]:
        if not self._buffer:
            return None
        event = self._buffer.popleft()
        if not self._buffer and not self.closed:
            self._ready.clear()
        return event

    async def get(self) -> WorldEvent:
        """Wait for the next event. Raises ``SubscriptionClosed`` after close."""
        while True:
            event = self.get_nowait()
            if event is not None:
                return event
            if self.closed:
                raise SubscriptionClosed()
            await self._ready.wait()

    def close(self) -> None:
        """Stop receiving; buffered events can still be drained."""
        if self.closed:
            return
        self.closed = True
        self._ready.set()
        self._bus._discard(self)

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> WorldEvent:
        try:
            return await self.get()
        except SubscriptionClosed:
            raise StopAsyncIteration from None


class EventBus:
    """Fan-out of committed events to any number of subscribers."""

    def __init__(self) -> None:
        self._subscriptions: List[Subscription] = []
        self.published = 0

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self, max_buffer: int = 1000, overflow: OverflowPolicy = "drop_oldest") -> Subscription:
        subscription = Subscription(self, max_buffer, overflow)
        self._subscriptions.append(subscription)
        return subscription

    def publish(self, events: Iterable[WorldEvent]) -> None:
        """Hand ``events`` to every open subscription. Never blocks."""
        batch = list(events)
        self._subscriptions = [s for s in self._subscriptions if not s.closed]
        for subscription in self._subscriptions:
            for event in batch:
                subscription._offer(event)
        self.published += len(batch)

    def _discard(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def close(self) -> None:
        for subscription in list(self._subscriptions):
            subscription.close()
