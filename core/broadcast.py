"""Fan invocation outcomes out to every connected stream subscriber.

The hub owns the set of live ``Subscriber`` objects. Publishing never awaits:
each subscriber has a bounded queue and an event is dropped into it with
``put_nowait``. A subscriber whose queue is full is treated as a failed write
and closed, so one stalled client cannot hold up dispatch for everyone else.

Usage::

    hub = BroadcastHub()
    subscriber = hub.subscribe()
    try:
        async for event in hub.iter_events(subscriber):
            ...  # write event to the transport
    finally:
        hub.unsubscribe(subscriber)
"""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_KEEPALIVE_SECONDS = 30.0
DEFAULT_BUFFER_SIZE = 100

_subscriber_ids = itertools.count(1)


class EventKind(str, Enum):
    MANIFEST = "manifest"
    TOOL_RESULT = "tool_result"
    TOOL_ERROR = "tool_error"
    PING = "ping"


class SubscriberState(str, Enum):
    CONNECTING = "connecting"
    ACTIVE = "active"
    CLOSED = "closed"


@dataclass(frozen=True)
class BroadcastEvent:
    """One message pushed to stream subscribers."""

    kind: EventKind
    payload: Any = None
    correlation_id: Optional[str] = None
    tool: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"kind": self.kind.value}
        if self.correlation_id is not None:
            data["correlation_id"] = self.correlation_id
        if self.tool is not None:
            data["tool"] = self.tool
        data["payload"] = self.payload
        return data

    def to_sse(self) -> str:
        """Render the event in ``text/event-stream`` framing."""

        lines = [f"event: {self.kind.value}"]
        if self.correlation_id:
            lines.append(f"id: {self.correlation_id}")
        if self.kind is EventKind.PING:
            lines.append("data: {}")
        else:
            lines.append("data: " + json.dumps(self.to_dict(), ensure_ascii=False, default=str))
        return "\n".join(lines) + "\n\n"


def ping_event() -> BroadcastEvent:
    return BroadcastEvent(kind=EventKind.PING, payload={})


@dataclass(eq=False)
class Subscriber:
    """A single long-lived stream connection owned by the hub."""

    buffer_size: int = DEFAULT_BUFFER_SIZE
    id: int = field(default_factory=lambda: next(_subscriber_ids))
    state: SubscriberState = SubscriberState.CONNECTING
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    delivered: int = 0

    def __post_init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max(self.buffer_size, 1))

    @property
    def closed(self) -> bool:
        return self.state is SubscriberState.CLOSED

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def activate(self) -> None:
        """Mark the handshake complete (headers and manifest sent)."""

        if self.state is SubscriberState.CONNECTING:
            self.state = SubscriberState.ACTIVE

    def offer(self, event: BroadcastEvent) -> bool:
        """Enqueue without blocking; return False when the write failed."""

        if self.closed:
            return False
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            return False
        self.delivered += 1
        return True

    def close(self) -> None:
        if self.closed:
            return
        self.state = SubscriberState.CLOSED
        while not self._queue.empty():
            self._queue.get_nowait()
        # Wake a reader blocked in next_event().
        self._queue.put_nowait(None)

    def get_nowait(self) -> Optional[BroadcastEvent]:
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    async def next_event(self, timeout: Optional[float] = None) -> Optional[BroadcastEvent]:
        """Wait for the next queued event; ``None`` on timeout or close."""

        if self.closed:
            return None
        try:
            if timeout is None:
                return await self._queue.get()
            return await asyncio.wait_for(self._queue.get(), timeout)
        except asyncio.TimeoutError:
            return None


class BroadcastHub:
    """Thread-safe registry of subscribers with non-blocking fan-out."""

    def __init__(
        self,
        *,
        keepalive_seconds: float = DEFAULT_KEEPALIVE_SECONDS,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
    ) -> None:
        if keepalive_seconds <= 0:
            raise ValueError("keepalive_seconds must be positive")
        self._keepalive_seconds = keepalive_seconds
        self._buffer_size = max(int(buffer_size), 1)
        self._subscribers: Dict[int, Subscriber] = {}
        self._lock = threading.Lock()

    @property
    def keepalive_seconds(self) -> float:
        return self._keepalive_seconds

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribers(self) -> List[Subscriber]:
        with self._lock:
            return list(self._subscribers.values())

    def subscribe(self) -> Subscriber:
        subscriber = Subscriber(buffer_size=self._buffer_size)
        with self._lock:
            self._subscribers[subscriber.id] = subscriber
            total = len(self._subscribers)
        logger.info("Stream subscriber %s connected (total=%s)", subscriber.id, total)
        return subscriber

    def unsubscribe(self, subscriber: Subscriber) -> None:
        with self._lock:
            removed = self._subscribers.pop(subscriber.id, None)
            total = len(self._subscribers)
        subscriber.close()
        if removed is not None:
            logger.info("Stream subscriber %s disconnected (total=%s)", subscriber.id, total)

    def publish(self, event: BroadcastEvent) -> int:
        """Deliver ``event`` to every live subscriber; return how many accepted it.

        Subscribers that cannot accept the event are closed and removed. No
        exception from an individual subscriber reaches the caller.
        """

        delivered = 0
        for subscriber in self.subscribers():
            try:
                accepted = subscriber.offer(event)
            except Exception:  # pragma: no cover - offer() only raises on broken queues
                logger.exception("Dropping stream subscriber %s after write error", subscriber.id)
                accepted = False
            if accepted:
                delivered += 1
                continue
            if not subscriber.closed:
                logger.warning(
                    "Stream subscriber %s buffer full (%s events); disconnecting",
                    subscriber.id,
                    subscriber.pending,
                )
            self.unsubscribe(subscriber)
        return delivered

    async def iter_events(
        self,
        subscriber: Subscriber,
        *,
        keepalive_seconds: Optional[float] = None,
    ) -> AsyncIterator[BroadcastEvent]:
        """Yield queued events for ``subscriber``, plus a ping on every idle interval.

        The iterator ends once the subscriber is closed. A failed write of a
        yielded ping surfaces in the caller's transport, whose cleanup is
        expected to call ``unsubscribe``.
        """

        interval = keepalive_seconds or self._keepalive_seconds
        while not subscriber.closed:
            event = await subscriber.next_event(timeout=interval)
            if subscriber.closed:
                return
            yield event if event is not None else ping_event()

    def close_all(self) -> None:
        for subscriber in self.subscribers():
            self.unsubscribe(subscriber)


__all__ = [
    "BroadcastEvent",
    "BroadcastHub",
    "EventKind",
    "Subscriber",
    "SubscriberState",
    "ping_event",
]
