"""Live stream subscribers and the registry that fans events out to them.

A subscriber is anything with ``send(event, payload)`` and ``close()``.
``QueueSubscriber`` is the Server-Sent Events adapter: frames are queued
without blocking and drained by the streaming response.
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from collections.abc import AsyncIterator
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class SubscriberClosed(Exception):
    """Raised when sending to a subscriber that can no longer accept events."""

    pass


class Subscriber(Protocol):
    """Push capability for one live connection."""

    def send(self, event: str, payload: Any) -> None: ...

    def close(self) -> None: ...


def format_sse(event: str, payload: Any) -> str:
    """Encode one Server-Sent Events frame with a JSON data line."""
    data = json.dumps(payload, default=str)
    return f"event: {event}\ndata: {data}\n\n"


_CLOSE = object()
KEEPALIVE_FRAME = ": keepalive\n\n"


class QueueSubscriber:
    """SSE subscriber backed by a bounded asyncio queue.

    ``send`` never waits: a full queue means the client stopped reading, and
    the send fails so the registry drops it instead of stalling everyone else.
    """

    def __init__(self, identity: str = "", max_pending: int = 100) -> None:
        self.identity = identity
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_pending)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def send(self, event: str, payload: Any) -> None:
        if self._closed:
            raise SubscriberClosed(f"Subscriber {self.identity} is closed")
        try:
            self._queue.put_nowait(format_sse(event, payload))
        except asyncio.QueueFull:
            raise SubscriberClosed(
                f"Subscriber {self.identity} has {self._queue.qsize()} frames pending"
            ) from None

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # Make room for the end-of-stream marker; the client is going away anyway
        while True:
            try:
                self._queue.put_nowait(_CLOSE)
                return
            except asyncio.QueueFull:
                self._queue.get_nowait()

    async def frames(self, keepalive: float | None = None) -> AsyncIterator[str]:
        """Yield queued SSE frames until the subscriber is closed.

        Args:
            keepalive: If set, emit an SSE comment after this many idle
                seconds so a vanished client is noticed on the next write.
        """
        while True:
            try:
                frame = await asyncio.wait_for(self._queue.get(), timeout=keepalive)
            except asyncio.TimeoutError:
                yield KEEPALIVE_FRAME
                continue
            if frame is _CLOSE:
                return
            yield frame


class SubscriberRegistry:
    """The set of live subscribers, mutated only through this class.

    ``broadcast`` sends to a snapshot taken under the lock, so subscribers may
    be added or removed while a broadcast is running. A failing subscriber is
    removed and closed; the rest still receive the event.
    """

    def __init__(self) -> None:
        self._subscribers: set[Subscriber] = set()
        self._lock = threading.Lock()
        self._closed = False

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def __contains__(self, subscriber: object) -> bool:
        with self._lock:
            return subscriber in self._subscribers

    @property
    def closed(self) -> bool:
        return self._closed

    def add(self, subscriber: Subscriber) -> bool:
        """Register a subscriber.

        Returns:
            False if the registry is already shut down; the subscriber is
            closed immediately in that case.
        """
        with self._lock:
            if not self._closed:
                self._subscribers.add(subscriber)
                count = len(self._subscribers)
                added = True
            else:
                added = False
        if not added:
            _close_quietly(subscriber)
            return False
        logger.debug(f"Subscriber added ({count} connected)")
        return True

    def remove(self, subscriber: Subscriber) -> bool:
        """Unregister a subscriber. Returns False if it was not registered."""
        with self._lock:
            if subscriber not in self._subscribers:
                return False
            self._subscribers.discard(subscriber)
            count = len(self._subscribers)
        logger.debug(f"Subscriber removed ({count} connected)")
        return True

    def broadcast(self, event: str, payload: Any) -> int:
        """Send an event to every subscriber.

        Returns:
            Number of subscribers the event was delivered to.
        """
        with self._lock:
            if self._closed:
                return 0
            targets = list(self._subscribers)

        delivered = 0
        for subscriber in targets:
            try:
                subscriber.send(event, payload)
                delivered += 1
            except Exception as e:
                logger.info(f"Dropping subscriber after failed delivery: {e}")
                if self.remove(subscriber):
                    _close_quietly(subscriber)
        return delivered

    def close_all(self) -> int:
        """Close every subscriber once and refuse further broadcasts.

        Returns:
            Number of subscribers closed.
        """
        with self._lock:
            self._closed = True
            targets = list(self._subscribers)
            self._subscribers.clear()

        for subscriber in targets:
            _close_quietly(subscriber)
        if targets:
            logger.info(f"Closed {len(targets)} live stream(s)")
        return len(targets)


def _close_quietly(subscriber: Subscriber) -> None:
    try:
        subscriber.close()
    except Exception as e:
        logger.debug(f"Error closing subscriber: {e}")
