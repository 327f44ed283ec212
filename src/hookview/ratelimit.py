"""Sliding-window rate limiting for stream admission."""

from __future__ import annotations

import threading
import time
from collections import deque
from collections.abc import Callable

# Past this many tracked clients, idle ones are pruned during a check
PRUNE_THRESHOLD = 1024


class RateLimiter:
    """Caps how many connections one client may open per sliding window.

    The window is measured back from the current time on every check, so
    there is no burst at fixed bucket boundaries. Stale timestamps are
    evicted during the check itself; no background sweep is needed.

    Example:
        limiter = RateLimiter(max_connections=3, window_ms=1000)
        limiter.is_allowed("127.0.0.1")  # True
    """

    def __init__(
        self,
        max_connections: int,
        window_ms: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_connections = max_connections
        self.window_ms = window_ms
        self._clock = clock
        self._history: dict[str, deque[float]] = {}
        self._lock = threading.Lock()

    def is_allowed(self, identity: str) -> bool:
        """Record an attempt for ``identity`` and report whether it is admitted."""
        now = self._clock()
        cutoff = now - self.window_ms / 1000.0
        with self._lock:
            if len(self._history) > PRUNE_THRESHOLD:
                self._prune(cutoff)
            history = self._history.get(identity)
            if history is None:
                history = self._history[identity] = deque()
            _evict(history, cutoff)
            if len(history) >= self.max_connections:
                return False
            history.append(now)
            return True

    def tracked_identities(self) -> int:
        """Number of clients with admissions inside the current window."""
        cutoff = self._clock() - self.window_ms / 1000.0
        with self._lock:
            self._prune(cutoff)
            return len(self._history)

    def _prune(self, cutoff: float) -> None:
        for identity in list(self._history):
            history = self._history[identity]
            _evict(history, cutoff)
            if not history:
                del self._history[identity]


def _evict(history: deque[float], cutoff: float) -> None:
    while history and history[0] < cutoff:
        history.popleft()
