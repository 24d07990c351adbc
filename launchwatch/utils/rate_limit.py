"""Per-user rate limiting for commands that call upstream APIs."""

from __future__ import annotations

import time
from collections import defaultdict, deque
from typing import Callable, Deque, Dict, Hashable


class RateLimiter:
    """Allow at most `limit` events per key within a rolling `window_seconds`."""

    def __init__(
        self,
        limit: int,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._events: Dict[Hashable, Deque[float]] = defaultdict(deque)

    def _prune(self, key: Hashable, now: float) -> Deque[float]:
        events = self._events[key]
        while events and events[0] <= now - self.window_seconds:
            events.popleft()
        return events

    def allow(self, key: Hashable) -> bool:
        """Record an event and return whether it stays under the limit."""
        if self.limit <= 0:
            return True
        now = self._clock()
        events = self._prune(key, now)
        if len(events) >= self.limit:
            return False
        events.append(now)
        return True

    def retry_after(self, key: Hashable) -> float:
        """Seconds until `key` may send again; 0 when it already can."""
        now = self._clock()
        events = self._prune(key, now)
        if self.limit <= 0 or len(events) < self.limit:
            return 0.0
        return max(0.0, events[0] + self.window_seconds - now)
