from __future__ import annotations

import math
import threading
import time
from collections import deque
from typing import Callable, Deque, Dict

from .errors import RateLimitError


class SlidingWindowLimiter:
    """
    Allows at most ``limit`` hits per identity within the trailing ``window_seconds``.

    Each identity keeps a deque of hit timestamps; entries older than the
    window are dropped before the count is checked. Identities whose history
    has fully expired are forgotten, and a sweep over all identities runs at
    most once per window.
    """

    def __init__(
        self,
        limit: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._hits: Dict[str, Deque[float]] = {}
        self._last_sweep = clock()

    def hit(self, identity: str) -> int:
        """Record one request; returns the remaining budget or raises RateLimitError."""
        now = self._clock()
        with self._lock:
            if now - self._last_sweep >= self.window_seconds:
                self._sweep(now)
            history = self._hits.get(identity)
            if history is not None:
                self._expire(history, now)
            else:
                history = deque()
            if len(history) >= self.limit:
                oldest = history[0] if history else now
                retry_after = max(1, math.ceil(self.window_seconds - (now - oldest)))
                raise RateLimitError(
                    "Too many uploads, please try again later",
                    retry_after=retry_after,
                    identity=identity,
                )
            history.append(now)
            self._hits[identity] = history
            return self.limit - len(history)

    def tracked(self) -> int:
        with self._lock:
            return len(self._hits)

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()

    def _expire(self, history: Deque[float], now: float) -> None:
        while history and now - history[0] >= self.window_seconds:
            history.popleft()

    def _sweep(self, now: float) -> None:
        for identity in list(self._hits):
            history = self._hits[identity]
            self._expire(history, now)
            if not history:
                del self._hits[identity]
        self._last_sweep = now
