import time
from collections import deque
from typing import Callable, Deque, Dict

from core.errors import RateLimited
import logging

logger = logging.getLogger(__name__)


class RollingWindowRateLimiter:
    """Process-local limiter: at most `max_attempts` hits per key in any `window_seconds` span.

    State lives in memory and is reset on restart; it is not shared between
    processes.
    """

    def __init__(
        self,
        max_attempts: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        sweep_threshold: int = 10000,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self._clock = clock
        self.sweep_threshold = sweep_threshold
        self._hits: Dict[str, Deque[float]] = {}
        self._last_sweep = clock()

    def _prune(self, key: str, now: float) -> Deque[float]:
        hits = self._hits.get(key)
        if hits is None:
            hits = deque()
            self._hits[key] = hits
        cutoff = now - self.window_seconds
        while hits and hits[0] <= cutoff:
            hits.popleft()
        return hits

    def hit(self, key: str) -> bool:
        """Record an attempt for `key`; return False if the window is already full."""
        now = self._clock()
        # At most one full sweep per window, however many keys are live
        if len(self._hits) > self.sweep_threshold and now - self._last_sweep >= self.window_seconds:
            self.sweep()
        hits = self._prune(key, now)
        if len(hits) >= self.max_attempts:
            return False
        hits.append(now)
        return True

    def check(self, key: str) -> None:
        """Record an attempt or raise RateLimited"""
        if not self.hit(key):
            logger.warning(f"Rate limit exceeded for client {key}")
            raise RateLimited("Too many attempts, please try again later")

    def remaining(self, key: str) -> int:
        hits = self._prune(key, self._clock())
        return max(self.max_attempts - len(hits), 0)

    def sweep(self) -> int:
        """Drop keys whose window has fully elapsed; returns how many were dropped"""
        now = self._clock()
        self._last_sweep = now
        stale = [key for key in list(self._hits) if not self._prune(key, now)]
        for key in stale:
            del self._hits[key]
        return len(stale)

    def reset(self) -> None:
        self._hits.clear()

    @property
    def tracked_keys(self) -> int:
        return len(self._hits)
