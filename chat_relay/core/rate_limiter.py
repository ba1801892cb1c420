"""
Per-client request limiting.

Fixed window counters keyed by client address: at most ``max_requests``
per ``window_seconds``. The counter for a key resets once its window has
elapsed, independently of every other key.
"""

import math
import time
from dataclasses import dataclass
from typing import Callable, Dict


@dataclass
class _Window:
    started_at: float
    count: int = 0


@dataclass
class RateLimitDecision:
    allowed: bool
    remaining: int
    retry_after: int


class FixedWindowRateLimiter:
    """In-memory fixed window request counter."""

    def __init__(
        self,
        max_requests: int = 50,
        window_seconds: float = 15 * 60,
        clock: Callable[[], float] = time.monotonic,
        max_tracked_keys: int = 10000,
    ):
        self.max_requests = max_requests
        self.max_tracked_keys = max_tracked_keys
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: Dict[str, _Window] = {}

    def _current_window(self, key: str, now: float) -> _Window:
        window = self._windows.get(key)
        if window is None or now - window.started_at >= self.window_seconds:
            window = _Window(started_at=now)
            self._windows[key] = window
        return window

    def hit(self, key: str) -> RateLimitDecision:
        """Count one request for ``key`` and say whether it may proceed."""
        if len(self._windows) >= self.max_tracked_keys:
            self.prune()

        now = self._clock()
        window = self._current_window(key, now)
        retry_after = max(1, math.ceil(window.started_at + self.window_seconds - now))

        if window.count >= self.max_requests:
            return RateLimitDecision(allowed=False, remaining=0, retry_after=retry_after)

        window.count += 1
        return RateLimitDecision(
            allowed=True,
            remaining=self.max_requests - window.count,
            retry_after=retry_after,
        )

    def reset(self, key: str) -> None:
        self._windows.pop(key, None)

    def prune(self) -> int:
        """Drop expired windows. Returns how many were removed."""
        now = self._clock()
        expired = [
            key for key, window in self._windows.items()
            if now - window.started_at >= self.window_seconds
        ]
        for key in expired:
            del self._windows[key]
        return len(expired)
