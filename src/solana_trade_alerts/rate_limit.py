from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    reset_in: float = 0.0


class SlidingWindowRateLimiter:
    """Allows at most ``max_requests`` per ``window_seconds`` for each key.

    Each key keeps its own ordered window of request timestamps. Timestamps
    that fell out of the window are dropped before every check.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, deque[float]] = {}

    def check_limit(self, key: str) -> RateLimitDecision:
        now = self._clock()
        window = self._windows.setdefault(key, deque())
        self._trim(window, now)

        if len(window) >= self.max_requests:
            reset_in = window[0] + self.window_seconds - now
            return RateLimitDecision(allowed=False, remaining=0, reset_in=max(reset_in, 0.0))

        window.append(now)
        return RateLimitDecision(allowed=True, remaining=self.max_requests - len(window))

    async def acquire(self, key: str) -> None:
        while True:
            decision = self.check_limit(key)
            if decision.allowed:
                return
            logger.warning("Rate limit reached for %s, waiting %.2fs", key, decision.reset_in)
            await asyncio.sleep(decision.reset_in)

    def evict_expired(self) -> None:
        now = self._clock()
        for key in list(self._windows):
            window = self._windows[key]
            self._trim(window, now)
            if not window:
                del self._windows[key]

    def pending(self, key: str) -> int:
        window = self._windows.get(key)
        if window is None:
            return 0
        self._trim(window, self._clock())
        return len(window)

    def _trim(self, window: deque[float], now: float) -> None:
        cutoff = now - self.window_seconds
        while window and window[0] <= cutoff:
            window.popleft()
