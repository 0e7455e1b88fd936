"""Request throughput monitoring."""

import asyncio
import logging
import time
from collections import deque
from typing import Callable, Deque

logger = logging.getLogger(__name__)


class RequestRateMonitor:
    """Rolling-window request counter that backs off above a ceiling.

    Every ``check_every`` requests the rate over the window is measured; when
    it exceeds ``max_per_second`` the caller sleeps for ``backoff`` seconds.
    """

    def __init__(
        self,
        max_per_second: float = 5.0,
        window_seconds: float = 10.0,
        check_every: int = 10,
        backoff: float = 0.2,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_per_second = max_per_second
        self.window_seconds = window_seconds
        self.check_every = check_every
        self.backoff = backoff
        self._clock = clock
        self._timestamps: Deque[float] = deque()
        self.total_requests = 0
        self.throttled = 0

    def record(self) -> None:
        now = self._clock()
        self._timestamps.append(now)
        self.total_requests += 1
        while self._timestamps and now - self._timestamps[0] > self.window_seconds:
            self._timestamps.popleft()

    def current_rate(self) -> float:
        if len(self._timestamps) < 2:
            return 0.0
        elapsed = self._timestamps[-1] - self._timestamps[0]
        if elapsed <= 0:
            return float(len(self._timestamps))
        return len(self._timestamps) / elapsed

    async def throttle(self) -> None:
        """Record a request and sleep if throughput is over the ceiling."""
        self.record()
        if self.total_requests % self.check_every != 0:
            return
        rate = self.current_rate()
        if rate > self.max_per_second:
            self.throttled += 1
            logger.debug(f"Request rate {rate:.1f}/s over {self.max_per_second}/s; backing off")
            await asyncio.sleep(self.backoff)
