"""
Sliding window rate limiter for the InChurch client.

State is process local and owned by a single client instance. Tenants have
separate quotas, so a limiter must never be shared between tenants.
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Awaitable, Callable, Deque, Optional

logger = logging.getLogger(__name__)


@dataclass
class RateLimitInfo:
    """Snapshot of the current rate limit state."""
    requests_remaining: int
    reset_in_seconds: float
    requests_per_window: int


class SlidingWindowRateLimiter:
    """
    Allows at most `max_requests` acquisitions within any `window_seconds`.

    When the window is full, `acquire()` waits until the oldest request
    leaves the window. The server may additionally advertise its own quota
    via response headers (see `observe_headers`).
    """

    def __init__(
        self,
        max_requests: int = 200,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_requests <= 0:
            raise ValueError("max_requests must be positive")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")

        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._sleep = sleep
        self._timestamps: Deque[float] = deque()
        self._server_reset_at: Optional[float] = None
        self._lock = asyncio.Lock()

    def _evict_expired(self, now: float) -> None:
        while self._timestamps and now - self._timestamps[0] >= self.window_seconds:
            self._timestamps.popleft()

    def _wait_time(self, now: float) -> float:
        self._evict_expired(now)

        wait = 0.0
        if len(self._timestamps) >= self.max_requests:
            # The (max+1)-th request may go once the oldest one expires
            index = len(self._timestamps) - self.max_requests
            wait = self._timestamps[index] + self.window_seconds - now

        if self._server_reset_at is not None:
            if self._server_reset_at > now:
                wait = max(wait, self._server_reset_at - now)
            else:
                self._server_reset_at = None

        return max(0.0, wait)

    async def acquire(self) -> float:
        """
        Reserves one request slot, waiting for the window if necessary.

        Returns:
            Seconds spent waiting (0.0 when a slot was free)
        """
        async with self._lock:
            waited = 0.0
            wait = self._wait_time(self._clock())
            while wait > 0:
                logger.info(f"⏳ Rate limit window exhausted, waiting {wait:.2f}s")
                await self._sleep(wait)
                waited += wait
                wait = self._wait_time(self._clock())

            self._timestamps.append(self._clock())
            return waited

    def observe_headers(
        self,
        remaining: Optional[int],
        reset_epoch: Optional[float],
        limit: Optional[int],
        wall_clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Tunes throttling from the server's rate limit headers.

        A smaller advertised limit lowers ours; an exhausted server quota
        blocks the next acquisition until the advertised reset.
        """
        if limit is not None and 0 < limit < self.max_requests:
            logger.info(f"Lowering client rate limit to server limit {limit}/window")
            self.max_requests = limit

        if remaining is not None and remaining <= 0 and reset_epoch is not None:
            reset_in = max(0.0, reset_epoch - wall_clock())
            self._server_reset_at = self._clock() + reset_in
            logger.warning(f"⚠️ Server quota exhausted, next request in {reset_in:.1f}s")

    def get_info(self) -> RateLimitInfo:
        """Returns the remaining quota and time until a slot frees up."""
        now = self._clock()
        self._evict_expired(now)
        remaining = max(0, self.max_requests - len(self._timestamps))
        if self._timestamps:
            reset_in = max(0.0, self._timestamps[0] + self.window_seconds - now)
        else:
            reset_in = 0.0
        return RateLimitInfo(
            requests_remaining=remaining,
            reset_in_seconds=reset_in,
            requests_per_window=self.max_requests,
        )
