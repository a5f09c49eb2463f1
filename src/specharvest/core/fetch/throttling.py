"""
Inter-request throttling for the direct transport.

The delay is measured from the end of the previous request to the start
of the next one, independent of which item or brand is being fetched.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable


@dataclass
class ThrottleStats:
    """Counters exposed for the run report."""

    requests: int = 0
    waits: int = 0
    waited_seconds: float = 0.0


class RequestThrottle:
    """Enforces a minimum gap between consecutive requests.

    Usage:
        async with throttle.slot():
            await make_request(url)
    """

    def __init__(
        self,
        min_delay_ms: int = 500,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize throttle.

        Args:
            min_delay_ms: Minimum gap between requests in milliseconds
            clock: Monotonic clock (injectable for tests)
            sleep: Async sleep function (injectable for tests)
        """
        if min_delay_ms < 0:
            raise ValueError("min_delay_ms must be >= 0")
        self.min_delay = min_delay_ms / 1000.0
        self._clock = clock
        self._sleep = sleep
        self._last_finished: float | None = None
        self.stats = ThrottleStats()

    def remaining(self) -> float:
        """Seconds still to wait before the next request may start."""
        if self._last_finished is None:
            return 0.0
        elapsed = self._clock() - self._last_finished
        return max(0.0, self.min_delay - elapsed)

    async def acquire(self) -> None:
        """Block until the minimum gap since the last request has passed."""
        wait_time = self.remaining()
        if wait_time > 0:
            self.stats.waits += 1
            self.stats.waited_seconds += wait_time
            await self._sleep(wait_time)
        self.stats.requests += 1

    def release(self) -> None:
        """Record the end of a request; the next gap is measured from here."""
        self._last_finished = self._clock()

    def slot(self) -> "_ThrottleContext":
        """Async context manager wrapping acquire/release."""
        return _ThrottleContext(self)


class _ThrottleContext:
    """Async context manager for throttled requests."""

    def __init__(self, throttle: RequestThrottle):
        self.throttle = throttle

    async def __aenter__(self) -> None:
        await self.throttle.acquire()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.throttle.release()
