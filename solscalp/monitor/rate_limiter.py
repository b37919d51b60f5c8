"""Token-bucket rate limiter shared by every exchange-facing step of a cycle."""

import asyncio
import time
from typing import Awaitable, Callable


class RateLimiter:
    """Async token bucket.

    ``rate`` tokens are added per second up to ``capacity``; each
    ``acquire()`` takes one token, waiting for a refill when the bucket is
    empty.  A non-positive rate disables limiting.

    Args:
        rate: Tokens per second.
        capacity: Burst size.  The bucket starts full.
        clock: Monotonic clock, injectable for tests.
        sleep: Async sleep, injectable for tests.
    """

    def __init__(
        self,
        rate: float,
        capacity: int = 1,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._rate = rate
        self._capacity = max(1, capacity)
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(self._capacity)
        self._updated = clock()
        self._lock = asyncio.Lock()

    @classmethod
    def from_interval(cls, interval_seconds: float, **kwargs) -> "RateLimiter":
        """One call per *interval_seconds*, no burst."""
        rate = 1.0 / interval_seconds if interval_seconds > 0 else 0.0
        return cls(rate=rate, capacity=1, **kwargs)

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated)
        self._updated = now
        self._tokens = min(self._capacity, self._tokens + elapsed * self._rate)

    async def acquire(self) -> None:
        if self._rate <= 0:
            return
        async with self._lock:
            while True:
                self._refill()
                if self._tokens >= 1:
                    self._tokens -= 1
                    return
                await self._sleep((1 - self._tokens) / self._rate)
