"""Tests for solscalp.monitor.rate_limiter — token bucket with a fake clock."""

import pytest

from solscalp.monitor.rate_limiter import RateLimiter


class _FakeTime:
    """Clock whose sleep advances time instantly."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def clock(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)
        self.now += delay


class TestRateLimiter:
    @pytest.mark.asyncio
    async def test_first_call_is_free(self):
        fake = _FakeTime()
        limiter = RateLimiter.from_interval(0.5, clock=fake.clock, sleep=fake.sleep)
        await limiter.acquire()
        assert fake.sleeps == []

    @pytest.mark.asyncio
    async def test_spacing_between_calls(self):
        fake = _FakeTime()
        limiter = RateLimiter.from_interval(0.5, clock=fake.clock, sleep=fake.sleep)
        for _ in range(3):
            await limiter.acquire()
        assert sum(fake.sleeps) == pytest.approx(1.0)
        assert fake.now == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_elapsed_time_refills(self):
        fake = _FakeTime()
        limiter = RateLimiter.from_interval(0.5, clock=fake.clock, sleep=fake.sleep)
        await limiter.acquire()
        fake.now += 2.0
        await limiter.acquire()
        assert fake.sleeps == []

    @pytest.mark.asyncio
    async def test_burst_capacity(self):
        fake = _FakeTime()
        limiter = RateLimiter(rate=1.0, capacity=3, clock=fake.clock, sleep=fake.sleep)
        for _ in range(3):
            await limiter.acquire()
        assert fake.sleeps == []
        await limiter.acquire()
        assert sum(fake.sleeps) == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_zero_interval_disables(self):
        fake = _FakeTime()
        limiter = RateLimiter.from_interval(0, clock=fake.clock, sleep=fake.sleep)
        for _ in range(10):
            await limiter.acquire()
        assert fake.sleeps == []
