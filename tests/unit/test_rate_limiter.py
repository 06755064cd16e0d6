"""
Rate Limiter Tests
==================
"""

import asyncio

import pytest

from feedlink.resolution.rate_limiter import RateLimiter, get_rate_limiter


class FakeClock:
    def __init__(self, now: float = 100.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestRateLimiter:

    def test_first_request_is_permitted(self):
        limiter = RateLimiter(min_interval=0.5, clock=FakeClock())
        assert limiter.try_acquire()
        assert limiter.wait_time() == pytest.approx(0.5)

    def test_requests_inside_interval_are_refused(self):
        limiter = RateLimiter(min_interval=0.5)
        assert limiter.try_acquire(now=10.0)
        assert not limiter.try_acquire(now=10.2)
        assert not limiter.try_acquire(now=10.49)
        assert limiter.try_acquire(now=10.5)

    def test_refused_request_does_not_move_window(self):
        limiter = RateLimiter(min_interval=1.0)
        limiter.try_acquire(now=0.0)
        limiter.try_acquire(now=0.9)
        assert limiter.wait_time(now=0.9) == pytest.approx(0.1)

    def test_zero_interval_always_permits(self):
        limiter = RateLimiter(min_interval=0.0)
        assert all(limiter.try_acquire(now=5.0) for _ in range(10))

    def test_negative_interval_rejected(self):
        with pytest.raises(ValueError):
            RateLimiter(min_interval=-1)

    def test_reset(self):
        limiter = RateLimiter(min_interval=10.0)
        limiter.try_acquire(now=0.0)
        limiter.reset()
        assert limiter.try_acquire(now=1.0)

    @pytest.mark.asyncio
    async def test_acquire_sleeps_until_permitted(self):
        clock = FakeClock()
        limiter = RateLimiter(min_interval=0.5, clock=clock)
        sleeps = []

        async def fake_sleep(delay):
            sleeps.append(delay)
            clock.now += delay

        await limiter.acquire(sleep=fake_sleep)
        await limiter.acquire(sleep=fake_sleep)

        assert sleeps == [pytest.approx(0.5)]

    @pytest.mark.asyncio
    async def test_concurrent_acquires_are_spaced(self):
        limiter = RateLimiter(min_interval=0.05)
        loop = asyncio.get_running_loop()
        times = []

        async def worker():
            await limiter.acquire()
            times.append(loop.time())

        await asyncio.gather(*(worker() for _ in range(3)))

        times.sort()
        gaps = [later - earlier for earlier, later in zip(times, times[1:])]
        assert all(gap >= 0.04 for gap in gaps)


def test_process_wide_limiter_is_shared():
    assert get_rate_limiter() is get_rate_limiter()
