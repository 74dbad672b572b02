"""
Tests for the sliding window rate limiter and the response cache.
"""

import pytest

from care_sync.integrations.inchurch.cache import ResponseCache
from care_sync.integrations.inchurch.rate_limiter import SlidingWindowRateLimiter


class FakeClock:
    """Monotonic clock advanced by the fake sleep."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.mark.asyncio
class TestSlidingWindowRateLimiter:
    """Tests for SlidingWindowRateLimiter."""

    async def test_window_capacity_is_free(self):
        clock = FakeClock()
        limiter = SlidingWindowRateLimiter(max_requests=3, window_seconds=60, clock=clock, sleep=clock.sleep)

        waits = [await limiter.acquire() for _ in range(3)]

        assert waits == [0.0, 0.0, 0.0]
        assert clock.sleeps == []

    async def test_next_request_waits_for_oldest_to_expire(self):
        """N+1 requests at t=0 wait the full window; N+2 does not wait again."""
        clock = FakeClock()
        limiter = SlidingWindowRateLimiter(max_requests=3, window_seconds=60, clock=clock, sleep=clock.sleep)

        for _ in range(3):
            await limiter.acquire()
        fourth = await limiter.acquire()
        fifth = await limiter.acquire()

        assert fourth == pytest.approx(60.0)
        assert fifth == 0.0
        assert clock.now == pytest.approx(60.0)

    async def test_spread_requests_wait_only_remaining_time(self):
        clock = FakeClock()
        limiter = SlidingWindowRateLimiter(max_requests=2, window_seconds=10, clock=clock, sleep=clock.sleep)

        await limiter.acquire()
        clock.now = 4.0
        await limiter.acquire()
        clock.now = 5.0
        waited = await limiter.acquire()

        assert waited == pytest.approx(5.0)

    async def test_exhausted_server_quota_blocks_until_reset(self):
        clock = FakeClock()
        limiter = SlidingWindowRateLimiter(max_requests=100, window_seconds=60, clock=clock, sleep=clock.sleep)

        limiter.observe_headers(remaining=0, reset_epoch=1_000_030, limit=None, wall_clock=lambda: 1_000_000)
        waited = await limiter.acquire()

        assert waited == pytest.approx(30.0)


class TestRateLimiterState:
    """Tests for rate limiter configuration and snapshots."""

    def test_get_info(self):
        clock = FakeClock()
        limiter = SlidingWindowRateLimiter(max_requests=5, window_seconds=60, clock=clock, sleep=clock.sleep)

        info = limiter.get_info()

        assert info.requests_remaining == 5
        assert info.reset_in_seconds == 0.0
        assert info.requests_per_window == 5

    def test_rejects_invalid_configuration(self):
        with pytest.raises(ValueError):
            SlidingWindowRateLimiter(max_requests=0)
        with pytest.raises(ValueError):
            SlidingWindowRateLimiter(window_seconds=0)


class TestResponseCache:
    """Tests for ResponseCache."""

    def test_entries_expire_after_ttl(self):
        clock = FakeClock()
        cache = ResponseCache(ttl_seconds=300, max_keys=10, clock=clock)

        cache.set("GET:/members", "page")
        clock.now = 299
        assert cache.get("GET:/members") == "page"
        clock.now = 300
        assert cache.get("GET:/members") is None

    def test_oldest_entry_is_evicted_at_capacity(self):
        clock = FakeClock()
        cache = ResponseCache(ttl_seconds=300, max_keys=2, clock=clock)

        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)

        assert cache.get("a") is None
        assert cache.get("b") == 2
        assert cache.get("c") == 3
        assert len(cache) == 2

    def test_key_includes_method_endpoint_and_body(self):
        assert ResponseCache.make_key("get", "/members", None) == "GET:/members:{}"
        assert ResponseCache.make_key("PUT", "/members/1", {"b": 1, "a": 2}) == 'PUT:/members/1:{"a": 2, "b": 1}'

    def test_stats_count_hits_and_misses(self):
        cache = ResponseCache(clock=FakeClock())

        cache.get("missing")
        cache.set("k", "v")
        cache.get("k")
        stats = cache.stats()

        assert (stats.keys, stats.hits, stats.misses) == (1, 1, 1)
