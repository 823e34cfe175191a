"""Tests for the per-actor fixed-window quota limiters."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

from src.huddle.tasks.quota import InMemoryQuotaLimiter, RedisQuotaLimiter


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestInMemoryQuotaLimiter:

    async def test_allows_up_to_limit(self):
        limiter = InMemoryQuotaLimiter(limit=3, window_seconds=60)

        results = [await limiter.allow("user-1") for _ in range(4)]

        assert results == [True, True, True, False]

    async def test_window_resets(self):
        clock = FakeClock()
        limiter = InMemoryQuotaLimiter(limit=1, window_seconds=60, clock=clock)

        assert await limiter.allow("user-1") is True
        assert await limiter.allow("user-1") is False

        clock.now += 60
        assert await limiter.allow("user-1") is True

    async def test_window_anchored_on_first_call(self):
        clock = FakeClock()
        limiter = InMemoryQuotaLimiter(limit=2, window_seconds=60, clock=clock)

        await limiter.allow("user-1")
        clock.now += 59
        await limiter.allow("user-1")

        assert await limiter.allow("user-1") is False
        clock.now += 1
        assert await limiter.allow("user-1") is True

    async def test_actors_are_isolated(self):
        limiter = InMemoryQuotaLimiter(limit=1, window_seconds=60)

        assert await limiter.allow("user-1") is True
        assert await limiter.allow("user-1") is False
        assert await limiter.allow("user-2") is True

    async def test_expired_windows_are_evicted(self):
        clock = FakeClock()
        limiter = InMemoryQuotaLimiter(limit=5, window_seconds=60, clock=clock)

        for actor in ("user-1", "user-2", "user-3"):
            await limiter.allow(actor)
        clock.now += 60
        await limiter.allow("user-4")

        assert list(limiter._windows) == ["user-4"]


def _redis_with_count(count: int) -> tuple[MagicMock, MagicMock]:
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=[True, count])
    pipe.__aenter__ = AsyncMock(return_value=pipe)
    pipe.__aexit__ = AsyncMock(return_value=False)
    redis = MagicMock()
    redis.pipeline = MagicMock(return_value=pipe)
    return redis, pipe


class TestRedisQuotaLimiter:

    async def test_counter_created_with_expiry(self):
        redis, pipe = _redis_with_count(1)
        limiter = RedisQuotaLimiter(redis, limit=50, window_seconds=86400)

        assert await limiter.allow("user-1") is True

        redis.pipeline.assert_called_once_with(transaction=True)
        pipe.set.assert_called_once_with("quota:neutralize:user-1", 0, ex=86400, nx=True)
        pipe.incr.assert_called_once_with("quota:neutralize:user-1")

    async def test_denies_past_limit(self):
        redis, _ = _redis_with_count(51)
        limiter = RedisQuotaLimiter(redis, limit=50)

        assert await limiter.allow("user-1") is False

    async def test_allows_at_limit(self):
        redis, _ = _redis_with_count(50)
        limiter = RedisQuotaLimiter(redis, limit=50)

        assert await limiter.allow("user-1") is True

    async def test_namespace_prefixes_key(self):
        redis, pipe = _redis_with_count(1)
        limiter = RedisQuotaLimiter(redis, namespace="quota:test")

        await limiter.allow("abc")

        pipe.incr.assert_called_once_with("quota:test:abc")
