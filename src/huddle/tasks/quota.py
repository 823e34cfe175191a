"""Per-actor fixed-window quota for task neutralization.

Each ``allow(actor_id)`` call counts one invocation. The window opens on
the actor's first counted call and lasts ``window_seconds``; once ``limit``
calls have been counted inside it, further calls are denied until it
expires.

Two interchangeable implementations:
- RedisQuotaLimiter: shared across processes; SET NX EX + INCR in one
  MULTI so the counter and its expiry are created atomically
- InMemoryQuotaLimiter: single-process fallback when Redis is not configured
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from typing import Protocol

import redis.asyncio as aioredis
import structlog

logger = structlog.get_logger(__name__)

DEFAULT_LIMIT = 50
DEFAULT_WINDOW_SECONDS = 24 * 60 * 60


class QuotaLimiter(Protocol):
    limit: int

    async def allow(self, actor_id: str) -> bool: ...


class RedisQuotaLimiter:
    """Redis-backed fixed-window counter.

    Args:
        redis: Async Redis client.
        limit: Maximum allowed calls per window.
        window_seconds: Window length.
        namespace: Key prefix, so several quotas can share one Redis.
    """

    def __init__(
        self,
        redis: aioredis.Redis,
        limit: int = DEFAULT_LIMIT,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
        namespace: str = "quota:neutralize",
    ) -> None:
        self._redis = redis
        self.limit = limit
        self.window_seconds = window_seconds
        self._namespace = namespace

    def _key(self, actor_id: str) -> str:
        return f"{self._namespace}:{actor_id}"

    async def allow(self, actor_id: str) -> bool:
        key = self._key(actor_id)
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.set(key, 0, ex=self.window_seconds, nx=True)
            pipe.incr(key)
            _, count = await pipe.execute()

        allowed = int(count) <= self.limit
        if not allowed:
            logger.warning(
                "neutralize_quota_exceeded",
                actor_id=actor_id,
                count=int(count),
                limit=self.limit,
            )
        return allowed


class InMemoryQuotaLimiter:
    """Process-local fixed-window counter.

    Args:
        limit: Maximum allowed calls per window.
        window_seconds: Window length.
        clock: Monotonic seconds source (injectable for tests).
    """

    def __init__(
        self,
        limit: int = DEFAULT_LIMIT,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, tuple[float, int]] = {}
        self._lock = asyncio.Lock()

    async def allow(self, actor_id: str) -> bool:
        async with self._lock:
            now = self._clock()
            self._evict_expired(now)
            started, count = self._windows.get(actor_id, (now, 0))
            if now - started >= self.window_seconds:
                started, count = now, 0
            count += 1
            self._windows[actor_id] = (started, count)

        allowed = count <= self.limit
        if not allowed:
            logger.warning(
                "neutralize_quota_exceeded",
                actor_id=actor_id,
                count=count,
                limit=self.limit,
            )
        return allowed

    def _evict_expired(self, now: float) -> None:
        expired = [
            actor_id
            for actor_id, (started, _) in self._windows.items()
            if now - started >= self.window_seconds
        ]
        for actor_id in expired:
            del self._windows[actor_id]
