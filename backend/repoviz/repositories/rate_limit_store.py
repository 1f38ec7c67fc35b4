"""
Sliding-window attempt stores.

Each store implements one atomic step per identity: evict attempts older than
the window, append the current attempt, then report the count and the oldest
surviving timestamp.

Redis Keys:
- {prefix}:{identity} - Sorted set of attempt ids scored by epoch seconds
"""

from __future__ import annotations

import asyncio
import logging
import math
import uuid
from abc import ABC, abstractmethod
from collections import defaultdict, deque
from typing import Deque, Dict, NamedTuple

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from repoviz.services.exceptions import StoreUnavailableError

logger = logging.getLogger(__name__)


class WindowSnapshot(NamedTuple):
    count: int
    oldest: float


class RateLimitStore(ABC):
    """Per-identity ordered timestamp store."""

    @abstractmethod
    async def record_attempt(self, identity: str, now: float, window_seconds: float) -> WindowSnapshot:
        """Evict, append and count for one identity, atomically."""

    @abstractmethod
    async def ping(self) -> bool:
        """Return True if the store answers."""


class RedisRateLimitStore(RateLimitStore):
    """Redis sorted-set store. MULTI/EXEC serializes the steps per key."""

    def __init__(self, client: aioredis.Redis, key_prefix: str = "ratelimit:start"):
        self._redis = client
        self._prefix = key_prefix

    def _key(self, identity: str) -> str:
        return f"{self._prefix}:{identity}"

    async def record_attempt(self, identity: str, now: float, window_seconds: float) -> WindowSnapshot:
        key = self._key(identity)
        cutoff = now - window_seconds
        # Unique member so two attempts in the same instant are both counted
        member = f"{now:.6f}:{uuid.uuid4().hex}"

        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.zremrangebyscore(key, "-inf", f"({cutoff}")
                pipe.zadd(key, {member: now})
                pipe.zcard(key)
                pipe.zrange(key, 0, 0, withscores=True)
                pipe.expire(key, int(math.ceil(window_seconds)))
                _, _, count, oldest, _ = await pipe.execute()
        except (RedisError, OSError) as exc:
            raise StoreUnavailableError(f"Rate limit store unavailable: {exc}") from exc

        oldest_ts = float(oldest[0][1]) if oldest else now
        return WindowSnapshot(count=int(count), oldest=oldest_ts)

    async def ping(self) -> bool:
        try:
            return bool(await self._redis.ping())
        except (RedisError, OSError) as exc:
            logger.warning(f"Rate limit store ping failed: {exc}")
            return False


class InMemoryRateLimitStore(RateLimitStore):
    """Single-process store for development and tests."""

    def __init__(self) -> None:
        self._windows: Dict[str, Deque[float]] = defaultdict(deque)
        self._lock = asyncio.Lock()

    async def record_attempt(self, identity: str, now: float, window_seconds: float) -> WindowSnapshot:
        cutoff = now - window_seconds
        async with self._lock:
            window = self._windows[identity]
            while window and window[0] < cutoff:
                window.popleft()
            window.append(now)
            return WindowSnapshot(count=len(window), oldest=window[0])

    async def ping(self) -> bool:
        return True
