"""Display-only counter of jobs ever started."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from repoviz.services.exceptions import StoreUnavailableError

logger = logging.getLogger(__name__)


class GenerationCounter(ABC):
    @abstractmethod
    async def increment(self) -> Optional[int]:
        """Bump the counter. Returns the new value, or None if it could not be stored."""

    @abstractmethod
    async def get(self) -> int:
        """Current value; 0 if never set."""


class RedisGenerationCounter(GenerationCounter):
    def __init__(self, client: aioredis.Redis, key: str = "generations"):
        self._redis = client
        self._key = key

    async def increment(self) -> Optional[int]:
        try:
            return int(await self._redis.incr(self._key))
        except (RedisError, OSError) as exc:
            # Display-only; a lost increment must not fail a job start
            logger.warning(f"Failed to increment generation counter: {exc}")
            return None

    async def get(self) -> int:
        try:
            value = await self._redis.get(self._key)
        except (RedisError, OSError) as exc:
            raise StoreUnavailableError(f"Counter store unavailable: {exc}") from exc
        return int(value) if value is not None else 0


class InMemoryGenerationCounter(GenerationCounter):
    def __init__(self, initial: int = 0):
        self._value = initial

    async def increment(self) -> Optional[int]:
        self._value += 1
        return self._value

    async def get(self) -> int:
        return self._value
