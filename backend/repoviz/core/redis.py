"""
Redis connection helpers.

The shared store is connected once at startup and handed to the stores that
need it; nothing reaches for a module-level client.
"""

import logging

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from repoviz.services.exceptions import StoreUnavailableError

logger = logging.getLogger(__name__)


def _redact(url: str) -> str:
    if "@" not in url:
        return url
    scheme, _, rest = url.partition("://")
    return f"{scheme}://***@{rest.split('@', 1)[1]}"


async def connect_redis(url: str) -> aioredis.Redis:
    """
    Open the shared store and verify it answers.

    Raises:
        StoreUnavailableError: if the server cannot be reached
    """
    client = aioredis.from_url(url, decode_responses=True)
    try:
        await client.ping()
    except (RedisError, OSError) as exc:
        await client.aclose()
        raise StoreUnavailableError(f"Redis unreachable at {_redact(url)}: {exc}") from exc

    logger.info(f"Connected to Redis at {_redact(url)}")
    return client
