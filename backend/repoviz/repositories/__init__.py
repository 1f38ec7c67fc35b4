"""Shared-store layer for admission windows and display counters"""

from .generation_counter import (
    GenerationCounter,
    InMemoryGenerationCounter,
    RedisGenerationCounter,
)
from .rate_limit_store import (
    InMemoryRateLimitStore,
    RateLimitStore,
    RedisRateLimitStore,
    WindowSnapshot,
)

__all__ = [
    "GenerationCounter",
    "InMemoryGenerationCounter",
    "RedisGenerationCounter",
    "InMemoryRateLimitStore",
    "RateLimitStore",
    "RedisRateLimitStore",
    "WindowSnapshot",
]
