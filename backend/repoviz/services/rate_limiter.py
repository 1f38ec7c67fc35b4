"""
Sliding-window admission control for job starts.

Every call to ``admit`` is charged as an attempt, whether or not the job
start later succeeds. An identity is allowed while the number of attempts in
the trailing window, including the current one, does not exceed the quota.
"""

from __future__ import annotations

import logging
from typing import Callable

from repoviz.dtos.job import RateLimitDecision
from repoviz.repositories.rate_limit_store import RateLimitStore
from repoviz.services.exceptions import StoreUnavailableError
from repoviz.utils.datetime import now_ts

logger = logging.getLogger(__name__)


def mask_identity(identity: str) -> str:
    """Mask identity to show only last 4 characters."""
    if not identity or len(identity) <= 4:
        return "****"
    return f"****{identity[-4:]}"


class RateLimiter:
    """Per-identity sliding-window limiter over a shared store."""

    def __init__(
        self,
        store: RateLimitStore,
        quota: int = 20,
        window_seconds: float = 3600,
        fail_open: bool = True,
        clock: Callable[[], float] = now_ts,
    ):
        if quota < 1:
            raise ValueError("quota must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self._store = store
        self.quota = quota
        self.window_seconds = window_seconds
        self.fail_open = fail_open
        self._clock = clock

    async def admit(self, identity: str) -> RateLimitDecision:
        """
        Charge one attempt to ``identity`` and decide whether it is admitted.

        Raises:
            StoreUnavailableError: if the store is down and the policy is fail-closed
        """
        now = self._clock()

        try:
            snapshot = await self._store.record_attempt(identity, now, self.window_seconds)
        except StoreUnavailableError as exc:
            if not self.fail_open:
                logger.error(f"Rate limit store unavailable, rejecting {mask_identity(identity)}: {exc}")
                raise
            logger.warning(f"Rate limit store unavailable, admitting {mask_identity(identity)}: {exc}")
            return RateLimitDecision(
                allowed=True,
                limit=self.quota,
                remaining=self.quota,
                reset_at=now + self.window_seconds,
            )

        allowed = snapshot.count <= self.quota
        decision = RateLimitDecision(
            allowed=allowed,
            limit=self.quota,
            remaining=max(0, self.quota - snapshot.count),
            reset_at=snapshot.oldest + self.window_seconds,
        )
        if not allowed:
            logger.info(
                f"Rate limit exceeded for {mask_identity(identity)} "
                f"({snapshot.count}/{self.quota} in {self.window_seconds}s)"
            )
        return decision
