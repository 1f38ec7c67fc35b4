"""Custom exceptions for the job gateway."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from repoviz.dtos.job import RateLimitDecision


class GatewayError(Exception):
    """Base exception for job gateway failures."""


class ConfigurationError(GatewayError):
    """Raised when required configuration is missing."""


class JobValidationError(GatewayError):
    """Raised for malformed input, before any network call is made."""


class RateLimitExceededError(GatewayError):
    """Raised when admission control denies a job start."""

    def __init__(self, message: str, decision: "RateLimitDecision"):
        super().__init__(message)
        self.decision = decision

    @property
    def retry_after(self) -> int:
        return self.decision.retry_after


class UpstreamError(GatewayError):
    """Raised when the rendering backend is unreachable or returns a server error."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class JobNotFoundError(GatewayError):
    """Raised when a job id is unknown or has expired on the rendering backend."""

    def __init__(self, job_id: str):
        super().__init__(f"Job {job_id} not found")
        self.job_id = job_id


class StoreUnavailableError(GatewayError):
    """Raised when the shared rate-limit store cannot be reached."""


class RangeNotSatisfiableError(GatewayError):
    """Raised when a requested byte range lies outside the video payload."""

    def __init__(self, message: str, size: int):
        super().__init__(message)
        self.size = size
