"""
Job gateway: admission, credential protection and forwarding to the
rendering backend.

The gateway never mutates a job; the rendering backend owns job records.
Every failure leaves here as a ``GatewayError`` subclass, which the HTTP
layer translates into a typed response.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Dict, Optional

import httpx

from repoviz.dtos.job import (
    JobStatusView,
    JobStopResponse,
    RateLimitDecision,
    VisualizationSettings,
)
from repoviz.repositories.generation_counter import GenerationCounter
from repoviz.services.exceptions import (
    JobNotFoundError,
    JobValidationError,
    RangeNotSatisfiableError,
    RateLimitExceededError,
    UpstreamError,
)
from repoviz.services.rate_limiter import RateLimiter
from repoviz.services.render_client import RenderBackendClient
from repoviz.services.token_cipher import TokenCipher
from repoviz.utils.http_range import content_range, parse_range, total_from_content_range

logger = logging.getLogger(__name__)

REPO_URL_RE = re.compile(r"^(https?://)?[\da-z.-]+\.[a-z.]{2,6}(/[\w .-]*)*/?$", re.IGNORECASE)
JOB_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,128}$")

VIDEO_MEDIA_TYPE = "video/mp4"
# Content for a job id never changes once produced
VIDEO_CACHE_CONTROL = "public, max-age=31536000, immutable"


def validate_repo_url(repo_url: Optional[str]) -> str:
    value = (repo_url or "").strip()
    if not value:
        raise JobValidationError("Repository URL is required")
    if len(value) > 2048 or not REPO_URL_RE.match(value):
        raise JobValidationError(f"Invalid repository URL: {value[:200]}")
    return value


def validate_job_id(job_id: Optional[str]) -> str:
    value = (job_id or "").strip()
    if not value:
        raise JobValidationError("Job ID is required")
    if not JOB_ID_RE.match(value):
        raise JobValidationError("Invalid job ID")
    return value


@dataclass
class JobStartResult:
    job_id: str
    rate_limit: RateLimitDecision


async def _noop() -> None:
    return None


async def _single_chunk(body: bytes) -> AsyncIterator[bytes]:
    yield body


async def _relay(response: httpx.Response) -> AsyncIterator[bytes]:
    """Decoded upstream body; the response is closed however the stream ends."""
    try:
        async for chunk in response.aiter_bytes():
            yield chunk
    finally:
        await response.aclose()


def _framing_headers(response: httpx.Response) -> Dict[str, str]:
    # The relayed body is decoded, so an encoded upstream length no longer applies
    encoding = response.headers.get("content-encoding", "identity").strip().lower()
    if encoding != "identity" or "content-length" not in response.headers:
        return {}
    return {"Content-Length": response.headers["content-length"]}


@dataclass
class VideoPayload:
    """Video response ready to relay. ``close`` must run once the body is sent."""

    status_code: int
    headers: Dict[str, str]
    chunks: AsyncIterator[bytes]
    close: Callable[[], Awaitable[None]] = _noop
    media_type: str = VIDEO_MEDIA_TYPE


class JobGateway:
    """Request handlers for start, status, stop and video."""

    def __init__(
        self,
        render_client: RenderBackendClient,
        rate_limiter: RateLimiter,
        token_cipher: TokenCipher,
        generation_counter: GenerationCounter,
    ):
        self.render_client = render_client
        self.rate_limiter = rate_limiter
        self.token_cipher = token_cipher
        self.generation_counter = generation_counter

    async def start(
        self,
        repo_url: str,
        access_token: Optional[str] = None,
        settings: Optional[VisualizationSettings] = None,
        client_identity: str = "anonymous",
    ) -> JobStartResult:
        """
        Admit, protect and forward a new rendering job.

        Raises:
            JobValidationError: malformed repository URL
            RateLimitExceededError: the identity is over its quota
            UpstreamError: the rendering backend failed
        """
        repo_url = validate_repo_url(repo_url)

        decision = await self.rate_limiter.admit(client_identity)
        if not decision.allowed:
            raise RateLimitExceededError(
                "Rate limit exceeded. Please try again later.",
                decision=decision,
            )

        payload: Dict[str, object] = {
            "repo_url": repo_url,
            "settings": (settings or VisualizationSettings()).model_dump(),
        }
        if access_token:
            payload["access_token"] = self.token_cipher.encrypt(access_token)

        job_id = await self.render_client.start(payload)
        logger.info(f"Started job {job_id} for {repo_url} (private={bool(access_token)})")

        await self.generation_counter.increment()
        return JobStartResult(job_id=job_id, rate_limit=decision)

    async def status(self, job_id: str) -> JobStatusView:
        job_id = validate_job_id(job_id)
        view = await self.render_client.status(job_id)
        logger.debug(f"Job {job_id} status: step={view.step} state={view.state.value}")
        return view

    async def stop(self, job_id: Optional[str]) -> JobStopResponse:
        """Forward a cancellation. Stopping a finished or stopped job is acknowledged."""
        job_id = validate_job_id(job_id)
        await self.render_client.stop(job_id)
        logger.info(f"Stop requested for job {job_id}")
        return JobStopResponse(acknowledged=True)

    async def video(self, job_id: str, range_header: Optional[str] = None) -> VideoPayload:
        """
        Relay the rendered video, honouring a single byte range.

        When the backend answers a ranged request with the full payload, the
        range is cut here so clients can still seek.

        Raises:
            JobNotFoundError: no video for this job
            RangeNotSatisfiableError: the range lies outside the payload
            UpstreamError: the rendering backend failed
        """
        job_id = validate_job_id(job_id)
        response = await self.render_client.open_video(job_id, range_header)

        base_headers = {
            "Accept-Ranges": "bytes",
            "Cache-Control": VIDEO_CACHE_CONTROL,
            "Content-Disposition": f'inline; filename="gource_{job_id}.mp4"',
        }

        if response.status_code == 404:
            await response.aclose()
            raise JobNotFoundError(job_id)
        if response.status_code == 416:
            await response.aclose()
            size = total_from_content_range(response.headers.get("content-range")) or 0
            raise RangeNotSatisfiableError(f"Range {range_header!r} not satisfiable", size)
        if response.status_code >= 400:
            await response.aclose()
            raise UpstreamError(
                f"Rendering backend returned {response.status_code} for video",
                status_code=response.status_code,
            )

        if response.status_code == 206:
            headers = dict(base_headers)
            headers["Content-Range"] = response.headers.get("content-range", "")
            headers.update(_framing_headers(response))
            return VideoPayload(206, headers, _relay(response), response.aclose)

        if range_header:
            # Backend ignored the range: buffer and slice
            try:
                body = await response.aread()
            finally:
                await response.aclose()
            span = parse_range(range_header, len(body))
            if span is not None:
                start, end = span
                headers = dict(base_headers)
                headers["Content-Range"] = content_range(start, end, len(body))
                headers["Content-Length"] = str(end - start + 1)
                return VideoPayload(206, headers, _single_chunk(body[start : end + 1]))
            headers = dict(base_headers)
            headers["Content-Length"] = str(len(body))
            return VideoPayload(200, headers, _single_chunk(body))

        headers = dict(base_headers)
        headers.update(_framing_headers(response))
        return VideoPayload(200, headers, _relay(response), response.aclose)

    async def generation_count(self) -> int:
        return await self.generation_counter.get()

    async def aclose(self) -> None:
        await self.render_client.aclose()
