"""
HTTP client for the job gateway, used by pollers and sessions.

Maps the gateway's typed error responses back into the same exception
classes the gateway raises, so callers handle one taxonomy on both sides of
the network.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from repoviz.dtos.job import JobStatusView, RateLimitDecision, VisualizationSettings
from repoviz.services.exceptions import (
    JobNotFoundError,
    JobValidationError,
    RateLimitExceededError,
    StoreUnavailableError,
    UpstreamError,
)
from repoviz.utils.datetime import now_ts

logger = logging.getLogger(__name__)

NO_CACHE_HEADERS = {"Cache-Control": "no-cache", "Pragma": "no-cache"}


def _body(response: httpx.Response) -> Dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _raise_for_status(response: httpx.Response, job_id: Optional[str] = None) -> None:
    if response.status_code < 400:
        return

    body = _body(response)
    message = str(body.get("error") or f"Gateway returned {response.status_code}")

    if response.status_code == 404 and job_id:
        raise JobNotFoundError(job_id)
    if response.status_code in (400, 422):
        raise JobValidationError(message)
    if response.status_code == 429:
        decision = RateLimitDecision(
            allowed=False,
            limit=int(body.get("limit", response.headers.get("X-RateLimit-Limit", 0))),
            remaining=int(body.get("remaining", response.headers.get("X-RateLimit-Remaining", 0))),
            reset_at=float(body.get("reset_at", now_ts() + float(response.headers.get("Retry-After", 0)))),
        )
        raise RateLimitExceededError(message, decision=decision)
    if response.status_code == 503:
        raise StoreUnavailableError(message)
    raise UpstreamError(message, status_code=response.status_code)


class JobGatewayClient:
    """Async client for the gateway's /jobs and /stats endpoints."""

    def __init__(self, http: httpx.AsyncClient):
        self._http = http

    @classmethod
    def from_url(cls, base_url: str, timeout: float = 10.0) -> "JobGatewayClient":
        return cls(httpx.AsyncClient(base_url=base_url, timeout=timeout))

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._http.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Gateway unreachable: {exc}") from exc

    async def start(
        self,
        repo_url: str,
        access_token: Optional[str] = None,
        settings: Optional[VisualizationSettings] = None,
    ) -> str:
        payload: Dict[str, Any] = {"repo_url": repo_url}
        if access_token:
            payload["access_token"] = access_token
        if settings is not None:
            payload["settings"] = settings.model_dump()

        response = await self._request("POST", "/jobs/start", json=payload)
        _raise_for_status(response)
        job_id = _body(response).get("job_id")
        if not job_id:
            raise UpstreamError("Gateway did not return a job id")
        return str(job_id)

    async def status(self, job_id: str) -> JobStatusView:
        response = await self._request("GET", f"/jobs/{job_id}/status", headers=NO_CACHE_HEADERS)
        _raise_for_status(response, job_id)
        try:
            return JobStatusView.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise UpstreamError(f"Malformed status for job {job_id}: {exc}") from exc

    async def stop(self, job_id: str) -> bool:
        response = await self._request("POST", f"/jobs/{job_id}/stop")
        _raise_for_status(response, job_id)
        return bool(_body(response).get("acknowledged", True))

    async def count(self) -> int:
        response = await self._request("GET", "/stats/count")
        _raise_for_status(response)
        try:
            return int(response.text.strip() or 0)
        except ValueError:
            logger.warning(f"Unexpected count payload: {response.text[:50]!r}")
            return 0
