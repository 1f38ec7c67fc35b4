"""
HTTP client for the rendering backend.

Endpoints used:
- POST /start-gource            -> {"job_id": ...}
- GET  /job-status/{job_id}     -> {"step", "video_url", "error", "repo_url", "settings"}
- POST /gource/stop/{job_id}    -> cancellation signal
- GET  /video/{job_id}          -> video/mp4 bytes, Range aware
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from repoviz.dtos.job import JobStatusView
from repoviz.services.exceptions import (
    JobNotFoundError,
    JobValidationError,
    UpstreamError,
)

logger = logging.getLogger(__name__)

# Statuses a stop call may return for a job that is already finished or gone
STOP_ALREADY_DONE = {404, 409, 410}


def _error_message(response: httpx.Response, default: str) -> str:
    try:
        data = response.json()
    except ValueError:
        return default
    if isinstance(data, dict):
        return str(data.get("error") or data.get("message") or default)
    return default


class RenderBackendClient:
    """Thin async wrapper over the rendering backend's HTTP API."""

    def __init__(self, http: httpx.AsyncClient):
        self._http = http

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._http.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.error(f"Rendering backend request {method} {path} failed: {exc}")
            raise UpstreamError(f"Rendering backend unreachable: {exc}") from exc

    async def start(self, payload: Dict[str, Any]) -> str:
        response = await self._request("POST", "/start-gource", json=payload)

        if response.status_code in (400, 422):
            raise JobValidationError(_error_message(response, "Rendering backend rejected the request"))
        if response.status_code >= 400:
            raise UpstreamError(
                f"Rendering backend returned {response.status_code} on start",
                status_code=response.status_code,
            )

        try:
            job_id = response.json().get("job_id")
        except (ValueError, AttributeError) as exc:
            raise UpstreamError("Malformed start response from rendering backend") from exc
        if not job_id:
            raise UpstreamError("Rendering backend did not return a job id")
        return str(job_id)

    async def status(self, job_id: str) -> JobStatusView:
        response = await self._request("GET", f"/job-status/{job_id}")

        if response.status_code == 404:
            raise JobNotFoundError(job_id)
        if response.status_code >= 400:
            raise UpstreamError(
                f"Rendering backend returned {response.status_code} on status",
                status_code=response.status_code,
            )

        try:
            return JobStatusView.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise UpstreamError(f"Malformed status for job {job_id}: {exc}") from exc

    async def stop(self, job_id: str) -> None:
        response = await self._request("POST", f"/gource/stop/{job_id}")

        if response.status_code in STOP_ALREADY_DONE:
            logger.info(f"Stop for job {job_id} returned {response.status_code}; treating as acknowledged")
            return
        if response.status_code >= 400:
            raise UpstreamError(
                _error_message(response, f"Rendering backend returned {response.status_code} on stop"),
                status_code=response.status_code,
            )

    async def open_video(self, job_id: str, range_header: Optional[str] = None) -> httpx.Response:
        """
        Open a streaming video response. The caller owns the response and must
        ``aclose()`` it.
        """
        headers = {"Range": range_header} if range_header else {}
        request = self._http.build_request("GET", f"/video/{job_id}", headers=headers)
        try:
            return await self._http.send(request, stream=True)
        except httpx.HTTPError as exc:
            logger.error(f"Rendering backend video request for {job_id} failed: {exc}")
            raise UpstreamError(f"Rendering backend unreachable: {exc}") from exc


def build_render_client(base_url: str, timeout: float = 30.0) -> RenderBackendClient:
    http = httpx.AsyncClient(base_url=base_url, timeout=timeout)
    logger.info(f"Rendering backend client targeting {base_url}")
    return RenderBackendClient(http)
