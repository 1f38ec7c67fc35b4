"""Job lifecycle endpoints: start, status, stop, video."""

from typing import Optional

from fastapi import APIRouter, Body, Depends, Header, Path
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask

from repoviz.api.deps import get_client_identity, get_gateway
from repoviz.core.tracing import TracingContext
from repoviz.dtos.job import (
    JobStartRequest,
    JobStartResponse,
    JobStatusView,
    JobStopRequest,
    JobStopResponse,
)
from repoviz.services.job_gateway import JobGateway

router = APIRouter(prefix="/jobs", tags=["Jobs"])


@router.post("/start", response_model=JobStartResponse)
async def start_job(
    request: JobStartRequest,
    gateway: JobGateway = Depends(get_gateway),
    identity: str = Depends(get_client_identity),
):
    """Start a rendering job. Charged against the caller's rate limit."""
    TracingContext.set(operation="start")
    result = await gateway.start(
        repo_url=request.repo_url,
        access_token=request.access_token,
        settings=request.settings,
        client_identity=identity,
    )
    TracingContext.set(job_id=result.job_id)
    return JSONResponse(
        content=JobStartResponse(job_id=result.job_id).model_dump(),
        headers=result.rate_limit.headers(),
    )


@router.get("/{job_id}/status", response_model=JobStatusView)
async def job_status(
    job_id: str = Path(...),
    gateway: JobGateway = Depends(get_gateway),
):
    TracingContext.set(job_id=job_id, operation="status")
    view = await gateway.status(job_id)
    return JSONResponse(
        content=view.model_dump(mode="json"),
        headers={"Cache-Control": "no-store"},
    )


@router.post("/stop", response_model=JobStopResponse)
async def stop_job_by_body(
    request: Optional[JobStopRequest] = Body(default=None),
    gateway: JobGateway = Depends(get_gateway),
):
    """Stop a job addressed in the request body. 400 if no job id is given."""
    TracingContext.set(operation="stop")
    return await gateway.stop(request.job_id if request else None)


@router.api_route("/{job_id}/stop", methods=["GET", "POST"], response_model=JobStopResponse)
async def stop_job(
    job_id: str = Path(...),
    gateway: JobGateway = Depends(get_gateway),
):
    """Stop a job. Idempotent."""
    TracingContext.set(job_id=job_id, operation="stop")
    return await gateway.stop(job_id)


@router.get("/{job_id}/video")
async def job_video(
    job_id: str = Path(...),
    range_header: Optional[str] = Header(default=None, alias="Range"),
    gateway: JobGateway = Depends(get_gateway),
):
    """Stream the rendered video, with byte-range support for seeking."""
    TracingContext.set(job_id=job_id, operation="video")
    payload = await gateway.video(job_id, range_header)
    return StreamingResponse(
        payload.chunks,
        status_code=payload.status_code,
        headers=payload.headers,
        media_type=payload.media_type,
        background=BackgroundTask(payload.close),
    )
