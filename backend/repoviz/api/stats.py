"""Display-only statistics."""

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from repoviz.api.deps import get_gateway
from repoviz.services.job_gateway import JobGateway

router = APIRouter(prefix="/stats", tags=["Stats"])


@router.get("/count", response_class=PlainTextResponse)
async def generation_count(gateway: JobGateway = Depends(get_gateway)):
    """Number of jobs ever started. Eventually consistent."""
    return PlainTextResponse(str(await gateway.generation_count()))
