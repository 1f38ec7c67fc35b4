"""
Health check endpoints
"""

from fastapi import APIRouter, Depends

from repoviz.api.deps import get_rate_limit_store
from repoviz.repositories.rate_limit_store import RateLimitStore
from repoviz.utils.datetime import utc_now

router = APIRouter()


@router.get("/health")
async def health_check():
    """Simple API health check."""
    return {
        "status": "healthy",
        "timestamp": utc_now().isoformat(),
        "service": "repoviz job gateway",
    }


@router.get("/health/store")
async def store_health(store: RateLimitStore = Depends(get_rate_limit_store)):
    """Shared rate-limit store health check."""
    if not await store.ping():
        return {
            "status": "unhealthy",
            "store": "disconnected",
            "timestamp": utc_now().isoformat(),
        }

    return {
        "status": "healthy",
        "store": "connected",
        "timestamp": utc_now().isoformat(),
    }
