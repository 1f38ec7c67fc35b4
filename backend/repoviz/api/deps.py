"""FastAPI dependencies."""

from fastapi import Depends, Request

from repoviz.config import Settings, settings
from repoviz.core.tracing import TracingContext
from repoviz.middleware.request_context import client_identity
from repoviz.repositories.rate_limit_store import RateLimitStore
from repoviz.services.job_gateway import JobGateway
from repoviz.services.rate_limiter import mask_identity


def get_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", settings)


def get_gateway(request: Request) -> JobGateway:
    return request.app.state.gateway


def get_rate_limit_store(request: Request) -> RateLimitStore:
    return request.app.state.rate_limit_store


def get_client_identity(request: Request, app_settings: Settings = Depends(get_settings)) -> str:
    identity = client_identity(
        request,
        trust_forwarded_for=app_settings.TRUST_FORWARDED_FOR,
        trusted_proxy_count=app_settings.TRUSTED_PROXY_COUNT,
    )
    TracingContext.set(client_id=mask_identity(identity))
    return identity
