"""Per-request tracing context and client identity."""

import logging
from typing import Awaitable, Callable

from fastapi import Request, Response

from repoviz.core.tracing import TracingContext

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def client_identity(
    request: Request,
    trust_forwarded_for: bool = False,
    trusted_proxy_count: int = 1,
) -> str:
    """
    Identity used for admission control.

    By default this is the socket peer address. Behind trusted proxies, each
    proxy appends the address it saw to ``X-Forwarded-For``; the caller is
    the entry ``trusted_proxy_count`` hops from the right. Entries further
    left are written by the caller and never used.
    """
    if trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for", "")
        hops = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
        if hops:
            return hops[max(0, len(hops) - max(1, trusted_proxy_count))]
    if request.client and request.client.host:
        return request.client.host
    return "anonymous"


async def tracing_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    TracingContext.clear()
    correlation_id = request.headers.get(REQUEST_ID_HEADER) or TracingContext.get_or_create_correlation_id()
    TracingContext.set(correlation_id=correlation_id)
    try:
        response = await call_next(request)
    finally:
        TracingContext.clear()
    response.headers[REQUEST_ID_HEADER] = correlation_id
    return response
