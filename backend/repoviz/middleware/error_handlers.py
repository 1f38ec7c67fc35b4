"""
Exception handlers translating gateway errors into typed JSON responses.

Body shape: {"error": <message>, "code": <ErrorCode>} plus rate limit fields
on 429.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from repoviz.middleware.error_codes import get_error_code
from repoviz.services.exceptions import (
    ConfigurationError,
    GatewayError,
    JobNotFoundError,
    JobValidationError,
    RangeNotSatisfiableError,
    RateLimitExceededError,
    StoreUnavailableError,
    UpstreamError,
)

logger = logging.getLogger(__name__)

ERROR_STATUS: Dict[type, int] = {
    JobValidationError: status.HTTP_400_BAD_REQUEST,
    JobNotFoundError: status.HTTP_404_NOT_FOUND,
    RangeNotSatisfiableError: status.HTTP_416_RANGE_NOT_SATISFIABLE,
    RateLimitExceededError: status.HTTP_429_TOO_MANY_REQUESTS,
    ConfigurationError: status.HTTP_500_INTERNAL_SERVER_ERROR,
    UpstreamError: status.HTTP_502_BAD_GATEWAY,
    StoreUnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def error_response(
    status_code: int,
    message: str,
    extra: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    body: Dict[str, Any] = {"error": message, "code": get_error_code(status_code).value}
    if extra:
        body.update(extra)
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def status_for(exc: GatewayError) -> int:
    for exc_type in type(exc).__mro__:
        if exc_type in ERROR_STATUS:
            return ERROR_STATUS[exc_type]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    status_code = status_for(exc)

    if isinstance(exc, RateLimitExceededError):
        decision = exc.decision
        headers = decision.headers()
        headers["Retry-After"] = str(exc.retry_after)
        return error_response(
            status_code,
            str(exc),
            extra={
                "limit": decision.limit,
                "remaining": decision.remaining,
                "reset_at": decision.reset_at,
            },
            headers=headers,
        )

    if isinstance(exc, RangeNotSatisfiableError):
        return error_response(
            status_code,
            str(exc),
            headers={"Content-Range": f"bytes */{exc.size}", "Accept-Ranges": "bytes"},
        )

    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
        # Upstream details stay in the logs
        message = "Rendering backend unavailable" if isinstance(exc, UpstreamError) else "Service unavailable"
        if isinstance(exc, ConfigurationError):
            message = "Server misconfigured"
        return error_response(status_code, message)

    return error_response(status_code, str(exc))


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Invalid request body",
        extra={"details": exc.errors()},
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(GatewayError, gateway_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
