"""
Tracing Context - request-scoped context for log correlation.

Uses Python's contextvars so each request handler (and each poller task)
sees its own values.

Usage:
    # Set context at the start of a request
    TracingContext.set(correlation_id="abc-123", operation="start")

    # Get context (automatically added to JSONFormatter logs)
    ctx = TracingContext.get()

    # Clear context at the end
    TracingContext.clear()
"""

import uuid
from contextvars import ContextVar
from typing import Dict

_correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")
_job_id: ContextVar[str] = ContextVar("job_id", default="")
_client_id: ContextVar[str] = ContextVar("client_id", default="")
_operation: ContextVar[str] = ContextVar("operation", default="")


class TracingContext:
    """Context-local tracing fields."""

    @staticmethod
    def set(
        correlation_id: str = "",
        job_id: str = "",
        client_id: str = "",
        operation: str = "",
    ) -> None:
        """Set tracing context for current execution."""
        if correlation_id:
            _correlation_id.set(correlation_id)
        if job_id:
            _job_id.set(job_id)
        if client_id:
            _client_id.set(client_id)
        if operation:
            _operation.set(operation)

    @staticmethod
    def get() -> Dict[str, str]:
        """Get current tracing context as dict."""
        return {
            "correlation_id": _correlation_id.get(),
            "job_id": _job_id.get(),
            "client_id": _client_id.get(),
            "operation": _operation.get(),
        }

    @staticmethod
    def get_or_create_correlation_id() -> str:
        """Get current correlation ID or create a new one."""
        corr_id = _correlation_id.get()
        if not corr_id:
            corr_id = str(uuid.uuid4())
            _correlation_id.set(corr_id)
        return corr_id

    @staticmethod
    def clear() -> None:
        """Clear all tracing context."""
        _correlation_id.set("")
        _job_id.set("")
        _client_id.set("")
        _operation.set("")
