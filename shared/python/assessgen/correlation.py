"""Per-request context: correlation id, route and access logging."""

from __future__ import annotations

from contextvars import ContextVar
from dataclasses import dataclass
import logging
import time
from uuid import uuid4

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

CORRELATION_HEADER = "x-correlation-id"

logger = logging.getLogger("assessgen.access")


@dataclass(frozen=True, slots=True)
class RequestContext:
    correlation_id: str
    method: str = ""
    path: str = ""


request_context_var: ContextVar[RequestContext | None] = ContextVar("request_context", default=None)


def current_request() -> RequestContext | None:
    return request_context_var.get()


def get_correlation_id() -> str:
    context = request_context_var.get()
    return context.correlation_id if context is not None else ""


def correlation_headers() -> dict[str, str]:
    """Headers that carry the current correlation id to downstream services."""

    correlation_id = get_correlation_id()
    return {CORRELATION_HEADER: correlation_id} if correlation_id else {}


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Bind a request context, echo the correlation id and log one access line."""

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        context = RequestContext(
            correlation_id=request.headers.get(CORRELATION_HEADER) or uuid4().hex,
            method=request.method,
            path=request.url.path,
        )
        token = request_context_var.set(context)
        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers[CORRELATION_HEADER] = context.correlation_id
            return response
        finally:
            logger.info(
                "request completed",
                extra={
                    "status": status_code,
                    "duration_ms": round((time.perf_counter() - started) * 1000, 1),
                },
            )
            request_context_var.reset(token)
