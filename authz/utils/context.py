"""
Request Context Utilities.

Carries request-scoped ids and the caller IP so that:
- log lines can be correlated (structlog processor below)
- audit rows record the request they belong to
- policy conditions (ip_range) can see the client address

Usage:
    # In app factory
    app.add_middleware(RequestContextMiddleware)

    # Anywhere in the request lifecycle
    from authz.utils.context import get_request_context

    ctx = get_request_context()
    if ctx:
        ctx.client_ip
"""

from __future__ import annotations

import time
import uuid
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any, Callable, Optional

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.get_logger(__name__)


# ============================================================
# CONTEXT VARIABLES
# ============================================================

# Request-scoped context using contextvars (async-safe)
_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)
_request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
_request_context: ContextVar[Optional["RequestContext"]] = ContextVar("request_context", default=None)


# ============================================================
# REQUEST CONTEXT
# ============================================================

@dataclass
class RequestContext:
    """
    Context for the current request.

    user_id is filled in once the host application identified the caller.
    """
    request_id: str
    correlation_id: str

    method: str = ""
    path: str = ""
    client_ip: Optional[str] = None

    user_id: Optional[str] = None


# ============================================================
# CONTEXT ACCESSORS
# ============================================================

def get_correlation_id() -> Optional[str]:
    """Get the current correlation ID (None outside a request)."""
    return _correlation_id.get()


def get_request_id() -> Optional[str]:
    """Get the current request ID."""
    return _request_id.get()


def get_request_context() -> Optional[RequestContext]:
    """Get the full request context."""
    return _request_context.get()


def set_context_user(user_id: str) -> None:
    """Record the authenticated caller on the current request context."""
    ctx = _request_context.get()
    if ctx:
        ctx.user_id = user_id


def client_ip_from_request(request: Request) -> Optional[str]:
    """
    Get the caller IP from the connection peer.

    X-Forwarded-For is not read here. For the proxies listed in
    AUTHZ_TRUSTED_PROXIES, ProxyHeadersMiddleware rewrites the peer from it.
    """
    return request.client.host if request.client else None


# ============================================================
# MIDDLEWARE
# ============================================================

class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Middleware that creates request context for each request.

    Sets up:
    - request_id: Unique ID for this request
    - correlation_id: From X-Correlation-ID header or generated
    - client_ip: The connection peer (rewritten by ProxyHeadersMiddleware
      for trusted proxies)

    Usage:
        app.add_middleware(RequestContextMiddleware)
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = str(uuid.uuid4())
        correlation_id = (
            request.headers.get("X-Correlation-ID") or
            request.headers.get("X-Request-ID") or
            str(uuid.uuid4())
        )

        ctx = RequestContext(
            request_id=request_id,
            correlation_id=correlation_id,
            method=request.method,
            path=request.url.path,
            client_ip=client_ip_from_request(request),
        )

        tokens = (
            _correlation_id.set(correlation_id),
            _request_id.set(request_id),
            _request_context.set(ctx),
        )

        request.state.request_id = request_id
        request.state.correlation_id = correlation_id
        request.state.context = ctx
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
            logger.info(
                "Request completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
            )
        finally:
            _correlation_id.reset(tokens[0])
            _request_id.reset(tokens[1])
            _request_context.reset(tokens[2])

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Correlation-ID"] = correlation_id

        return response


# ============================================================
# STRUCTLOG PROCESSOR
# ============================================================

def add_request_context(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """
    Structlog processor that adds request context to all logs.

    Explicit keys on the log call win over context values.
    """
    correlation_id = get_correlation_id()
    request_id = get_request_id()

    if correlation_id:
        event_dict.setdefault("correlation_id", correlation_id)
    if request_id:
        event_dict.setdefault("request_id", request_id)

    ctx = get_request_context()
    if ctx:
        if ctx.client_ip:
            event_dict.setdefault("client_ip", ctx.client_ip)
        if ctx.user_id:
            event_dict.setdefault("caller_id", ctx.user_id)

    return event_dict


def bind_worker_context(task_id: str) -> None:
    """
    Bind a correlation id for a background task run.

    Usage:
        bind_worker_context(self.request.id)
        logger.info("Sweep started")  # carries correlation_id
    """
    _correlation_id.set(task_id)
    structlog.contextvars.bind_contextvars(task_id=task_id)
