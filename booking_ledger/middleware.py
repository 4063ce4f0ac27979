"""
FastAPI middleware for request tracing and access logging.
"""

from __future__ import annotations

import re
import time
import uuid
from typing import Awaitable, Callable, Optional

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Caller-supplied ids are echoed into logs, so only accept short opaque tokens
_REQUEST_ID_PATTERN = re.compile(r"[A-Za-z0-9._-]{8,64}")

# Probe and scrape endpoints are not access-logged
_QUIET_PATHS = ("/health", "/ready", "/metrics")


def resolve_request_id(incoming: Optional[str]) -> str:
    """
    Reuse the caller's request id when it is well-formed, else mint a UUID.

    Example:
        >>> resolve_request_id("booking-widget-7f3a9c")
        'booking-widget-7f3a9c'
        >>> len(resolve_request_id("bad id!"))
        36
    """
    if incoming and _REQUEST_ID_PATTERN.fullmatch(incoming.strip()):
        return incoming.strip()
    return str(uuid.uuid4())


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Correlate every request with one id across logs and the response.

    For each incoming request the middleware:
    1. Takes the caller's X-Request-ID (a booking widget retrying a
       cancellation sends the same one) or generates a UUID
    2. Stores it in request.state.request_id and binds it into structlog's
       contextvars so every log line emitted while handling the request
       carries it
    3. Logs one request_completed event with status and latency
    4. Returns the id to the client in the X-Request-ID response header

    Example:
        >>> app.add_middleware(RequestIDMiddleware)
        >>> # Response headers will include:
        >>> # X-Request-ID: 550e8400-e29b-41d4-a716-446655440000
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id
        start = time.monotonic()

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)
        try:
            response = await call_next(request)
            if request.url.path not in _QUIET_PATHS:
                logger.info(
                    "request_completed",
                    method=request.method,
                    path=request.url.path,
                    status_code=response.status_code,
                    latency_ms=round((time.monotonic() - start) * 1000, 2),
                )
        finally:
            structlog.contextvars.unbind_contextvars("request_id")

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
