"""
API Middleware

Every request gets a request id (taken from the caller's X-Request-ID or
generated) bound into the structlog context, so that query logs emitted
while serving it carry the same id.
"""

import time
import uuid
from typing import Callable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
RESPONSE_TIME_HEADER = "X-Response-Time"

# Probes are polled constantly; keep them out of the info log
QUIET_PATHS = frozenset({"/api/v1/health/live", "/api/v1/health/ready"})


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Bind a request id and log one completion line per request"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        started = time.perf_counter()

        with structlog.contextvars.bound_contextvars(request_id=request_id):
            try:
                response = await call_next(request)
            except Exception:
                logger.exception("Request failed", method=request.method, path=request.url.path)
                raise

            elapsed_ms = (time.perf_counter() - started) * 1000
            log = logger.debug if request.url.path in QUIET_PATHS else logger.info
            log(
                "Request served",
                method=request.method,
                path=request.url.path,
                query=str(request.url.query) or None,
                status_code=response.status_code,
                duration_ms=round(elapsed_ms, 2),
            )

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers[RESPONSE_TIME_HEADER] = f"{elapsed_ms:.2f}ms"
        return response
