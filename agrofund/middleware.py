"""
Request middleware: trace IDs and timing.

- ``RequestIDMiddleware`` reuses or generates an ``X-Request-ID`` and exposes
  it to log records through a context variable, so every log line written
  while serving a request carries the same ID.
- ``RequestTimingMiddleware`` adds ``X-Process-Time`` and logs slow requests.
"""

import logging
import time
import uuid
from contextvars import ContextVar
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
SLOW_REQUEST_MS = 500

request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


class RequestIDLogFilter(logging.Filter):
    """Copies the current request ID onto each log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "request_id", None):
            record.request_id = request_id_ctx.get()
        return True


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Injects a request ID into every request/response cycle.

    An incoming ``X-Request-ID`` (set by a gateway) is honoured; otherwise a
    UUID4 is generated.  The ID is stored on ``request.state.request_id`` and
    echoed back in the response header.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        token = request_id_ctx.set(request_id)
        try:
            response = await call_next(request)
        finally:
            request_id_ctx.reset(token)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class RequestTimingMiddleware(BaseHTTPMiddleware):
    """Adds ``X-Process-Time`` to every response; warns on slow requests."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000

        response.headers["X-Process-Time"] = f"{elapsed_ms:.2f}ms"

        extra = {
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "elapsed_ms": round(elapsed_ms, 2),
        }
        if elapsed_ms > SLOW_REQUEST_MS:
            logger.warning(
                "%s %s completed in %.2fms (SLOW)",
                request.method,
                request.url.path,
                elapsed_ms,
                extra=extra,
            )
        else:
            logger.debug(
                "%s %s completed in %.2fms",
                request.method,
                request.url.path,
                elapsed_ms,
                extra=extra,
            )

        return response
