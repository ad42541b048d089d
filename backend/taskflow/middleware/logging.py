"""Per-request structured logging."""

import time
from typing import Callable

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from taskflow.middleware.request_id import get_request_id

logger = structlog.get_logger()

# Probes hit these every few seconds
QUIET_PATH_SUFFIXES = ("/health", "/health/ready")


class LoggingMiddleware(BaseHTTPMiddleware):
    """Bind request context for every log line and log each request's lifecycle."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        path = request.url.path

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=get_request_id(request) or "unknown",
            method=request.method,
            path=path,
            client_ip=request.client.host if request.client else "unknown",
        )

        quiet = path.endswith(QUIET_PATH_SUFFIXES)
        (logger.debug if quiet else logger.info)("request_started")

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.exception(
                "request_failed",
                error=str(exc),
                duration_ms=_elapsed_ms(started),
            )
            raise

        duration_ms = _elapsed_ms(started)
        if quiet:
            log = logger.debug
        elif response.status_code >= 500:
            log = logger.error
        else:
            log = logger.info
        log("request_completed", status_code=response.status_code, duration_ms=duration_ms)

        response.headers["X-Process-Time"] = str(duration_ms)
        return response


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)
