"""Map domain exceptions to JSON error responses."""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import ORJSONResponse

from taskflow.exceptions import TaskFlowError
from taskflow.middleware.request_id import get_request_id

logger = structlog.get_logger()


def _error_body(request: Request, detail: str, code: str) -> dict[str, str | None]:
    return {
        "detail": detail,
        "code": code,
        "request_id": get_request_id(request),
    }


async def taskflow_error_handler(request: Request, exc: TaskFlowError) -> ORJSONResponse:
    """Render a TaskFlowError with the status code its class declares."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "domain_error",
        error_type=type(exc).__name__,
        code=exc.code,
        status_code=exc.status_code,
        detail=exc.message,
    )
    return ORJSONResponse(
        status_code=exc.status_code,
        content=_error_body(request, exc.message, exc.code),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the domain exception handlers to ``app``."""
    app.add_exception_handler(TaskFlowError, taskflow_error_handler)
