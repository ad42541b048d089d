"""structlog configuration shared by the API and the client library."""

import logging

import structlog

from taskflow.config import Settings


def configure_logging(settings: Settings) -> None:
    """Configure structlog once at startup.

    Context bound with ``structlog.contextvars`` (request ID, method, path)
    is merged into every event. Development gets a console renderer,
    other environments emit JSON lines.
    """
    level = logging.getLevelName(settings.log_level)
    renderer: structlog.types.Processor
    if settings.environment == "development":
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
