"""Middleware package."""

from taskflow.middleware.errors import register_exception_handlers
from taskflow.middleware.logging import LoggingMiddleware
from taskflow.middleware.request_id import RequestIDMiddleware

__all__ = ["LoggingMiddleware", "RequestIDMiddleware", "register_exception_handlers"]
