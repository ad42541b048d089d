"""Liveness and readiness probes."""

import time
from typing import Any

import structlog
from fastapi import APIRouter, Response, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from taskflow.config import get_settings
from taskflow.db.session import DBSession

router = APIRouter()
logger = structlog.get_logger()
settings = get_settings()


@router.get("/health")
async def health_check() -> dict[str, str]:
    """Process is up. Does not touch the database."""
    return {
        "status": "healthy",
        "app": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }


@router.get("/health/ready")
async def readiness_check(db: DBSession, response: Response) -> dict[str, Any]:
    """Ready once the database answers; 503 otherwise so the instance is drained."""
    started = time.perf_counter()
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.warning("readiness_database_unhealthy", error=str(e))
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {
            "status": "unhealthy",
            "version": settings.app_version,
            "checks": {"database": "unhealthy"},
        }

    return {
        "status": "healthy",
        "version": settings.app_version,
        "checks": {"database": "healthy"},
        "database_latency_ms": round((time.perf_counter() - started) * 1000, 2),
    }
