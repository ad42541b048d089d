"""API router package."""

from fastapi import APIRouter

from taskflow.api.v1 import auth, health, tasks, time_entries, users

router = APIRouter()

# Include all API routers
router.include_router(health.router, tags=["Health"])
router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
router.include_router(users.router, prefix="/users", tags=["Users"])
router.include_router(tasks.router, prefix="/tasks", tags=["Tasks"])
router.include_router(time_entries.router, prefix="/time-entries", tags=["Time Entries"])
