"""Master API router mounted at /api/v1."""

from fastapi import APIRouter

from beacon.api.routes import (
    directory,
    escalations,
    health,
    jobs,
    notifications,
    preferences,
    rate_limit,
)

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(health.router, tags=["Health"])
api_router.include_router(rate_limit.router)
api_router.include_router(notifications.router)
api_router.include_router(preferences.router)
api_router.include_router(escalations.router)
api_router.include_router(directory.router)
api_router.include_router(jobs.router)
