"""API v1 router aggregation.

This module combines all v1 API routers into a single router
that can be mounted on the main FastAPI application.
"""

from fastapi import APIRouter

from .change_sets import router as change_sets_router
from .health import router as health_router
from .rating import router as rating_router
from .versions import router as versions_router

# Create main v1 router
router = APIRouter(prefix="/api/v1")

# Include all sub-routers
router.include_router(health_router, tags=["health"])
router.include_router(versions_router, tags=["versions"])
router.include_router(change_sets_router, tags=["change-sets"])
router.include_router(rating_router, tags=["rating"])
