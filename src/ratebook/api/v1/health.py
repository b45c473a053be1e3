"""Health check endpoint."""

from beartype import beartype
from fastapi import APIRouter

from ... import __version__
from ...schemas.common import HealthStatus

router = APIRouter()


@router.get("/health")
@beartype
async def health_check() -> HealthStatus:
    """Liveness probe."""
    return HealthStatus(status="healthy", version=__version__)
