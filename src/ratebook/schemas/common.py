"""Common schemas used across the API."""

from pydantic import Field

from ..models.base import BaseModelConfig


class APIInfo(BaseModelConfig):
    """API information response."""

    name: str = Field(..., description="API name")
    version: str = Field(..., description="API version")
    status: str = Field(..., description="API status")
    environment: str = Field(..., description="Current environment")


class HealthStatus(BaseModelConfig):
    """Liveness response."""

    status: str = Field(..., pattern=r"^(healthy|unhealthy|degraded)$")
    version: str = Field(...)
