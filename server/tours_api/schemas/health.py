"""Health-related Pydantic schemas."""

from datetime import datetime
from enum import Enum
from typing import Dict

from pydantic import BaseModel, Field


class HealthStatus(str, Enum):
    """Health status enumeration."""
    HEALTHY = "healthy"
    READY = "ready"
    UNAVAILABLE = "unavailable"


class HealthResponse(BaseModel):
    """Health check response schema."""

    status: HealthStatus = Field(..., description="Service status")
    service: str = Field(..., description="Service name")
    timestamp: datetime = Field(..., description="Current server time (ISO 8601)")
    version: str = Field("1.0.0", description="API version")
    environment: str = Field(..., description="Deployment environment")


class ReadinessResponse(BaseModel):
    """Readiness check response schema."""

    status: HealthStatus = Field(..., description="Readiness status")
    service: str = Field(..., description="Service name")
    checks: Dict[str, str] = Field(..., description="Result per dependency")
