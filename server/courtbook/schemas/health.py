"""Health-related Pydantic schemas."""

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, Field


class HealthStatus(str, Enum):
    """Health status enumeration."""
    HEALTHY = "healthy"


class HealthResponse(BaseModel):
    """Health check response schema."""

    status: HealthStatus = Field(..., description="Service status")
    timestamp: datetime = Field(..., description="Current server time (ISO 8601, UTC)")
    version: str = Field("1.0.0", description="API version")
    timezone: str = Field(..., description="Civil timezone the courts operate in")
    business_date: date = Field(..., description="Today's date at the venue")
    courts: int = Field(..., description="Number of bookable courts")
    first_start: str = Field(..., description="Start of the first daily slot (HH:MM)")
    last_start: str = Field(..., description="Start of the last daily slot (HH:MM)")


class ReadinessResponse(BaseModel):
    """Readiness check response schema."""

    status: str = Field(..., description="'ready' or 'degraded'")
    service: str = Field(..., description="Service name")
    checks: dict[str, str] = Field(default_factory=dict, description="Per-dependency check results")
