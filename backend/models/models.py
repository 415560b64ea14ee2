"""
Pydantic models for API request/response validation.

Record and summary shapes live in lab_models and metrics_models; this
module holds the envelope models of the HTTP layer itself.
"""

import math
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field, field_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HealthStatus(str, Enum):
    """System health status levels."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class HealthResponse(BaseModel):
    """
    Health check response for monitoring.

    Attributes:
        status: Overall system health status.
        version: Application version.
        environment: Deployment environment.
        checks: Individual component health checks.
        record_counts: Records held per collection.
    """
    status: HealthStatus = Field(..., description="Overall health status")
    version: str = Field(..., description="Application version")
    environment: str = Field(..., description="Deployment environment")
    timestamp: datetime = Field(default_factory=_utcnow, description="Check timestamp")
    checks: dict[str, bool] = Field(default_factory=dict, description="Component health checks")
    record_counts: dict[str, int] = Field(default_factory=dict, description="Records per collection")


class ErrorResponse(BaseModel):
    """
    Standardized error response.

    Attributes:
        error: Error type/code.
        message: Human-readable error message.
        details: Additional error details.
        request_id: Request ID for tracing.
    """
    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Error message")
    details: dict | list | None = Field(default=None, description="Additional details")
    request_id: str | None = Field(default=None, description="Request ID for tracing")
    timestamp: datetime = Field(default_factory=_utcnow, description="Error timestamp")


class RangeCheckRequest(BaseModel):
    """
    Ad-hoc range check of a measured value.

    Attributes:
        actual: Measured value. Missing values are never in range.
        minimum: Lower bound (inclusive).
        maximum: Upper bound (inclusive).
    """
    actual: float | None = Field(default=None, description="Measured value")
    minimum: float = Field(..., description="Minimum acceptable value")
    maximum: float = Field(..., description="Maximum acceptable value")

    @field_validator("minimum", "maximum")
    @classmethod
    def validate_bound(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError("Range bounds must be finite numbers")
        return v


class RangeCheckResponse(BaseModel):
    """Result of an ad-hoc range check."""
    actual: float | None = Field(default=None, description="Measured value")
    minimum: float = Field(..., description="Minimum acceptable value")
    maximum: float = Field(..., description="Maximum acceptable value")
    within_range: bool = Field(..., description="Whether minimum <= actual <= maximum")
