"""
Common schemas used across the application.

Provides reusable Pydantic models for API responses.
"""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class BaseSchema(BaseModel):
    """
    Base schema with common configuration.

    All schemas should inherit from this.
    """

    model_config = ConfigDict(
        from_attributes=True,
        use_enum_values=True,
        populate_by_name=True,
        allow_inf_nan=False,
    )


class HealthResponse(BaseSchema):
    """
    Health check response.

    Indicates application and store health status.
    """

    status: str = Field(
        ..., description="Overall health status: 'healthy' or 'unhealthy'"
    )
    version: str = Field(..., description="Application version")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Health check timestamp",
    )
    checks: dict[str, bool] = Field(
        default_factory=dict, description="Individual component health checks"
    )


class ErrorResponse(BaseSchema):
    """
    Standard error response format.

    Used by exception handlers for consistent error responses.
    """

    error: str = Field(..., description="Error type/code")
    message: str = Field(..., description="Human-readable error message")
    details: dict[str, Any] = Field(
        default_factory=dict, description="Additional error context"
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error": "NotFoundError",
                "message": "SystemSnapshot with id '123' not found",
                "details": {"entity_type": "SystemSnapshot", "entity_id": "123"},
            }
        }
    )
