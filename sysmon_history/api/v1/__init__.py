"""
API v1 initialization module.

Exports the main API router.
"""

from fastapi import APIRouter

from sysmon_history.api.v1.endpoints import health, historical_data
from sysmon_history.domain.schemas.common import ErrorResponse

# Error bodies produced by the application's exception handlers
ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid time range"},
    404: {"model": ErrorResponse, "description": "Snapshot not found"},
    422: {"model": ErrorResponse, "description": "Invalid snapshot or request"},
    499: {"model": ErrorResponse, "description": "Export cancelled"},
    500: {"model": ErrorResponse, "description": "Storage or export failure"},
}

# Create v1 router
api_router = APIRouter()

api_router.include_router(health.router, prefix="/health", tags=["health"])

api_router.include_router(
    historical_data.router,
    prefix="/historical-data",
    tags=["historical-data"],
    responses=ERROR_RESPONSES,
)
