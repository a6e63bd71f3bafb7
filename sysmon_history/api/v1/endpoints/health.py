"""
Health check endpoints.

Provides store health and status information.
"""

import asyncio

from fastapi import APIRouter, Request

from sysmon_history import __version__
from sysmon_history.domain.schemas.common import HealthResponse

router = APIRouter()


@router.get(
    "",
    response_model=HealthResponse,
    summary="Health check",
    description="Check application health and store status",
)
async def health_check(request: Request) -> HealthResponse:
    """
    Check application health.

    Returns health status including database connectivity and whether the
    retention scheduler is running.
    """
    store = getattr(request.app.state, "store", None)
    scheduler = getattr(request.app.state, "scheduler", None)

    db_healthy = False
    if store is not None:
        db_healthy = await asyncio.to_thread(store.check_health)

    return HealthResponse(
        status="healthy" if db_healthy else "unhealthy",
        version=__version__,
        checks={
            "database": db_healthy,
            "retention_scheduler": bool(scheduler and scheduler.running),
        },
    )
