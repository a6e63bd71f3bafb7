"""
Historical data endpoints.

Provides REST API for storing, querying, exporting and pruning
system metric snapshots.
"""

import asyncio
import threading
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status

from sysmon_history.api.deps import get_store
from sysmon_history.core.exceptions import NotFoundError
from sysmon_history.core.logging import get_logger
from sysmon_history.domain.schemas.snapshot import (
    DeleteResponse,
    ExportResponse,
    PruneRequest,
    SnapshotCreate,
    SnapshotCreateResponse,
    StoreSummary,
    SystemSnapshot,
    TimeRangeRequest,
)
from sysmon_history.domain.services.store import HistoricalMetricsStore

logger = get_logger(__name__)
router = APIRouter()

# Seconds between client-disconnect checks while an export runs.
EXPORT_POLL_INTERVAL = 0.5


@router.post(
    "",
    response_model=SnapshotCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Store snapshot",
    description="Append one system metric snapshot",
)
def store_historical_data(
    snapshot: SnapshotCreate,
    store: HistoricalMetricsStore = Depends(get_store),
) -> SnapshotCreateResponse:
    snapshot_id = store.append(snapshot)
    return SnapshotCreateResponse(id=snapshot_id)


@router.get(
    "",
    response_model=List[SystemSnapshot],
    summary="Fetch historical data",
    description="Snapshots with start <= timestamp < end, oldest first",
)
def fetch_historical_data(
    response: Response,
    start: Optional[str] = Query(None, description="Inclusive ISO-8601 start"),
    end: Optional[str] = Query(None, description="Exclusive ISO-8601 end"),
    preset: Optional[str] = Query(
        None, description="Named window ending now: 1h, 24h, 7d or 30d"
    ),
    store: HistoricalMetricsStore = Depends(get_store),
) -> List[SystemSnapshot]:
    """
    Fetch historical data.

    ``preset`` takes precedence over explicit bounds. The response carries
    ``X-Result-Capped`` and ``X-Skipped-Records`` headers.
    """
    if preset is not None:
        window_start, window_end = store.preset_window(preset)
        result = store.range(window_start, window_end)
    else:
        result = store.range(start, end)

    response.headers["X-Result-Capped"] = "true" if result.capped else "false"
    response.headers["X-Skipped-Records"] = str(result.skipped)
    return list(result)


@router.get(
    "/latest",
    response_model=SystemSnapshot,
    summary="Get latest snapshot",
    description="Retrieve the most recent stored snapshot",
)
def get_latest_snapshot(
    store: HistoricalMetricsStore = Depends(get_store),
) -> SystemSnapshot:
    snapshot = store.latest()
    if snapshot is None:
        raise NotFoundError(entity_type="SystemSnapshot", entity_id="latest")
    return snapshot


@router.get(
    "/stats",
    response_model=StoreSummary,
    summary="Get database stats",
    description="Total records and the oldest/newest stored timestamps",
)
def get_database_stats(
    store: HistoricalMetricsStore = Depends(get_store),
) -> StoreSummary:
    return store.summary()


@router.post(
    "/export",
    response_model=ExportResponse,
    summary="Export historical data",
    description="Write the range to a CSV file and return its absolute path",
)
async def export_historical_data(
    body: TimeRangeRequest,
    request: Request,
    store: HistoricalMetricsStore = Depends(get_store),
) -> ExportResponse:
    """
    Export historical data to CSV.

    The export runs in a worker thread; if the client disconnects before it
    finishes, the export is cancelled at the next batch boundary.
    """
    cancel_event = threading.Event()
    task = asyncio.ensure_future(
        asyncio.to_thread(store.export, body.start, body.end, cancel_event)
    )
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=EXPORT_POLL_INTERVAL)
            if done:
                break
            if await request.is_disconnected():
                logger.info("Client disconnected, cancelling export")
                cancel_event.set()
    finally:
        if not task.done():
            cancel_event.set()

    return ExportResponse(path=task.result())


@router.get(
    "/export.csv",
    summary="Download historical data as CSV",
    response_class=Response,
)
def download_historical_data(
    start: Optional[str] = Query(None, description="Inclusive ISO-8601 start"),
    end: Optional[str] = Query(None, description="Exclusive ISO-8601 end"),
    store: HistoricalMetricsStore = Depends(get_store),
) -> Response:
    content = store.render_csv(start, end)
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="historical_data.csv"'},
    )


@router.post(
    "/prune",
    response_model=DeleteResponse,
    summary="Prune historical data",
    description="Delete snapshots older than retention_days days",
)
def prune_historical_data(
    body: PruneRequest,
    store: HistoricalMetricsStore = Depends(get_store),
) -> DeleteResponse:
    return DeleteResponse(deleted=store.prune(body.retention_days))


@router.delete(
    "",
    response_model=DeleteResponse,
    summary="Clear historical data",
    description="Delete every stored snapshot",
)
def clear_historical_data(
    store: HistoricalMetricsStore = Depends(get_store),
) -> DeleteResponse:
    return DeleteResponse(deleted=store.clear())


@router.get(
    "/{snapshot_id}",
    response_model=SystemSnapshot,
    summary="Get snapshot",
    description="Retrieve one snapshot by id",
)
def get_snapshot(
    snapshot_id: int,
    store: HistoricalMetricsStore = Depends(get_store),
) -> SystemSnapshot:
    return store.get(snapshot_id)
