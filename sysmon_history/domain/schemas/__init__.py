"""
Domain schemas initialization.

Exports all Pydantic schemas for validation and serialization.
"""

from sysmon_history.domain.schemas.common import (
    BaseSchema,
    ErrorResponse,
    HealthResponse,
)
from sysmon_history.domain.schemas.snapshot import (
    DeleteResponse,
    DiskUsage,
    ExportResponse,
    NetworkTraffic,
    PruneRequest,
    SnapshotCreate,
    SnapshotCreateResponse,
    StoreSummary,
    SystemSnapshot,
    TimeRangeRequest,
)

__all__ = [
    # Common
    "BaseSchema",
    "HealthResponse",
    "ErrorResponse",
    # Snapshot
    "DiskUsage",
    "NetworkTraffic",
    "SnapshotCreate",
    "SystemSnapshot",
    "StoreSummary",
    "SnapshotCreateResponse",
    "TimeRangeRequest",
    "ExportResponse",
    "PruneRequest",
    "DeleteResponse",
]
