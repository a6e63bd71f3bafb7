"""
Snapshot Pydantic schemas for request/response validation.

``SnapshotCreate`` validates collector input at append time;
``SystemSnapshot`` is the immutable value handed back to readers.
"""

from datetime import datetime
from typing import List, Optional, Tuple

from pydantic import ConfigDict, Field, field_serializer, field_validator, model_validator

from sysmon_history.core.timezone import format_iso_ms, from_epoch_ms, to_utc
from sysmon_history.domain.models.snapshot import HistoricalSnapshot
from sysmon_history.domain.schemas.common import BaseSchema

# SQLite INTEGER is a signed 64-bit value.
MAX_INT64 = 2**63 - 1


class DiskUsage(BaseSchema):
    """Usage of one mount point."""

    model_config = ConfigDict(frozen=True)

    mount_point: str = Field(..., min_length=1, examples=["C:", "/"])
    used_space: int = Field(..., ge=0, le=MAX_INT64, description="Used bytes")
    total_space: int = Field(..., ge=0, le=MAX_INT64, description="Capacity in bytes")
    usage_percent: float = Field(..., ge=0.0, le=100.0)

    @model_validator(mode="after")
    def check_used_within_total(self) -> "DiskUsage":
        if self.used_space > self.total_space:
            raise ValueError(
                f"used_space ({self.used_space}) exceeds total_space "
                f"({self.total_space}) for {self.mount_point}"
            )
        return self


class NetworkTraffic(BaseSchema):
    """
    Network counters at capture time.

    Counters are non-negative but may reset between snapshots (reboot).
    """

    model_config = ConfigDict(frozen=True)

    bytes_received: int = Field(0, ge=0, le=MAX_INT64)
    bytes_sent: int = Field(0, ge=0, le=MAX_INT64)
    packets_received: int = Field(0, ge=0, le=MAX_INT64)
    packets_sent: int = Field(0, ge=0, le=MAX_INT64)


class SnapshotMetrics(BaseSchema):
    """Metric fields shared by incoming and stored snapshots."""

    cpu_usage: float = Field(..., ge=0.0, le=100.0, description="CPU usage percent")
    memory_usage: float = Field(
        ..., ge=0.0, le=100.0, description="Memory usage percent"
    )
    memory_total: int = Field(..., gt=0, le=MAX_INT64, description="Memory in bytes")
    system_load: float = Field(..., ge=0.0, description="Load-average style metric")
    disk_usage: List[DiskUsage] = Field(default_factory=list)
    network_traffic: NetworkTraffic


class SnapshotCreate(SnapshotMetrics):
    """
    Schema for appending a snapshot.

    ``timestamp`` defaults to the time of the append when omitted.
    """

    timestamp: Optional[datetime] = Field(
        None, description="Point in time the snapshot represents (UTC)"
    )

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is None:
            return None
        try:
            return to_utc(v)
        except OverflowError as e:
            raise ValueError(f"timestamp out of range in UTC: {e}") from e


class SystemSnapshot(SnapshotMetrics):
    """
    Stored snapshot as returned to callers.

    Instances are detached copies; nothing in them refers back to storage.
    """

    model_config = ConfigDict(frozen=True)

    id: int = Field(..., description="Time-ordered snapshot identifier")
    timestamp: datetime = Field(..., description="UTC, millisecond precision")
    disk_usage: Tuple[DiskUsage, ...] = Field(default_factory=tuple)

    @field_serializer("timestamp")
    def serialize_timestamp(self, value: datetime) -> str:
        return format_iso_ms(value)

    @classmethod
    def from_row(cls, row: HistoricalSnapshot) -> "SystemSnapshot":
        """
        Build a snapshot from a stored row.

        Raises:
            pydantic.ValidationError: If the stored values are corrupt
        """
        return cls(
            id=row.id,
            timestamp=from_epoch_ms(row.timestamp_ms),
            cpu_usage=row.cpu_usage,
            memory_usage=row.memory_usage,
            memory_total=row.memory_total,
            system_load=row.system_load,
            disk_usage=tuple(
                DiskUsage(
                    mount_point=disk.mount_point,
                    used_space=disk.used_space,
                    total_space=disk.total_space,
                    usage_percent=disk.usage_percent,
                )
                for disk in row.disks
            ),
            network_traffic=NetworkTraffic(
                bytes_received=row.bytes_received,
                bytes_sent=row.bytes_sent,
                packets_received=row.packets_received,
                packets_sent=row.packets_sent,
            ),
        )


class StoreSummary(BaseSchema):
    """
    Aggregate store statistics.

    Derived from maintained counters and index lookups, never a full scan.
    """

    total_records: int = Field(..., ge=0)
    oldest_timestamp: Optional[datetime] = None
    newest_timestamp: Optional[datetime] = None
    database_path: Optional[str] = None
    corrupt_records_skipped: int = Field(0, ge=0)

    @field_serializer("oldest_timestamp", "newest_timestamp")
    def serialize_bound(self, value: Optional[datetime]) -> Optional[str]:
        return format_iso_ms(value) if value is not None else None


class SnapshotCreateResponse(BaseSchema):
    """Identifier assigned to an appended snapshot."""

    id: int


class TimeRangeRequest(BaseSchema):
    """Time window as ISO-8601 strings; missing bounds are open."""

    start: Optional[str] = Field(None, examples=["2024-01-01T00:00:00Z"])
    end: Optional[str] = Field(None, examples=["2024-01-02T00:00:00Z"])


class ExportResponse(BaseSchema):
    """Location of a finished CSV export."""

    path: str


class PruneRequest(BaseSchema):
    retention_days: int = Field(..., ge=0, le=36500)


class DeleteResponse(BaseSchema):
    deleted: int = Field(..., ge=0)
