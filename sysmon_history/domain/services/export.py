"""
CSV export service.

Flattens snapshots into one CSV row each and writes them to a timestamped
file under the export directory. Files appear atomically: rows go to a
temp file in the same directory, which is fsynced and renamed into place,
so a failed or cancelled export never leaves a truncated file behind.

Column layout (stable within one export):

    id, timestamp, cpu_usage, memory_usage, memory_total, system_load,
    bytes_received, bytes_sent, packets_received, packets_sent,
    disk_0_mount_point, disk_0_used_space, disk_0_total_space,
    disk_0_usage_percent, disk_1_..., ...

Disk column groups are emitted up to the largest disk count found in the
exported range; snapshots with fewer disks leave the extra groups empty.
"""

import csv
import io
import os
import tempfile
import threading
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Callable, List, Optional, TextIO

from sysmon_history.core.exceptions import (
    ExportCancelledError,
    ExportError,
    InvalidRangeError,
    StorageError,
)
from sysmon_history.core.logging import get_logger
from sysmon_history.core.timezone import TimestampLike, format_iso_ms, utc_now
from sysmon_history.domain.repositories.snapshot import SnapshotRepository
from sysmon_history.domain.schemas.snapshot import SystemSnapshot
from sysmon_history.domain.services.query import QueryEngine

logger = get_logger(__name__)

BASE_COLUMNS = [
    "id",
    "timestamp",
    "cpu_usage",
    "memory_usage",
    "memory_total",
    "system_load",
    "bytes_received",
    "bytes_sent",
    "packets_received",
    "packets_sent",
]
DISK_FIELDS = ["mount_point", "used_space", "total_space", "usage_percent"]


def csv_header(disk_columns: int) -> List[str]:
    """Header row for an export holding ``disk_columns`` disk groups."""
    header = list(BASE_COLUMNS)
    for index in range(disk_columns):
        header.extend(f"disk_{index}_{field}" for field in DISK_FIELDS)
    return header


def format_number(value) -> str:
    """
    Plain decimal rendering with no exponent and no separators.

    Floats keep their shortest round-trip digits (``1e-05`` -> ``0.00001``).
    Values are always finite; NaN and infinity are rejected at append time.
    """
    if isinstance(value, float):
        return format(Decimal(repr(value)), "f")
    return str(value)


def flatten_snapshot(snapshot: SystemSnapshot, disk_columns: int) -> List[str]:
    """One CSV row for a snapshot, padded to ``disk_columns`` disk groups."""
    network = snapshot.network_traffic
    row = [
        str(snapshot.id),
        format_iso_ms(snapshot.timestamp),
        format_number(snapshot.cpu_usage),
        format_number(snapshot.memory_usage),
        format_number(snapshot.memory_total),
        format_number(snapshot.system_load),
        format_number(network.bytes_received),
        format_number(network.bytes_sent),
        format_number(network.packets_received),
        format_number(network.packets_sent),
    ]
    disks = snapshot.disk_usage
    for index in range(disk_columns):
        if index < len(disks):
            disk = disks[index]
            row.extend(
                [
                    disk.mount_point,
                    format_number(disk.used_space),
                    format_number(disk.total_space),
                    format_number(disk.usage_percent),
                ]
            )
        else:
            row.extend([""] * len(DISK_FIELDS))
    return row


class ExportService:
    """
    Service for exporting snapshot ranges to CSV.
    """

    def __init__(
        self,
        repository: SnapshotRepository,
        export_dir: Path,
        batch_size: int = 500,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.repository = repository
        self.export_dir = Path(export_dir)
        self.batch_size = batch_size
        self.clock = clock
        self._rename_lock = threading.Lock()

    def _write_rows(
        self,
        handle: TextIO,
        start: Optional[TimestampLike],
        end: Optional[TimestampLike],
        cancel_event: Optional[threading.Event],
    ) -> int:
        start_dt, end_dt = QueryEngine.resolve_window(start, end)
        writer = csv.writer(handle, lineterminator="\n")

        if start_dt is not None and start_dt == end_dt:
            writer.writerow(csv_header(0))
            return 0

        written = 0
        with self.repository.open_scan(start_dt, end_dt, self.batch_size) as scan:
            disk_columns = scan.max_disk_count()
            writer.writerow(csv_header(disk_columns))
            for batch in scan.batches():
                if cancel_event is not None and cancel_event.is_set():
                    raise ExportCancelledError(details={"rows_written": written})
                writer.writerows(flatten_snapshot(s, disk_columns) for s in batch)
                written += len(batch)
            if scan.skipped:
                logger.warning(
                    "Export skipped corrupt records", skipped=scan.skipped
                )
        return written

    def _target_path(self) -> Path:
        now = self.clock()
        stem = f"historical_data_{now:%Y%m%dT%H%M%S}{now.microsecond // 1000:03d}Z"
        candidate = self.export_dir / f"{stem}.csv"
        suffix = 1
        while candidate.exists():
            candidate = self.export_dir / f"{stem}-{suffix}.csv"
            suffix += 1
        return candidate

    def export(
        self,
        start: Optional[TimestampLike],
        end: Optional[TimestampLike],
        cancel_event: Optional[threading.Event] = None,
    ) -> str:
        """
        Export ``[start, end)`` to a new CSV file.

        Args:
            start: Inclusive lower bound (datetime or ISO-8601), None for open
            end: Exclusive upper bound (datetime or ISO-8601), None for open
            cancel_event: Checked between batches; setting it aborts the export

        Returns:
            Absolute path of the written file

        Raises:
            ExportCancelledError: If cancel_event was set
            ExportError: If the range query or the file write fails
        """
        if cancel_event is not None and cancel_event.is_set():
            raise ExportCancelledError()

        tmp_path: Optional[str] = None
        try:
            self.export_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=".historical_data_", suffix=".csv.tmp", dir=self.export_dir
            )
            with os.fdopen(fd, "w", newline="", encoding="utf-8") as handle:
                rows = self._write_rows(handle, start, end, cancel_event)
                handle.flush()
                os.fsync(handle.fileno())

            with self._rename_lock:
                target = self._target_path()
                os.replace(tmp_path, target)
            tmp_path = None

        except ExportError:
            raise
        except (InvalidRangeError, StorageError) as e:
            logger.error("Export range query failed", error=e.message)
            raise ExportError(
                f"Export failed: {e.message}",
                details={"cause": e.__class__.__name__, **e.details},
            ) from e
        except OSError as e:
            logger.error("Failed to write export file", error=str(e))
            raise ExportError(
                f"Failed to write export file: {e}",
                details={"export_dir": str(self.export_dir)},
            ) from e
        finally:
            if tmp_path is not None:
                self._discard(tmp_path)

        path = str(target.resolve())
        logger.info("Exported historical data", path=path, rows=rows)
        return path

    def render_csv(
        self, start: Optional[TimestampLike], end: Optional[TimestampLike]
    ) -> str:
        """
        Render ``[start, end)`` as CSV text without touching the filesystem.

        Raises:
            ExportError: If the range query fails
        """
        buffer = io.StringIO()
        try:
            self._write_rows(buffer, start, end, None)
        except (InvalidRangeError, StorageError) as e:
            raise ExportError(
                f"Export failed: {e.message}",
                details={"cause": e.__class__.__name__, **e.details},
            ) from e
        return buffer.getvalue()

    @staticmethod
    def _discard(path: str) -> None:
        try:
            os.unlink(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Could not remove partial export", path=path, error=str(e))
