"""
Historical metrics store.

Single entry point that wires the storage engine, query engine, retention,
export and statistics services around one database. Callers create an
instance, call ``init()`` before first use and ``close()`` when done, and
pass the instance to whatever needs it.
"""

import threading
from datetime import datetime
from typing import Any, Callable, Mapping, Optional, Tuple, Union

from sysmon_history.core.config import Settings, get_settings
from sysmon_history.core.database import DatabaseManager
from sysmon_history.core.logging import get_logger
from sysmon_history.core.timezone import TimestampLike, utc_now
from sysmon_history.domain.repositories.snapshot import SnapshotRepository
from sysmon_history.domain.schemas.snapshot import (
    SnapshotCreate,
    StoreSummary,
    SystemSnapshot,
)
from sysmon_history.domain.services.export import ExportService
from sysmon_history.domain.services.query import QueryEngine, RangeResult
from sysmon_history.domain.services.retention import RetentionService
from sysmon_history.domain.services.stats import StatsService

logger = get_logger(__name__)


class HistoricalMetricsStore:
    """
    Time-series store for system metric snapshots.

    Usage:
        store = HistoricalMetricsStore(settings)
        store.init()
        snapshot_id = store.append(cpu_usage=12.5, ...)
        records = store.range("2024-01-01T00:00:00Z", "2024-01-02T00:00:00Z")
        store.close()
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.settings = settings or get_settings()
        self.clock = clock
        self.db = DatabaseManager(self.settings)
        self.repository = SnapshotRepository(self.db)
        self.query_engine = QueryEngine(
            self.repository,
            max_records=self.settings.query_max_records,
            clock=clock,
        )
        self.retention = RetentionService(self.repository, clock=clock)
        self.exporter = ExportService(
            self.repository,
            export_dir=self.settings.export_path,
            batch_size=self.settings.export_batch_size,
            clock=clock,
        )
        self.stats = StatsService(
            self.repository, database_path=self.settings.database_path
        )
        self._init_lock = threading.Lock()
        self._ready = False

    # Lifecycle

    def init(self) -> None:
        """
        Open the database, create the schema and reconcile counters.

        Idempotent; later calls return immediately.
        """
        with self._init_lock:
            if self._ready:
                return
            self.db.initialize()
            total = self.repository.reconcile_record_count()
            self._ready = True
        logger.info("Historical metrics store ready", total_records=total)

    def close(self) -> None:
        """Release all database connections. The store may be re-initialized."""
        with self._init_lock:
            self.db.close()
            self._ready = False

    @property
    def is_ready(self) -> bool:
        return self._ready

    def __enter__(self) -> "HistoricalMetricsStore":
        self.init()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # Writes

    def append(
        self,
        snapshot: Optional[Union[SnapshotCreate, Mapping[str, Any]]] = None,
        **fields: Any,
    ) -> int:
        """
        Store a snapshot, given as a schema, a mapping, or keyword fields.

        Returns:
            Identifier of the new snapshot
        """
        if snapshot is None:
            snapshot = fields
        elif fields:
            snapshot = {**dict(snapshot), **fields}
        return self.repository.append(snapshot)

    def prune(self, retention_days: int) -> int:
        """Delete snapshots older than ``retention_days`` days."""
        return self.retention.prune(retention_days)

    def clear(self) -> int:
        """Delete every snapshot."""
        return self.repository.delete_all()

    # Reads

    def get(self, snapshot_id: int) -> SystemSnapshot:
        return self.repository.get(snapshot_id)

    def latest(self) -> Optional[SystemSnapshot]:
        return self.repository.latest()

    def range(
        self,
        start: Optional[TimestampLike] = None,
        end: Optional[TimestampLike] = None,
    ) -> RangeResult:
        """Snapshots with ``start <= timestamp < end``, ascending."""
        return self.query_engine.range(start, end)

    def preset_window(self, preset: str) -> Tuple[datetime, datetime]:
        return self.query_engine.preset_window(preset)

    def export(
        self,
        start: Optional[TimestampLike],
        end: Optional[TimestampLike],
        cancel_event: Optional[threading.Event] = None,
    ) -> str:
        """Write ``[start, end)`` to a CSV file and return its absolute path."""
        return self.exporter.export(start, end, cancel_event=cancel_event)

    def render_csv(
        self, start: Optional[TimestampLike], end: Optional[TimestampLike]
    ) -> str:
        return self.exporter.render_csv(start, end)

    def summary(self) -> StoreSummary:
        return self.stats.summary()

    def check_health(self) -> bool:
        return self._ready and self.db.check_health()
