"""
Snapshot repository - the storage engine of the metrics store.

Durable, time-indexed persistence of system snapshots on SQLite. Rows are
ordered by ``(timestamp_ms, id)``; every mutation runs under the database
manager's write lock in a single transaction, and readers get detached
``SystemSnapshot`` copies built inside one read transaction.
"""

import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Generator, Iterator, List, Mapping, Optional, Tuple, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import and_, delete, desc, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from sysmon_history.core.database import DatabaseManager
from sysmon_history.core.exceptions import NotFoundError, StorageError, ValidationError
from sysmon_history.core.logging import get_logger
from sysmon_history.core.timezone import from_epoch_ms, to_epoch_ms, utc_now
from sysmon_history.domain.models.snapshot import (
    RECORD_COUNT,
    DiskUsageEntry,
    HistoricalSnapshot,
    StoreCounter,
)
from sysmon_history.domain.schemas.snapshot import SnapshotCreate, SystemSnapshot

logger = get_logger(__name__)

# Errors raised when a stored row cannot be turned back into a snapshot.
_ROW_DECODE_ERRORS = (PydanticValidationError, ValueError, TypeError, OverflowError)


def _range_filter(start_ms: Optional[int], end_ms: Optional[int]) -> List[Any]:
    clauses = []
    if start_ms is not None:
        clauses.append(HistoricalSnapshot.timestamp_ms >= start_ms)
    if end_ms is not None:
        clauses.append(HistoricalSnapshot.timestamp_ms < end_ms)
    return clauses


def _optional_ms(value: Optional[datetime]) -> Optional[int]:
    return to_epoch_ms(value) if value is not None else None


class RangeScan:
    """
    Streaming scan over one time window inside a single read transaction.

    Obtained from ``SnapshotRepository.open_scan``; only valid inside that
    context. Batches are fetched with keyset pagination on
    ``(timestamp_ms, id)`` so each batch is an index seek.
    """

    def __init__(
        self,
        repository: "SnapshotRepository",
        session: Session,
        start_ms: Optional[int],
        end_ms: Optional[int],
        batch_size: int,
    ):
        self._repository = repository
        self._session = session
        self._filters = _range_filter(start_ms, end_ms)
        self._batch_size = batch_size
        self.skipped = 0

    def max_disk_count(self) -> int:
        """Largest number of disks on any snapshot in the window."""
        highest = self._session.execute(
            select(func.max(DiskUsageEntry.position))
            .join(HistoricalSnapshot, DiskUsageEntry.snapshot_id == HistoricalSnapshot.id)
            .where(*self._filters)
        ).scalar_one_or_none()
        return 0 if highest is None else int(highest) + 1

    def batches(self) -> Iterator[List[SystemSnapshot]]:
        """Yield snapshots in ascending ``(timestamp, id)`` order, batch by batch."""
        last: Optional[Tuple[int, int]] = None
        while True:
            stmt = select(HistoricalSnapshot).where(*self._filters)
            if last is not None:
                last_ts, last_id = last
                stmt = stmt.where(
                    or_(
                        HistoricalSnapshot.timestamp_ms > last_ts,
                        and_(
                            HistoricalSnapshot.timestamp_ms == last_ts,
                            HistoricalSnapshot.id > last_id,
                        ),
                    )
                )
            stmt = stmt.order_by(
                HistoricalSnapshot.timestamp_ms, HistoricalSnapshot.id
            ).limit(self._batch_size)

            rows = list(self._session.scalars(stmt).all())
            if not rows:
                return

            last = (rows[-1].timestamp_ms, rows[-1].id)
            snapshots, skipped = self._repository._decode_rows(rows)
            self.skipped += skipped
            # Drop loaded rows so a long scan does not grow the identity map.
            self._session.expunge_all()
            yield snapshots

            if len(rows) < self._batch_size:
                return


class SnapshotRepository:
    """
    Repository for historical snapshots.

    Owns all access to the snapshot tables. Writes are serialized through
    ``DatabaseManager.write_session``; reads run concurrently, each in its
    own transaction.
    """

    def __init__(self, db: DatabaseManager):
        """
        Initialize snapshot repository.

        Args:
            db: Initialized database manager
        """
        self.db = db
        self._corrupt_skipped = 0
        self._stats_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Session helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _reading(self, operation: str) -> Generator[Session, None, None]:
        try:
            with self.db.session() as session:
                yield session
        except SQLAlchemyError as e:
            logger.error(f"Failed to {operation}", error=str(e))
            raise StorageError(
                f"Failed to {operation}", details={"error": str(e)}
            ) from e

    @contextmanager
    def _writing(self, operation: str) -> Generator[Session, None, None]:
        try:
            with self.db.write_session() as session:
                yield session
        except SQLAlchemyError as e:
            logger.error(f"Failed to {operation}", error=str(e))
            raise StorageError(
                f"Failed to {operation}", details={"error": str(e)}
            ) from e

    @staticmethod
    def _adjust_record_count(session: Session, delta: int) -> None:
        result = session.execute(
            update(StoreCounter)
            .where(StoreCounter.name == RECORD_COUNT)
            .values(value=StoreCounter.value + delta)
        )
        if result.rowcount == 0:
            # Counter row missing (store created outside init); rebuild it.
            total = session.execute(
                select(func.count()).select_from(HistoricalSnapshot)
            ).scalar_one()
            session.add(StoreCounter(name=RECORD_COUNT, value=total))

    def _decode_rows(
        self, rows: List[HistoricalSnapshot]
    ) -> Tuple[List[SystemSnapshot], int]:
        snapshots: List[SystemSnapshot] = []
        skipped = 0
        for row in rows:
            try:
                snapshots.append(SystemSnapshot.from_row(row))
            except _ROW_DECODE_ERRORS as e:
                skipped += 1
                logger.warning(
                    "Skipping corrupt snapshot record",
                    snapshot_id=row.id,
                    error=str(e),
                )
        if skipped:
            with self._stats_lock:
                self._corrupt_skipped += skipped
        return snapshots, skipped

    @property
    def corrupt_records_skipped(self) -> int:
        """Number of corrupt rows skipped by reads since this repository was built."""
        with self._stats_lock:
            return self._corrupt_skipped

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def reconcile_record_count(self) -> int:
        """
        Create or repair the maintained record counter.

        Runs one full count; called once when the store is opened.

        Returns:
            Current number of stored snapshots
        """
        with self._writing("reconcile record count") as session:
            actual = session.execute(
                select(func.count()).select_from(HistoricalSnapshot)
            ).scalar_one()
            counter = session.get(StoreCounter, RECORD_COUNT)
            if counter is None:
                session.add(StoreCounter(name=RECORD_COUNT, value=actual))
            elif counter.value != actual:
                logger.warning(
                    "Record counter out of sync, repairing",
                    stored=counter.value,
                    actual=actual,
                )
                counter.value = actual
        return actual

    def append(self, data: Union[SnapshotCreate, Mapping[str, Any]]) -> int:
        """
        Validate and persist a new snapshot.

        Args:
            data: Snapshot fields, either validated or as a plain mapping

        Returns:
            Identifier assigned to the snapshot

        Raises:
            ValidationError: If any field is out of range
            StorageError: If the write fails
        """
        if not isinstance(data, SnapshotCreate):
            try:
                data = SnapshotCreate.model_validate(data)
            except PydanticValidationError as e:
                raise ValidationError(
                    "Invalid snapshot",
                    details={"errors": e.errors(include_url=False, include_context=False)},
                ) from e

        timestamp = data.timestamp or utc_now()
        row = HistoricalSnapshot(
            timestamp_ms=to_epoch_ms(timestamp),
            cpu_usage=data.cpu_usage,
            memory_usage=data.memory_usage,
            memory_total=data.memory_total,
            system_load=data.system_load,
            bytes_received=data.network_traffic.bytes_received,
            bytes_sent=data.network_traffic.bytes_sent,
            packets_received=data.network_traffic.packets_received,
            packets_sent=data.network_traffic.packets_sent,
            disks=[
                DiskUsageEntry(
                    position=position,
                    mount_point=disk.mount_point,
                    used_space=disk.used_space,
                    total_space=disk.total_space,
                    usage_percent=disk.usage_percent,
                )
                for position, disk in enumerate(data.disk_usage)
            ],
        )

        with self._writing("append snapshot") as session:
            session.add(row)
            session.flush()
            snapshot_id = row.id
            self._adjust_record_count(session, 1)

        logger.debug(
            "Stored snapshot", snapshot_id=snapshot_id, timestamp_ms=row.timestamp_ms
        )
        return snapshot_id

    def delete_before(self, cutoff: datetime) -> int:
        """
        Delete every snapshot with ``timestamp < cutoff``.

        Disk rows follow through ``ON DELETE CASCADE``. The delete and the
        counter update commit together, so readers see all or none of it.

        Returns:
            Number of snapshots deleted
        """
        cutoff_ms = to_epoch_ms(cutoff)
        with self._writing("delete snapshots") as session:
            result = session.execute(
                delete(HistoricalSnapshot)
                .where(HistoricalSnapshot.timestamp_ms < cutoff_ms)
                .execution_options(synchronize_session=False)
            )
            deleted = result.rowcount or 0
            if deleted:
                self._adjust_record_count(session, -deleted)

        logger.info("Deleted snapshots", cutoff_ms=cutoff_ms, deleted=deleted)
        return deleted

    def delete_all(self) -> int:
        """
        Delete every snapshot.

        Identifiers keep increasing afterwards; none are reused.

        Returns:
            Number of snapshots deleted
        """
        with self._writing("clear snapshots") as session:
            result = session.execute(
                delete(HistoricalSnapshot).execution_options(synchronize_session=False)
            )
            deleted = result.rowcount or 0
            session.execute(
                update(StoreCounter)
                .where(StoreCounter.name == RECORD_COUNT)
                .values(value=0)
            )

        logger.info("Cleared all snapshots", deleted=deleted)
        return deleted

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, snapshot_id: int) -> SystemSnapshot:
        """
        Get snapshot by ID.

        Raises:
            NotFoundError: If no snapshot has this id
            StorageError: If the read fails or the stored record is corrupt
        """
        with self._reading("get snapshot") as session:
            row = session.get(HistoricalSnapshot, snapshot_id)
            if row is None:
                raise NotFoundError(entity_type="SystemSnapshot", entity_id=snapshot_id)
            snapshots, skipped = self._decode_rows([row])

        if skipped:
            raise StorageError(
                "Stored snapshot is corrupt",
                details={"snapshot_id": snapshot_id, "corrupt": True},
            )
        return snapshots[0]

    def latest(self, batch_size: int = 16) -> Optional[SystemSnapshot]:
        """
        Newest readable snapshot, or None when no stored row is readable.

        Pages backward through ``(timestamp_ms, id)`` past corrupt rows, so
        a run of damaged recent rows does not hide older valid ones.
        """
        last: Optional[Tuple[int, int]] = None
        with self._reading("get latest snapshot") as session:
            while True:
                stmt = select(HistoricalSnapshot)
                if last is not None:
                    last_ts, last_id = last
                    stmt = stmt.where(
                        or_(
                            HistoricalSnapshot.timestamp_ms < last_ts,
                            and_(
                                HistoricalSnapshot.timestamp_ms == last_ts,
                                HistoricalSnapshot.id < last_id,
                            ),
                        )
                    )
                stmt = stmt.order_by(
                    desc(HistoricalSnapshot.timestamp_ms), desc(HistoricalSnapshot.id)
                ).limit(batch_size)

                rows = list(session.scalars(stmt).all())
                for row in rows:
                    snapshots, _ = self._decode_rows([row])
                    if snapshots:
                        return snapshots[0]
                if len(rows) < batch_size:
                    return None

                last = (rows[-1].timestamp_ms, rows[-1].id)
                session.expunge_all()

    def fetch_range(
        self,
        start: Optional[datetime],
        end: Optional[datetime],
        limit: Optional[int] = None,
    ) -> Tuple[List[SystemSnapshot], int, bool]:
        """
        Materialize snapshots with ``start <= timestamp < end``.

        Args:
            start: Inclusive lower bound, or None for unbounded
            end: Exclusive upper bound, or None for unbounded
            limit: Maximum stored rows to read, or None for no cap

        Returns:
            Tuple of (snapshots in ascending order, rows skipped as corrupt,
            whether more rows matched than ``limit``)
        """
        stmt = (
            select(HistoricalSnapshot)
            .where(*_range_filter(_optional_ms(start), _optional_ms(end)))
            .order_by(HistoricalSnapshot.timestamp_ms, HistoricalSnapshot.id)
        )
        if limit is not None:
            stmt = stmt.limit(limit + 1)

        with self._reading("query snapshot range") as session:
            rows = list(session.scalars(stmt).all())
            capped = limit is not None and len(rows) > limit
            if capped:
                rows = rows[:limit]
            snapshots, skipped = self._decode_rows(rows)

        return snapshots, skipped, capped

    @contextmanager
    def open_scan(
        self,
        start: Optional[datetime],
        end: Optional[datetime],
        batch_size: int = 500,
    ) -> Generator[RangeScan, None, None]:
        """
        Open a streaming scan over ``[start, end)``.

        Everything read through the scan comes from one read transaction;
        the connection is released when the context exits.
        """
        with self._reading("scan snapshot range") as session:
            yield RangeScan(
                self, session, _optional_ms(start), _optional_ms(end), batch_size
            )

    def count(self) -> int:
        """Total stored snapshots, read from the maintained counter."""
        with self._reading("count snapshots") as session:
            value = session.execute(
                select(StoreCounter.value).where(StoreCounter.name == RECORD_COUNT)
            ).scalar_one_or_none()
        return int(value or 0)

    def min_timestamp(self) -> Optional[datetime]:
        """Oldest stored timestamp via the timestamp index."""
        with self._reading("read oldest timestamp") as session:
            value = session.execute(
                select(func.min(HistoricalSnapshot.timestamp_ms))
            ).scalar_one_or_none()
        return from_epoch_ms(value) if value is not None else None

    def max_timestamp(self) -> Optional[datetime]:
        """Newest stored timestamp via the timestamp index."""
        with self._reading("read newest timestamp") as session:
            value = session.execute(
                select(func.max(HistoricalSnapshot.timestamp_ms))
            ).scalar_one_or_none()
        return from_epoch_ms(value) if value is not None else None
