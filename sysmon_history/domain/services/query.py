"""
Query engine for historical snapshots.

Answers ``[start, end)`` range queries in ascending ``(timestamp, id)``
order and resolves the dashboard's preset windows.
"""

from collections.abc import Sequence
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional, Tuple

from sysmon_history.core.exceptions import InvalidRangeError
from sysmon_history.core.logging import get_logger
from sysmon_history.core.timezone import TimestampLike, format_iso_ms, parse_timestamp, utc_now
from sysmon_history.domain.repositories.snapshot import SnapshotRepository
from sysmon_history.domain.schemas.snapshot import SystemSnapshot

logger = get_logger(__name__)

# Windows offered by the history viewer.
PRESET_WINDOWS = {
    "1h": timedelta(hours=1),
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
}

Window = Tuple[Optional[datetime], Optional[datetime]]


class RangeResult(Sequence):
    """
    Immutable, fully materialized result of a range query.

    Behaves like a tuple of ``SystemSnapshot``. ``capped`` is True when the
    window held more rows than the query cap and only the oldest ones were
    returned; ``skipped`` counts corrupt rows left out.
    """

    __slots__ = ("_snapshots", "capped", "skipped")

    def __init__(
        self,
        snapshots: Iterable[SystemSnapshot] = (),
        capped: bool = False,
        skipped: int = 0,
    ):
        self._snapshots = tuple(snapshots)
        self.capped = capped
        self.skipped = skipped

    def __getitem__(self, index):
        return self._snapshots[index]

    def __len__(self) -> int:
        return len(self._snapshots)

    def __repr__(self) -> str:
        return (
            f"RangeResult(records={len(self._snapshots)}, capped={self.capped}, "
            f"skipped={self.skipped})"
        )


class QueryEngine:
    """
    Range queries over the snapshot store.

    No maximum window size is enforced; instead at most ``max_records``
    rows are materialized per call and the result is flagged as capped.
    """

    def __init__(
        self,
        repository: SnapshotRepository,
        max_records: Optional[int] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.repository = repository
        self.max_records = max_records
        self.clock = clock

    @staticmethod
    def resolve_window(
        start: Optional[TimestampLike], end: Optional[TimestampLike]
    ) -> Window:
        """
        Parse and check window bounds.

        Raises:
            InvalidRangeError: If a bound is unparseable or ``start > end``
        """
        try:
            start_dt = parse_timestamp(start)
            end_dt = parse_timestamp(end)
        except (ValueError, OverflowError) as e:
            raise InvalidRangeError(
                f"Invalid timestamp: {e}",
                details={"start": str(start), "end": str(end)},
            ) from e

        if start_dt is not None and end_dt is not None and start_dt > end_dt:
            raise InvalidRangeError(
                "Range start is after range end",
                details={"start": format_iso_ms(start_dt), "end": format_iso_ms(end_dt)},
            )
        return start_dt, end_dt

    def preset_window(
        self, preset: str, now: Optional[datetime] = None
    ) -> Tuple[datetime, datetime]:
        """
        Resolve a named window ("1h", "24h", "7d", "30d") ending at ``now``.

        Raises:
            InvalidRangeError: If the preset is unknown
        """
        span = PRESET_WINDOWS.get(preset)
        if span is None:
            raise InvalidRangeError(
                f"Unknown time range preset '{preset}'",
                details={"allowed": sorted(PRESET_WINDOWS)},
            )
        end = parse_timestamp(now) if now is not None else self.clock()
        return end - span, end

    def range(
        self,
        start: Optional[TimestampLike] = None,
        end: Optional[TimestampLike] = None,
    ) -> RangeResult:
        """
        Snapshots with ``start <= timestamp < end`` in ascending order.

        Args:
            start: Inclusive lower bound (datetime or ISO-8601), None for open
            end: Exclusive upper bound (datetime or ISO-8601), None for open

        Returns:
            Materialized range result

        Raises:
            InvalidRangeError: If ``start > end`` or a bound is unparseable
            StorageError: If the underlying read fails
        """
        start_dt, end_dt = self.resolve_window(start, end)
        if start_dt is not None and start_dt == end_dt:
            return RangeResult()

        snapshots, skipped, capped = self.repository.fetch_range(
            start_dt, end_dt, limit=self.max_records
        )
        if capped:
            logger.warning(
                "Range query hit the record cap",
                max_records=self.max_records,
                start=format_iso_ms(start_dt) if start_dt else None,
                end=format_iso_ms(end_dt) if end_dt else None,
            )
        return RangeResult(snapshots, capped=capped, skipped=skipped)
