"""
Retention service.

Deletes snapshots older than a configurable number of days. Scheduling is
someone else's job (see ``infrastructure.tasks.scheduler``).
"""

from datetime import datetime, timedelta, timezone
from typing import Callable

from sysmon_history.core.exceptions import ValidationError
from sysmon_history.core.logging import get_logger
from sysmon_history.core.timezone import format_iso_ms, utc_now
from sysmon_history.domain.repositories.snapshot import SnapshotRepository

logger = get_logger(__name__)


class RetentionService:
    """
    Service for enforcing the retention policy.
    """

    def __init__(
        self,
        repository: SnapshotRepository,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.repository = repository
        self.clock = clock

    def cutoff_for(self, retention_days: int) -> datetime:
        """
        Oldest timestamp that survives a prune with ``retention_days``.

        ``0`` yields the current instant, so everything older than now goes.
        A window reaching past the earliest representable date clamps to it,
        so nothing is deleted.

        Raises:
            ValidationError: If retention_days is not a non-negative integer
        """
        if isinstance(retention_days, bool) or not isinstance(retention_days, int):
            raise ValidationError(
                "retention_days must be an integer",
                details={"retention_days": repr(retention_days)},
            )
        if retention_days < 0:
            raise ValidationError(
                "retention_days must not be negative",
                details={"retention_days": retention_days},
            )
        try:
            return self.clock() - timedelta(days=retention_days)
        except OverflowError:
            return datetime.min.replace(tzinfo=timezone.utc)

    def prune(self, retention_days: int) -> int:
        """
        Delete snapshots older than ``retention_days`` days.

        Re-running after an interrupted prune simply deletes whatever is
        still older than the cutoff.

        Returns:
            Number of snapshots deleted
        """
        cutoff = self.cutoff_for(retention_days)
        deleted = self.repository.delete_before(cutoff)

        logger.info(
            "Pruned historical data",
            retention_days=retention_days,
            cutoff=format_iso_ms(cutoff),
            deleted=deleted,
        )
        return deleted
