"""
Store statistics service.

Aggregates counts and time bounds for the dashboard without scanning
snapshot rows.
"""

from typing import Optional

from sysmon_history.domain.repositories.snapshot import SnapshotRepository
from sysmon_history.domain.schemas.snapshot import StoreSummary


class StatsService:
    """
    Service for store statistics.
    """

    def __init__(self, repository: SnapshotRepository, database_path: Optional[str] = None):
        self.repository = repository
        self.database_path = database_path

    def summary(self) -> StoreSummary:
        """
        Total records plus oldest and newest timestamps.

        The total comes from the maintained counter, the bounds from the
        timestamp index.
        """
        return StoreSummary(
            total_records=self.repository.count(),
            oldest_timestamp=self.repository.min_timestamp(),
            newest_timestamp=self.repository.max_timestamp(),
            database_path=self.database_path,
            corrupt_records_skipped=self.repository.corrupt_records_skipped,
        )
