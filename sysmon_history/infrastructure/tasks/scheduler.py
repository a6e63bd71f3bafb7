"""
Background task scheduler.

Runs the retention policy periodically against a store instance.
"""

from typing import Optional

from apscheduler.schedulers.background import (
    BackgroundScheduler as APSBackgroundScheduler,
)
from apscheduler.triggers.interval import IntervalTrigger

from sysmon_history.core.config import Settings
from sysmon_history.core.exceptions import ConfigurationError, MetricsStoreException
from sysmon_history.core.logging import get_logger
from sysmon_history.domain.services.store import HistoricalMetricsStore

logger = get_logger(__name__)

RETENTION_JOB_ID = "retention_prune"


class RetentionScheduler:
    """
    Background scheduler for retention pruning.

    Manages periodic execution of ``store.prune(settings.retention_days)``
    using APScheduler.
    """

    def __init__(self, store: HistoricalMetricsStore, settings: Optional[Settings] = None):
        """Initialize retention scheduler."""
        self.store = store
        self.settings = settings or store.settings
        self.scheduler: Optional[APSBackgroundScheduler] = None

    @property
    def running(self) -> bool:
        return self.scheduler is not None and self.scheduler.running

    def run_retention(self) -> Optional[int]:
        """
        Run one retention pass.

        Errors are logged and swallowed so the next interval still runs.

        Returns:
            Number of deleted snapshots, or None if the pass failed
        """
        try:
            return self.store.prune(self.settings.retention_days)
        except MetricsStoreException as e:
            logger.error(
                "Error running retention task",
                error=e.message,
                error_type=e.__class__.__name__,
            )
            return None

    def start(self) -> None:
        """
        Start the background scheduler.

        Does nothing when retention is disabled in configuration.

        Raises:
            ConfigurationError: If the scheduler timezone is invalid
        """
        if not self.settings.retention_enabled:
            logger.info("Scheduled retention is disabled in configuration")
            return
        if self.running:
            return

        try:
            scheduler = APSBackgroundScheduler(timezone=self.settings.scheduler_timezone)
        except (ValueError, LookupError) as e:
            raise ConfigurationError(
                f"Invalid scheduler timezone: {self.settings.scheduler_timezone}",
                details={"error": str(e)},
            ) from e

        scheduler.add_job(
            self.run_retention,
            trigger=IntervalTrigger(minutes=self.settings.retention_interval_minutes),
            id=RETENTION_JOB_ID,
            name="Historical data retention",
            replace_existing=True,
            max_instances=1,  # Prevent concurrent executions
            coalesce=True,  # Combine missed executions
        )
        scheduler.start()
        self.scheduler = scheduler

        logger.info(
            "Retention scheduled",
            retention_days=self.settings.retention_days,
            interval_minutes=self.settings.retention_interval_minutes,
        )

    def stop(self) -> None:
        """Stop the background scheduler without waiting for a running pass."""
        if self.scheduler is not None:
            if self.scheduler.running:
                self.scheduler.shutdown(wait=False)
            self.scheduler = None
            logger.info("Retention scheduler stopped")
