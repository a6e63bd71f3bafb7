"""
Domain services initialization.

Exports the store facade and the services it is built from.
"""

from sysmon_history.domain.services.export import ExportService
from sysmon_history.domain.services.query import PRESET_WINDOWS, QueryEngine, RangeResult
from sysmon_history.domain.services.retention import RetentionService
from sysmon_history.domain.services.stats import StatsService
from sysmon_history.domain.services.store import HistoricalMetricsStore

__all__ = [
    "HistoricalMetricsStore",
    "QueryEngine",
    "RangeResult",
    "PRESET_WINDOWS",
    "RetentionService",
    "ExportService",
    "StatsService",
]
