"""
Domain models initialization.

Exports all SQLAlchemy ORM models.
"""

from sysmon_history.domain.models.base import Base
from sysmon_history.domain.models.snapshot import (
    RECORD_COUNT,
    DiskUsageEntry,
    HistoricalSnapshot,
    StoreCounter,
)

__all__ = [
    "Base",
    "HistoricalSnapshot",
    "DiskUsageEntry",
    "StoreCounter",
    "RECORD_COUNT",
]
