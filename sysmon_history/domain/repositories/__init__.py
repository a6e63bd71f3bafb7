"""
Domain repositories initialization.

Exports all repository classes for data access.
"""

from sysmon_history.domain.repositories.snapshot import RangeScan, SnapshotRepository

__all__ = [
    "SnapshotRepository",
    "RangeScan",
]
