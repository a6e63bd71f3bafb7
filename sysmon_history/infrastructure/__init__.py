"""
Infrastructure layer initialization.

Exports infrastructure components like background tasks.
"""

from sysmon_history.infrastructure.tasks.scheduler import RetentionScheduler

__all__ = [
    "RetentionScheduler",
]
