"""
API dependencies for dependency injection.

Provides common dependencies used across API endpoints.
"""

from fastapi import Request

from sysmon_history.core.exceptions import StorageConnectionError
from sysmon_history.domain.services.store import HistoricalMetricsStore


def get_store(request: Request) -> HistoricalMetricsStore:
    """
    Get the store instance attached to the application.

    Raises:
        StorageConnectionError: If the application has no initialized store
    """
    store = getattr(request.app.state, "store", None)
    if store is None or not store.is_ready:
        raise StorageConnectionError("Metrics store is not available")
    return store
