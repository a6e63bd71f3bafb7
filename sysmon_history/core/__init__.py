"""
Core initialization module.

Exports core utilities and configuration.
"""

from sysmon_history.core.config import Settings, get_settings
from sysmon_history.core.exceptions import (
    ConfigurationError,
    ExportCancelledError,
    ExportError,
    InvalidRangeError,
    MetricsStoreException,
    NotFoundError,
    StorageConnectionError,
    StorageError,
    ValidationError,
)
from sysmon_history.core.logging import get_logger, setup_logging

__all__ = [
    # Configuration
    "Settings",
    "get_settings",
    # Exceptions
    "MetricsStoreException",
    "ValidationError",
    "InvalidRangeError",
    "NotFoundError",
    "StorageError",
    "StorageConnectionError",
    "ExportError",
    "ExportCancelledError",
    "ConfigurationError",
    # Logging
    "setup_logging",
    "get_logger",
]
