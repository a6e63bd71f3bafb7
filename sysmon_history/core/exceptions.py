"""
Custom exceptions for the metrics store.

Defines hierarchy of application-specific exceptions for
clean error handling and proper HTTP status code mapping.
"""

from typing import Any, Dict, Optional


class MetricsStoreException(Exception):
    """
    Base exception for all store errors.

    All custom exceptions should inherit from this class.
    """

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize exception.

        Args:
            message: Human-readable error message
            status_code: HTTP status code to return
            details: Additional error context
        """
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API response."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(MetricsStoreException):
    """
    Snapshot validation error.

    Raised when a snapshot is malformed at append time, e.g. a percent
    outside [0, 100] or a disk whose used space exceeds its total space.
    """

    def __init__(
        self,
        message: str = "Validation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, status_code=422, details=details)


class InvalidRangeError(MetricsStoreException):
    """
    Invalid time range error.

    Raised when a range query has ``start > end`` or unparseable bounds.
    """

    def __init__(
        self,
        message: str = "Invalid time range",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, status_code=400, details=details)


class NotFoundError(MetricsStoreException):
    """
    Snapshot not found error.

    Raised when a requested snapshot id does not exist in the store.
    """

    def __init__(
        self, entity_type: str, entity_id: Any, details: Optional[Dict[str, Any]] = None
    ):
        message = f"{entity_type} with id '{entity_id}' not found"
        details = details or {}
        details.update(
            {
                "entity_type": entity_type,
                "entity_id": str(entity_id),
            }
        )
        super().__init__(message=message, status_code=404, details=details)


class StorageError(MetricsStoreException):
    """
    Storage operation error.

    Raised when a read, write or delete against the underlying store fails
    (disk full, permission denied, locked database). Never retried internally.
    """

    def __init__(
        self,
        message: str = "Storage operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, status_code=500, details=details)


class StorageConnectionError(StorageError):
    """
    Storage connection error.

    Raised when the store is used before ``init()`` or cannot be opened.
    """

    def __init__(
        self,
        message: str = "Failed to open metrics store",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, details=details)


class ExportError(MetricsStoreException):
    """
    CSV export error.

    Raised when the range query or the file write behind an export fails.
    No partial file is left behind.
    """

    def __init__(
        self,
        message: str = "Export failed",
        details: Optional[Dict[str, Any]] = None,
        status_code: int = 500,
    ):
        super().__init__(message=message, status_code=status_code, details=details)


class ExportCancelledError(ExportError):
    """
    Export cancelled by the caller.

    Raised when the cancellation event is set between export batches.
    """

    def __init__(
        self,
        message: str = "Export cancelled",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, details=details, status_code=499)


class ConfigurationError(MetricsStoreException):
    """
    Configuration error.

    Raised when application configuration is invalid.
    """

    def __init__(
        self,
        message: str = "Invalid configuration",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, status_code=500, details=details)
