"""
Timestamp utilities for the metrics store.

All snapshot timestamps are UTC with millisecond precision and are
persisted as integer epoch milliseconds.

Design rules:
- Aware datetimes are converted to UTC
- Naive datetimes are interpreted as UTC (no local-time guessing)
- Sub-millisecond precision is truncated, never rounded up
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Union

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

TimestampLike = Union[datetime, str]


def to_utc(dt: datetime) -> datetime:
    """
    Normalize a datetime to UTC, truncated to milliseconds.

    Args:
        dt: datetime object (naive or aware)

    Returns:
        Aware UTC datetime with microseconds rounded down to whole ms
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)
    return dt.replace(microsecond=(dt.microsecond // 1000) * 1000)


def utc_now() -> datetime:
    """Current UTC time at millisecond precision."""
    return to_utc(datetime.now(timezone.utc))


def to_epoch_ms(dt: datetime) -> int:
    """Convert a datetime to integer epoch milliseconds."""
    delta = to_utc(dt) - _EPOCH
    return (delta.days * 86_400 + delta.seconds) * 1000 + delta.microseconds // 1000


def from_epoch_ms(value: int) -> datetime:
    """Convert integer epoch milliseconds back to an aware UTC datetime."""
    return _EPOCH + timedelta(milliseconds=int(value))


def parse_timestamp(value: Optional[TimestampLike]) -> Optional[datetime]:
    """
    Parse an ISO-8601 string or datetime into an aware UTC datetime.

    Handles formats like:
    - "2024-01-15T10:30:00Z"
    - "2024-01-15T10:30:00.123+05:30"
    - "2024-01-15T10:30:00"            (treated as UTC)

    Args:
        value: ISO-8601 string, datetime, or None

    Returns:
        UTC datetime, or None when value is None

    Raises:
        ValueError: If the string is not valid ISO-8601
        OverflowError: If the value falls outside the datetime range in UTC
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_utc(value)
    if not isinstance(value, str):
        raise ValueError(f"Unsupported timestamp value: {value!r}")

    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    return to_utc(datetime.fromisoformat(text))


def format_iso_ms(dt: datetime) -> str:
    """
    Format a datetime as ISO-8601 UTC with milliseconds and a Z suffix.

    Example: "2024-01-15T10:30:00.123Z"
    """
    return to_utc(dt).replace(tzinfo=None).isoformat(timespec="milliseconds") + "Z"
