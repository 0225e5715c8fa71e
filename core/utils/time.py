"""
Time Utilities

Price sources report timestamps in different formats:
- The oracle: milliseconds since epoch (e.g., 1704110400000)
- Some vendors: seconds since epoch (e.g., 1704110400)
- We need: milliseconds since epoch everywhere in our schemas

The utilities in this module normalize timestamp formats so that cache ages,
quote timestamps and stream updates can be compared directly.
"""

from datetime import datetime, timezone
from typing import Any, Optional


def datetime_to_timestamp(dt: datetime, milliseconds: bool = False) -> int:
    """
    Convert a datetime object to Unix timestamp.

    Args:
        dt: Datetime object (can be naive or timezone-aware)
        milliseconds: If True, return milliseconds; if False, return seconds

    Returns:
        int: Unix timestamp in seconds or milliseconds

    Examples:
        >>> dt = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        >>> datetime_to_timestamp(dt, milliseconds=True)
        1704110400000

    Notes:
        - If datetime is naive (no timezone), UTC is assumed
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)

    if milliseconds:
        return int(dt.timestamp() * 1000)

    return int(dt.timestamp())


def current_utc_timestamp(milliseconds: bool = False) -> int:
    """
    Get current UTC timestamp.

    Examples:
        >>> current_utc_timestamp(milliseconds=True)
        1704110400000
    """
    return datetime_to_timestamp(datetime.now(timezone.utc), milliseconds)


def current_utc_datetime() -> datetime:
    """Get current time as a timezone-aware datetime in UTC."""
    return datetime.now(timezone.utc)


def normalize_timestamp_ms(value: Any, default: Optional[int] = None) -> int:
    """
    Normalize a vendor timestamp to milliseconds since epoch.

    Detection Logic:
        - If value > 1e12 (1 trillion): already milliseconds
        - Otherwise: seconds, multiplied by 1000

    Args:
        value: Timestamp as int, float or numeric string (may be None)
        default: Returned when value is missing or unparsable (defaults to now)

    Examples:
        >>> normalize_timestamp_ms(1704110400)
        1704110400000
        >>> normalize_timestamp_ms("1704110400000")
        1704110400000
    """
    if default is None:
        default = current_utc_timestamp(milliseconds=True)

    try:
        timestamp = float(value)
    except (TypeError, ValueError):
        return default

    if timestamp <= 0:
        return default

    if timestamp > 1e12:
        return int(timestamp)

    return int(timestamp * 1000)
