"""
Utility functions for parsing usage logs.
"""

import math
from datetime import datetime, timezone
from typing import Any

from dateutil import parser as date_parser

# Largest counter that fits a 32-bit INTEGER column on every backend
MAX_TOKEN_COUNT = 2**31 - 1


def parse_iso_timestamp(timestamp_str: str) -> datetime:
    """
    Parse an ISO 8601 timestamp string to a timezone-aware datetime.

    Naive timestamps are interpreted as UTC.

    Args:
        timestamp_str: ISO 8601 formatted timestamp (e.g., "2025-10-16T19:12:28.024Z")

    Returns:
        Parsed datetime object (timezone-aware)

    Raises:
        ValueError: If the timestamp string is invalid
    """
    try:
        parsed = date_parser.isoparse(timestamp_str)
    except (ValueError, TypeError, OverflowError) as e:
        raise ValueError(f"Invalid timestamp: {timestamp_str}") from e

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def to_epoch_ms(value: datetime) -> int:
    """Convert an aware datetime to integer epoch milliseconds."""
    return int(round(value.timestamp() * 1000))


def ms_to_iso(epoch_ms: int) -> str:
    """
    Format epoch milliseconds as an ISO 8601 UTC string.

    Example:
        >>> ms_to_iso(0)
        '1970-01-01T00:00:00.000Z'
    """
    dt = datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def coerce_int(value: Any) -> int:
    """
    Return value as an int token counter, 0 when absent or not numeric.

    Raises:
        ValueError: If value is a number outside 0..MAX_TOKEN_COUNT or not finite
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    if isinstance(value, float) and not math.isfinite(value):
        raise ValueError(f"token count is not finite: {value}")
    if value < 0 or value > MAX_TOKEN_COUNT:
        raise ValueError(f"token count out of range: {value}")
    return int(value)


def coerce_float(value: Any) -> float:
    """
    Return value as a float, 0.0 when absent or not numeric.

    Raises:
        ValueError: If value is not finite
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    try:
        result = float(value)
    except OverflowError as e:
        raise ValueError(f"cost is not finite: {value}") from e
    if not math.isfinite(result):
        raise ValueError(f"cost is not finite: {value}")
    return result
