"""
Time Utilities

Upstream providers stamp candles in milliseconds since epoch; downstream
charting consumers want integer seconds. The helpers here do that
conversion the same way everywhere so historical and live candles line up.
"""

import math
from datetime import datetime, timezone
from typing import Union


def ms_to_seconds(timestamp: Union[int, float, str]) -> int:
    """
    Convert a millisecond Unix timestamp to whole seconds.

    Sub-second precision is dropped by truncation.

    Args:
        timestamp: Milliseconds since epoch (numbers or numeric strings)

    Returns:
        int: Seconds since epoch

    Raises:
        ValueError: If the value is not numeric, not finite or negative

    Examples:
        >>> ms_to_seconds(1700000000000)
        1700000000
        >>> ms_to_seconds("2000")
        2
        >>> ms_to_seconds(1999)
        1
    """
    try:
        value = float(timestamp)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid timestamp: {timestamp!r}") from e

    if not math.isfinite(value):
        raise ValueError(f"Invalid timestamp: {timestamp!r}")
    if value < 0:
        raise ValueError(f"Timestamp cannot be negative: {timestamp}")

    return int(value) // 1000


def current_utc_timestamp(milliseconds: bool = False) -> int:
    """
    Get current UTC timestamp.

    Args:
        milliseconds: If True, return milliseconds; if False, return seconds

    Examples:
        >>> current_utc_timestamp()
        1704110400
        >>> current_utc_timestamp(milliseconds=True)
        1704110400000
    """
    timestamp = datetime.now(timezone.utc).timestamp()
    if milliseconds:
        return int(timestamp * 1000)
    return int(timestamp)
