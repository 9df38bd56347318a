"""
Time Utilities

Different exchanges return timestamps in different units:
- Binance, Bybit, MEXC, OKX: milliseconds since epoch (e.g., 1704110400000)
- Gate: seconds since epoch (e.g., 1704110400)

Candles are keyed by epoch milliseconds everywhere in the system. These
helpers do the conversion at ingestion time.
"""

import time
from typing import Union


def seconds_to_millis(timestamp: Union[int, float, str]) -> int:
    """
    Convert an epoch-seconds timestamp (number or numeric text) to milliseconds.

    Examples:
        >>> seconds_to_millis("1704110400")
        1704110400000
        >>> seconds_to_millis(1704110400)
        1704110400000

    Raises:
        ValueError: If the value is not numeric or is negative
    """
    value = int(float(timestamp))
    if value < 0:
        raise ValueError(f"Timestamp cannot be negative: {timestamp}")
    return value * 1000


def to_epoch_millis(timestamp: Union[int, float, str]) -> int:
    """
    Normalize a millisecond timestamp given as number or text to int.

    Examples:
        >>> to_epoch_millis("1704110400000")
        1704110400000
    """
    value = int(float(timestamp))
    if value < 0:
        raise ValueError(f"Timestamp cannot be negative: {timestamp}")
    return value


def current_utc_timestamp(milliseconds: bool = False) -> int:
    """
    Get current UTC timestamp.

    Examples:
        >>> current_utc_timestamp()
        1704110400
        >>> current_utc_timestamp(milliseconds=True)
        1704110400000
    """
    now = time.time()
    return int(now * 1000) if milliseconds else int(now)
