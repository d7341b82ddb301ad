"""
Timeframe parsing and timestamp bucketing.

Timeframes are strings like "1m", "5m", "1h" or "1d". Candle timestamps are
epoch milliseconds aligned to the start of their bucket.
"""

import math
import re
from dataclasses import dataclass

MINUTE_MS = 60_000
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS

_UNIT_MS = {
    "m": MINUTE_MS,
    "h": HOUR_MS,
    "d": DAY_MS,
}

_TIMEFRAME_PATTERN = re.compile(r"^(\d+)([mhd])$")


@dataclass(frozen=True)
class ParsedTimeframe:
    """Timeframe broken into count, unit and total milliseconds."""
    count: int
    unit: str
    ms: int


def parse_timeframe(timeframe: str) -> ParsedTimeframe:
    """
    Parse a timeframe string.

    Args:
        timeframe: Timeframe like "1m", "15m", "4h", "1d" (case-insensitive).

    Returns:
        ParsedTimeframe.

    Raises:
        ValueError: If the format is wrong or the period is not positive.
    """
    normalized = str(timeframe).strip().lower()
    match = _TIMEFRAME_PATTERN.match(normalized)
    if not match:
        raise ValueError(
            f'Invalid timeframe format: "{timeframe}". '
            'Expected format like "1m", "5m", "1h", "1d"'
        )

    count = int(match.group(1))
    if count <= 0:
        raise ValueError(
            f'Invalid timeframe: period must be positive, got {count} in "{timeframe}"'
        )

    unit = match.group(2)
    return ParsedTimeframe(count=count, unit=unit, ms=count * _UNIT_MS[unit])


def timeframe_to_ms(timeframe: str) -> int:
    """Duration of one timeframe bucket in milliseconds."""
    return parse_timeframe(timeframe).ms


def bucket_timestamp(timestamp: float, timeframe_ms: int) -> int:
    """
    Floor a timestamp to the start of its bucket.

    Raises:
        ValueError: On a negative or non-finite timestamp, or a non-positive bucket size.
    """
    if not math.isfinite(timestamp) or timestamp < 0:
        raise ValueError(f"Invalid timestamp: {timestamp}")
    if timeframe_ms <= 0:
        raise ValueError(f"Invalid timeframe ms: {timeframe_ms}")
    return int(timestamp // timeframe_ms) * timeframe_ms


def is_bucket_aligned(timestamp: int, timeframe_ms: int) -> bool:
    return bucket_timestamp(timestamp, timeframe_ms) == timestamp


def utc_day_start(timestamp: int) -> int:
    """Start of the UTC day containing the timestamp."""
    return bucket_timestamp(timestamp, DAY_MS)
