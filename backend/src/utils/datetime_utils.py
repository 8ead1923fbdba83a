"""
Datetime utilities for consistent timezone handling across the application.

All instants are stored and compared as timezone-aware UTC datetimes.
Appointment dates and HH:MM start/end times are local to the marketplace and
are interpreted in APP_TZ (a fixed offset from UTC, see APP_UTC_OFFSET_HOURS).
"""

import logging
import re
from datetime import datetime, timezone, timedelta, date, time
from typing import Callable, Optional

from core.config import APP_UTC_OFFSET_HOURS

logger = logging.getLogger(__name__)

# Marketplace-local timezone constant
APP_TZ = timezone(timedelta(hours=APP_UTC_OFFSET_HOURS))

_HHMM_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")

NowFn = Callable[[], datetime]
"""Clock seam. Every policy and expiry computation takes its "now" from one of these."""


def utc_now() -> datetime:
    """
    Get current UTC datetime.

    Returns:
        Current timezone-aware datetime in UTC
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Ensure a datetime is timezone-aware UTC.

    Naive datetimes are assumed to already be UTC (this is how SQLite hands
    them back).

    Args:
        dt: Datetime to normalize

    Returns:
        Timezone-aware datetime in UTC, or None if input is None
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_time_string(value: str) -> time:
    """
    Parse a 24-hour HH:MM string.

    Args:
        value: Time string such as "09:30"

    Returns:
        time object

    Raises:
        ValueError: If the string is not a valid HH:MM time
    """
    if not isinstance(value, str) or not _HHMM_PATTERN.match(value.strip()):
        raise ValueError(f"Invalid time format: {value!r}. Expected HH:MM")
    hour, minute = value.strip().split(":")
    return time(int(hour), int(minute))


def local_instant(day: date, hhmm: str) -> datetime:
    """
    Combine a local appointment date and HH:MM time into an absolute instant.

    Args:
        day: Appointment date
        hhmm: Local time of day as HH:MM

    Returns:
        Timezone-aware datetime (UTC)
    """
    local = datetime.combine(day, parse_time_string(hhmm)).replace(tzinfo=APP_TZ)
    return local.astimezone(timezone.utc)


def hours_between(start: datetime, end: datetime) -> float:
    """Signed number of hours from start to end."""
    return (ensure_utc(end) - ensure_utc(start)).total_seconds() / 3600


def time_ranges_overlap(start_a: str, end_a: str, start_b: str, end_b: str) -> bool:
    """
    Check whether two same-day HH:MM ranges overlap.

    Ranges are half-open: 09:00-10:00 and 10:00-11:00 do not overlap.
    """
    a_start, a_end = parse_time_string(start_a), parse_time_string(end_a)
    b_start, b_end = parse_time_string(start_b), parse_time_string(end_b)
    return a_start < b_end and b_start < a_end
