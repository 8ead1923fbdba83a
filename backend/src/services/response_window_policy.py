"""
Response window policy.

How long a party has to respond depends on how far ahead the appointment is.
The same tiers drive both timers in the lifecycle: the auto-cancel delay of an
unclaimed request and the expiry of a locum's confirmation offer.
"""

from datetime import date, datetime, timedelta

from core.constants import (
    RESPONSE_WINDOW_LONG_MINUTES,
    RESPONSE_WINDOW_MEDIUM_MINUTES,
    RESPONSE_WINDOW_MEDIUM_NOTICE_HOURS,
    RESPONSE_WINDOW_SHORT_MINUTES,
    RESPONSE_WINDOW_SHORT_NOTICE_HOURS,
)
from utils.datetime_utils import hours_between, local_instant


def window_for_hours(hours_until: float) -> timedelta:
    """
    Map notice (hours until the appointment) to a response window.

    Args:
        hours_until: Hours between the reference time and appointment start.
            Negative values (appointment already started) fall in the shortest tier.

    Returns:
        15 minutes below 24 hours, 60 minutes from 24 to 48 hours inclusive,
        120 minutes beyond 48 hours.
    """
    if hours_until < RESPONSE_WINDOW_SHORT_NOTICE_HOURS:
        return timedelta(minutes=RESPONSE_WINDOW_SHORT_MINUTES)
    if hours_until <= RESPONSE_WINDOW_MEDIUM_NOTICE_HOURS:
        return timedelta(minutes=RESPONSE_WINDOW_MEDIUM_MINUTES)
    return timedelta(minutes=RESPONSE_WINDOW_LONG_MINUTES)


def window_for(created_at: datetime, appointment_date: date, appointment_start_time: str) -> timedelta:
    """
    Response window for an appointment, measured from `created_at`.

    Args:
        created_at: Reference instant (request creation, or "now" when arming a timer)
        appointment_date: Local appointment date
        appointment_start_time: Local start time, HH:MM

    Returns:
        Duration the other party has to respond

    Example:
        ```python
        delay = window_for(now, request.appointment_date, request.start_time)
        scheduler.schedule(request.id, delay)
        ```
    """
    appointment_instant = local_instant(appointment_date, appointment_start_time)
    return window_for_hours(hours_between(created_at, appointment_instant))
