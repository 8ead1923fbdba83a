"""
Penalty calculation for late cancellation of confirmed bookings.

Two rules apply to a CONFIRMED booking:
- Self-service cancellation (locum or practice acting on their own booking) is
  refused outright within NO_CANCELLATION_WINDOW_HOURS of the start.
- Administrative cancellation bypasses that block, and instead records a
  PENDING penalty for the party at fault.

Penalty hours (charged at the locum's hourly rate):
- Locum cancelling within 48 hours: 3 hours, 6 hours within 24 hours.
- Practice cancelling within 24 hours: 6 hours. Between 24 and 48 hours: none.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from core.constants import (
    LOCUM_PENALTY_HOURS,
    LOCUM_SHORT_NOTICE_PENALTY_HOURS,
    NO_CANCELLATION_WINDOW_HOURS,
    PENALTY_SHORT_NOTICE_HOURS,
    PRACTICE_PENALTY_HOURS,
)
from models import Booking, BookingStatus, CancellationPenalty, CancelledBy, PenaltyStatus
from services.errors import CancellationWindowError, InvalidStateError
from utils.datetime_utils import hours_between

logger = logging.getLogger(__name__)


class PenaltyCalculator:
    """Evaluates the 48-hour rule and derives penalty records."""

    @staticmethod
    def hours_until_appointment(booking: Booking, now: datetime) -> float:
        return hours_between(now, booking.appointment_start)

    @staticmethod
    def ensure_cancellable(booking: Booking, now: datetime) -> None:
        """
        Guard for self-service cancellation.

        Raises:
            InvalidStateError: If the booking is not CONFIRMED
            CancellationWindowError: If the appointment starts within the no-cancellation window
        """
        if booking.status != BookingStatus.CONFIRMED:
            raise InvalidStateError("Only confirmed bookings can be cancelled", booking.id)

        hours_until = PenaltyCalculator.hours_until_appointment(booking, now)
        if hours_until <= NO_CANCELLATION_WINDOW_HOURS:
            raise CancellationWindowError(
                f"Cannot cancel appointment within {NO_CANCELLATION_WINDOW_HOURS} hours of the scheduled time",
                booking.id,
            )

    @staticmethod
    def penalty_hours_for(cancelled_party_type: str, hours_until: float) -> Optional[int]:
        """Penalty hours owed by the cancelling party, or None when no penalty applies."""
        if hours_until > NO_CANCELLATION_WINDOW_HOURS:
            return None
        if cancelled_party_type == CancelledBy.LOCUM.value:
            if hours_until <= PENALTY_SHORT_NOTICE_HOURS:
                return LOCUM_SHORT_NOTICE_PENALTY_HOURS
            return LOCUM_PENALTY_HOURS
        if hours_until <= PENALTY_SHORT_NOTICE_HOURS:
            return PRACTICE_PENALTY_HOURS
        return None

    @staticmethod
    def on_cancel(
        booking: Booking,
        cancelled_by: CancelledBy,
        now: datetime,
        cancelled_party_type: Optional[str] = None,
        hourly_rate: Optional[Decimal] = None,
        reason: Optional[str] = None,
    ) -> Optional[CancellationPenalty]:
        """
        Build the penalty for cancelling a booking, if one is owed.

        The returned record is not yet added to a session.

        Args:
            booking: Booking being cancelled (must still be CONFIRMED)
            cancelled_by: Who performs the cancellation
            now: Cancellation instant
            cancelled_party_type: 'locum' or 'practice', the party at fault.
                Defaults to cancelled_by; required when an admin cancels.
            hourly_rate: Locum's hourly rate, if known
            reason: Free-text reason stored on the penalty

        Returns:
            PENDING CancellationPenalty, or None when no penalty applies
        """
        if booking.status != BookingStatus.CONFIRMED:
            return None

        party_type = cancelled_party_type or cancelled_by.value
        if party_type not in (CancelledBy.LOCUM.value, CancelledBy.PRACTICE.value):
            raise ValueError(f"Penalty party must be 'locum' or 'practice', got {party_type!r}")

        hours_until = PenaltyCalculator.hours_until_appointment(booking, now)
        penalty_hours = PenaltyCalculator.penalty_hours_for(party_type, hours_until)
        if penalty_hours is None:
            return None

        party_id = booking.locum_id if party_type == CancelledBy.LOCUM.value else booking.practice_id
        amount = None
        if hourly_rate is not None:
            amount = (Decimal(penalty_hours) * Decimal(hourly_rate)).quantize(Decimal("0.01"))

        logger.info(
            f"Penalty of {penalty_hours}h for {party_type} {party_id} on booking {booking.id} "
            f"({hours_until:.1f}h before start)"
        )
        return CancellationPenalty(
            booking_id=booking.id,
            cancelled_by=cancelled_by,
            cancelled_party_id=party_id,
            cancelled_party_type=party_type,
            status=PenaltyStatus.PENDING,
            appointment_start=booking.appointment_start,
            cancellation_time=now,
            hours_before_appointment=hours_until,
            penalty_hours=penalty_hours,
            hourly_rate=hourly_rate,
            penalty_amount=amount,
            reason=reason or f"Cancelled by {cancelled_by.value}",
            created_at=now,
        )
