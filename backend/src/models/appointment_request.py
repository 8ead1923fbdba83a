"""
Appointment request model representing a work slot posted by a practice.

A request is the root of the matching lifecycle: locums apply to it, the
practice selects one applicant, and the applicant's confirmation turns it into
a booking. Requests are never deleted; cancellation is a status change so the
history of applications and confirmations stays auditable.
"""

import enum
from datetime import date as date_type, datetime
from typing import Optional

from sqlalchemy import Date, Enum, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from core.constants import ID_LENGTH, MAX_REASON_LENGTH, MAX_STRING_LENGTH
from core.database import Base, UTCDateTime
from utils.datetime_utils import local_instant
from utils.id_utils import new_id


class RequestStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"


# CONFIRMED -> CANCELLED only happens when the request's booking is cancelled
_ALLOWED_TRANSITIONS = {
    RequestStatus.PENDING: {RequestStatus.CONFIRMED, RequestStatus.CANCELLED},
    RequestStatus.CONFIRMED: {RequestStatus.CANCELLED},
    RequestStatus.CANCELLED: set(),
}


class AppointmentRequest(Base):
    """
    A posted work slot awaiting applicants.

    The slot is described by a local date plus HH:MM start and end times; the
    absolute instant is derived with the marketplace timezone (see
    `appointment_start`).
    """

    __tablename__ = "appointment_requests"

    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True, default=new_id)

    practice_id: Mapped[str] = mapped_column(String(ID_LENGTH))
    """Practice that posted (and owns) the request."""

    branch_id: Mapped[Optional[str]] = mapped_column(String(ID_LENGTH), nullable=True)
    """Optional branch of the practice where the work takes place."""

    appointment_date: Mapped[date_type] = mapped_column(Date)
    start_time: Mapped[str] = mapped_column(String(5))
    """Local start time, HH:MM."""

    end_time: Mapped[str] = mapped_column(String(5))
    """Local end time, HH:MM."""

    location: Mapped[str] = mapped_column(String(MAX_STRING_LENGTH))
    required_role: Mapped[str] = mapped_column(String(100))

    status: Mapped[RequestStatus] = mapped_column(
        Enum(RequestStatus, native_enum=False, length=20),
        default=RequestStatus.PENDING,
    )
    """Current status. Valid values: PENDING, CONFIRMED, CANCELLED (terminal)."""

    auto_cancel_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    """
    When the request cancels itself if nobody has applied.

    NULL once someone applies (or the request leaves PENDING). This is the
    durable copy of the in-memory auto-cancel timer: the periodic sweep and the
    startup restore both work from this column.
    """

    cancellation_reason: Mapped[Optional[str]] = mapped_column(String(MAX_REASON_LENGTH), nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime)

    @property
    def appointment_start(self) -> datetime:
        """Absolute (UTC) instant at which the appointment starts."""
        return local_instant(self.appointment_date, self.start_time)

    @property
    def is_terminal(self) -> bool:
        return self.status == RequestStatus.CANCELLED

    def can_transition_to(self, new_status: RequestStatus) -> bool:
        """Check the request state machine for a PENDING/CONFIRMED/CANCELLED move."""
        return new_status in _ALLOWED_TRANSITIONS[self.status]

    __table_args__ = (
        Index('idx_appointment_requests_practice', 'practice_id'),
        Index('idx_appointment_requests_status_date', 'status', 'appointment_date'),
        # Sweep query: PENDING requests whose auto-cancel time has passed
        Index('idx_appointment_requests_status_auto_cancel', 'status', 'auto_cancel_at'),
    )
