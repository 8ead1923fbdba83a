"""
Booking model representing a finalized, confirmed appointment.

Bookings are only ever created by a locum confirming their selection, and a
request has at most one booking.
"""

import enum
from datetime import date as date_type, datetime
from typing import Optional

from sqlalchemy import Date, Enum, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from core.constants import ID_LENGTH, MAX_REASON_LENGTH, MAX_STRING_LENGTH
from core.database import Base, UTCDateTime
from utils.datetime_utils import local_instant
from utils.id_utils import new_id


class BookingStatus(str, enum.Enum):
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"


class CancelledBy(str, enum.Enum):
    LOCUM = "locum"
    PRACTICE = "practice"
    ADMIN = "admin"


class Booking(Base):
    """Confirmed appointment between a practice and a locum."""

    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True, default=new_id)
    request_id: Mapped[str] = mapped_column(ForeignKey("appointment_requests.id"), unique=True)
    locum_id: Mapped[str] = mapped_column(String(ID_LENGTH))
    practice_id: Mapped[str] = mapped_column(String(ID_LENGTH))
    branch_id: Mapped[Optional[str]] = mapped_column(String(ID_LENGTH), nullable=True)

    booking_date: Mapped[date_type] = mapped_column(Date)
    start_time: Mapped[str] = mapped_column(String(5))
    end_time: Mapped[str] = mapped_column(String(5))
    location: Mapped[str] = mapped_column(String(MAX_STRING_LENGTH))

    status: Mapped[BookingStatus] = mapped_column(
        Enum(BookingStatus, native_enum=False, length=20),
        default=BookingStatus.CONFIRMED,
    )
    accept_time: Mapped[datetime] = mapped_column(UTCDateTime)

    cancel_by: Mapped[Optional[CancelledBy]] = mapped_column(
        Enum(CancelledBy, native_enum=False, length=20, values_callable=lambda e: [m.value for m in e]),
        nullable=True,
    )
    cancel_time: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(String(MAX_REASON_LENGTH), nullable=True)

    @property
    def appointment_start(self) -> datetime:
        """Absolute (UTC) instant at which the booked appointment starts."""
        return local_instant(self.booking_date, self.start_time)

    __table_args__ = (
        # Double-booking guard: confirmed bookings of a locum on a given day
        Index('idx_bookings_locum_date_status', 'locum_id', 'booking_date', 'status'),
        Index('idx_bookings_practice', 'practice_id'),
    )
