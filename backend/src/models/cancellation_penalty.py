"""
Cancellation penalty model.

A penalty is recorded when a confirmed booking is cancelled inside the
no-cancellation window through a path that bypasses the self-service guard.
Penalties start PENDING; charging is done by the external payment worker.
"""

import enum
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Enum, Float, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from core.constants import ID_LENGTH, MAX_REASON_LENGTH
from core.database import Base, UTCDateTime
from models.booking import CancelledBy
from utils.id_utils import new_id


class PenaltyStatus(str, enum.Enum):
    PENDING = "PENDING"
    CHARGED = "CHARGED"
    DISMISSED = "DISMISSED"


class CancellationPenalty(Base):
    """Late-cancellation charge awaiting payment or dismissal."""

    __tablename__ = "cancellation_penalties"

    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True, default=new_id)
    booking_id: Mapped[str] = mapped_column(ForeignKey("bookings.id"))

    cancelled_by: Mapped[CancelledBy] = mapped_column(
        Enum(CancelledBy, native_enum=False, length=20, values_callable=lambda e: [m.value for m in e])
    )
    """Who performed the cancellation (an admin may cancel on behalf of either party)."""

    cancelled_party_id: Mapped[str] = mapped_column(String(ID_LENGTH))
    cancelled_party_type: Mapped[str] = mapped_column(String(20))
    """Party that is charged: 'locum' or 'practice'."""

    status: Mapped[PenaltyStatus] = mapped_column(
        Enum(PenaltyStatus, native_enum=False, length=20),
        default=PenaltyStatus.PENDING,
    )

    appointment_start: Mapped[datetime] = mapped_column(UTCDateTime)
    cancellation_time: Mapped[datetime] = mapped_column(UTCDateTime)
    hours_before_appointment: Mapped[float] = mapped_column(Float)
    penalty_hours: Mapped[int] = mapped_column(Integer)
    hourly_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    penalty_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    """penalty_hours * hourly_rate; NULL when the rate was unknown at cancellation time."""

    reason: Mapped[Optional[str]] = mapped_column(String(MAX_REASON_LENGTH), nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime)

    __table_args__ = (
        Index('idx_cancellation_penalties_booking', 'booking_id'),
        Index('idx_cancellation_penalties_status', 'status'),
    )
