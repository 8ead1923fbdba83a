"""
Confirmation model: the timed offer extended to the practice's chosen applicant.

Each selection round creates one confirmation row. Rows are never reused; a
rejected or expired round stays in the table as LOCUM_REJECTED, which is what
prevents the same locum from being selected again for that request.
"""

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import Enum, ForeignKey, Index, Integer, String, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from core.constants import ID_LENGTH, MAX_REASON_LENGTH
from core.database import Base, UTCDateTime
from utils.id_utils import new_id


class ConfirmationStatus(str, enum.Enum):
    PRACTICE_CONFIRMED = "PRACTICE_CONFIRMED"
    LOCUM_CONFIRMED = "LOCUM_CONFIRMED"
    LOCUM_REJECTED = "LOCUM_REJECTED"


class AppointmentConfirmation(Base):
    """Selection round for a request, awaiting the chosen locum's answer."""

    __tablename__ = "appointment_confirmations"

    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True, default=new_id)
    request_id: Mapped[str] = mapped_column(ForeignKey("appointment_requests.id"))
    chosen_locum_id: Mapped[str] = mapped_column(String(ID_LENGTH))

    sequence: Mapped[int] = mapped_column(Integer)
    """1 for the first selection round of a request, 2 for the next, and so on."""

    status: Mapped[ConfirmationStatus] = mapped_column(
        Enum(ConfirmationStatus, native_enum=False, length=30),
        default=ConfirmationStatus.PRACTICE_CONFIRMED,
    )

    expires_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    """Deadline for the locum's answer. NULL means the offer never expires."""

    rejection_reason: Mapped[Optional[str]] = mapped_column(String(MAX_REASON_LENGTH), nullable=True)
    locum_responded_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime)

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now > self.expires_at

    __table_args__ = (
        UniqueConstraint('request_id', 'sequence', name='uq_confirmation_request_sequence'),
        # At most one open offer per request
        Index(
            'uq_confirmation_active_per_request',
            'request_id',
            unique=True,
            postgresql_where=text("status = 'PRACTICE_CONFIRMED'"),
            sqlite_where=text("status = 'PRACTICE_CONFIRMED'"),
        ),
        Index('idx_appointment_confirmations_locum_status', 'chosen_locum_id', 'status'),
        Index('idx_appointment_confirmations_status_expires', 'status', 'expires_at'),
    )
