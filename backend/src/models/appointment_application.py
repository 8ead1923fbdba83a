"""
Application model: a locum's expression of interest in an appointment request.
"""

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import Enum, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from core.constants import ID_LENGTH, MAX_REASON_LENGTH
from core.database import Base, UTCDateTime
from utils.id_utils import new_id


class ApplicationStatus(str, enum.Enum):
    ACCEPTED = "ACCEPTED"
    PRACTICE_CONFIRMED = "PRACTICE_CONFIRMED"
    REJECTED = "REJECTED"


class AppointmentApplication(Base):
    """
    One locum applying to one request.

    A locum applies to a given request at most once; the unique constraint
    backs up the check the engine performs inside the apply transaction.
    """

    __tablename__ = "appointment_applications"

    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True, default=new_id)
    request_id: Mapped[str] = mapped_column(ForeignKey("appointment_requests.id"))
    locum_id: Mapped[str] = mapped_column(String(ID_LENGTH))

    status: Mapped[ApplicationStatus] = mapped_column(
        Enum(ApplicationStatus, native_enum=False, length=30),
        default=ApplicationStatus.ACCEPTED,
    )
    """ACCEPTED on apply, PRACTICE_CONFIRMED once selected, REJECTED once the locum declines or lets the offer expire."""

    message: Mapped[Optional[str]] = mapped_column(String(MAX_REASON_LENGTH), nullable=True)
    responded_at: Mapped[datetime] = mapped_column(UTCDateTime)

    __table_args__ = (
        UniqueConstraint('request_id', 'locum_id', name='uq_application_request_locum'),
        Index('idx_appointment_applications_request_status', 'request_id', 'status'),
        Index('idx_appointment_applications_locum', 'locum_id'),
    )
