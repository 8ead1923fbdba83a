from datetime import datetime
from typing import Optional

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from core.constants import ID_LENGTH, MAX_REASON_LENGTH
from core.database import Base, UTCDateTime
from utils.id_utils import new_id


class IgnoredAppointment(Base):
    """A locum's opt-out from a request; hides it from that locum's queue."""

    __tablename__ = "ignored_appointments"

    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True, default=new_id)
    request_id: Mapped[str] = mapped_column(ForeignKey("appointment_requests.id"))
    locum_id: Mapped[str] = mapped_column(String(ID_LENGTH))
    reason: Mapped[Optional[str]] = mapped_column(String(MAX_REASON_LENGTH), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime)

    __table_args__ = (
        UniqueConstraint('request_id', 'locum_id', name='uq_ignored_appointment_request_locum'),
    )
