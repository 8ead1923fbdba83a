from datetime import datetime

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from core.constants import ID_LENGTH
from core.database import Base, UTCDateTime


class LocumScheduleLock(Base):
    """
    One row per locum, written by every booking confirmation of that locum.

    Confirmations of the same locum queue on this row, so the overlap check and
    the booking insert of one finish before the next one reads the schedule.
    """

    __tablename__ = "locum_schedule_locks"

    locum_id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    locked_at: Mapped[datetime] = mapped_column(UTCDateTime)
