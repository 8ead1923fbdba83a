"""
Confirmation expiry scanner.

Confirmation offers are not backed by timers. Instead, expiry is applied lazily
whenever a locum's pending offers are read (and periodically by the sweep
scheduler): every PRACTICE_CONFIRMED offer past its deadline is demoted to
LOCUM_REJECTED("expired") before anything is returned to the caller.
"""

import logging
from datetime import date, datetime
from typing import Callable, List, Optional

from pydantic import BaseModel
from sqlalchemy.orm import Session

from core.constants import REJECTION_REASON_EXPIRED
from models import AppointmentConfirmation, ApplicationStatus, ConfirmationStatus
from services.request_store import RequestStore
from utils.datetime_utils import NowFn, utc_now

logger = logging.getLogger(__name__)

ExpiredCallback = Callable[[List[AppointmentConfirmation]], None]


class PendingConfirmation(BaseModel):
    """An offer still awaiting the locum's answer."""
    confirmation_id: str
    request_id: str
    practice_id: str
    sequence: int
    appointment_date: date
    start_time: str
    end_time: str
    location: str
    created_at: datetime
    expires_at: Optional[datetime] = None
    time_left_seconds: Optional[int] = None


def reject_confirmation(
    db: Session,
    store: RequestStore,
    confirmation: AppointmentConfirmation,
    reason: str,
    now: datetime,
) -> None:
    """
    Record a LOCUM_REJECTED round and close the locum's application.

    Used for explicit rejections and for expiry, inside the caller's transaction.
    """
    confirmation.status = ConfirmationStatus.LOCUM_REJECTED
    confirmation.rejection_reason = reason
    confirmation.locum_responded_at = now

    application = store.get_application(db, confirmation.request_id, confirmation.chosen_locum_id)
    if application is not None:
        application.status = ApplicationStatus.REJECTED


class ConfirmationExpiryScanner:
    """Pull-based expiry of confirmation offers."""

    def __init__(
        self,
        store: RequestStore,
        now_fn: NowFn = utc_now,
        on_expired: Optional[ExpiredCallback] = None,
    ):
        self.store = store
        self.now_fn = now_fn
        self.on_expired = on_expired

    def _expire(self, locum_id: Optional[str]) -> List[AppointmentConfirmation]:
        now = self.now_fn()
        with self.store.transaction() as db:
            expired = self.store.list_expired_confirmations(db, now, locum_id=locum_id)
            for confirmation in expired:
                reject_confirmation(db, self.store, confirmation, REJECTION_REASON_EXPIRED, now)

        if expired:
            logger.info(
                f"Expired {len(expired)} confirmation(s)"
                + (f" for locum {locum_id}" if locum_id else "")
            )
            if self.on_expired is not None:
                try:
                    self.on_expired(expired)
                except Exception as e:
                    logger.exception(f"Error handling expired confirmations: {e}")
        return expired

    def sweep_expired(self) -> int:
        """
        Expire overdue offers of every locum.

        Returns:
            Number of confirmations demoted
        """
        return len(self._expire(locum_id=None))

    def list_pending_for_locum(self, locum_id: str) -> List[PendingConfirmation]:
        """
        Return the locum's still-valid offers, soonest deadline first.

        Overdue offers are demoted before the list is read.
        """
        self._expire(locum_id=locum_id)

        now = self.now_fn()
        pending: List[PendingConfirmation] = []
        with self.store.transaction() as db:
            for confirmation in self.store.list_open_confirmations(db, locum_id=locum_id):
                # Expired between the two transactions; the next read demotes it
                if confirmation.is_expired(now):
                    continue
                request = self.store.get_request(db, confirmation.request_id)
                if request is None:
                    continue
                time_left = None
                if confirmation.expires_at is not None:
                    time_left = max(0, int((confirmation.expires_at - now).total_seconds()))
                pending.append(PendingConfirmation(
                    confirmation_id=confirmation.id,
                    request_id=request.id,
                    practice_id=request.practice_id,
                    sequence=confirmation.sequence,
                    appointment_date=request.appointment_date,
                    start_time=request.start_time,
                    end_time=request.end_time,
                    location=request.location,
                    created_at=confirmation.created_at,
                    expires_at=confirmation.expires_at,
                    time_left_seconds=time_left,
                ))
        return pending
