"""
Notification payloads and the notifier seam.

Push/email/SMS delivery lives outside this service. The lifecycle only hands a
typed payload to a `Notifier` after its transaction has committed; delivery
failures are logged and never retried or propagated.
"""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Literal, Optional, Protocol, Union

from pydantic import BaseModel

logger = logging.getLogger(__name__)

UserType = Literal["locum", "practice"]


class ApplicationReceived(BaseModel):
    """Sent to the practice when a locum applies."""
    type: Literal["application_received"] = "application_received"
    request_id: str
    locum_id: str


class ApplicantSelected(BaseModel):
    """Sent to the chosen locum; they must answer before expires_at."""
    type: Literal["applicant_selected"] = "applicant_selected"
    request_id: str
    confirmation_id: str
    appointment_date: date
    start_time: str
    end_time: str
    location: str
    expires_at: Optional[datetime] = None


class SelectionConfirmed(BaseModel):
    type: Literal["selection_confirmed"] = "selection_confirmed"
    request_id: str
    booking_id: str
    locum_id: str


class SelectionRejected(BaseModel):
    """Sent to the practice when the chosen locum declines or lets the offer expire."""
    type: Literal["selection_rejected"] = "selection_rejected"
    request_id: str
    confirmation_id: str
    locum_id: str
    reason: str


class RequestCancelled(BaseModel):
    """Sent to applicants (and the booked locum) when a request is cancelled."""
    type: Literal["request_cancelled"] = "request_cancelled"
    request_id: str
    automatic: bool = False
    reason: Optional[str] = None


class BookingCancelled(BaseModel):
    type: Literal["booking_cancelled"] = "booking_cancelled"
    booking_id: str
    request_id: str
    cancelled_by: str
    reason: Optional[str] = None
    penalty_id: Optional[str] = None
    penalty_amount: Optional[Decimal] = None


NotificationPayload = Union[
    ApplicationReceived,
    ApplicantSelected,
    SelectionConfirmed,
    SelectionRejected,
    RequestCancelled,
    BookingCancelled,
]


class Notifier(Protocol):
    def notify(self, user_id: str, user_type: UserType, payload: NotificationPayload) -> None:
        ...


class LoggingNotifier:
    """Default notifier: records what would be delivered."""

    def notify(self, user_id: str, user_type: UserType, payload: NotificationPayload) -> None:
        logger.info(f"Notify {user_type} {user_id}: {payload.type} {payload.model_dump_json()}")


def send_notification(
    notifier: Notifier,
    user_id: str,
    user_type: UserType,
    payload: NotificationPayload,
) -> bool:
    """
    Fire-and-forget delivery.

    Returns:
        True if the notifier accepted the payload, False if it raised
    """
    try:
        notifier.notify(user_id, user_type, payload)
        return True
    except Exception as e:
        logger.error(
            f"Failed to send {payload.type} notification to {user_type} {user_id}: {e}",
            exc_info=True
        )
        return False
