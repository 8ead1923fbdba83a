"""
Appointment lifecycle engine.

Orchestrates the public operations of the locum marketplace: a practice posts a
request, locums apply, the practice selects one applicant, and the applicant
confirms (creating a booking) or rejects within a response window. Unclaimed
requests cancel themselves; unanswered offers expire.

Every operation runs as one transaction through the request store and either
returns its result or raises a `services.errors.LifecycleError`. Timers and
notifications are only touched after the transaction has committed.
"""

import enum
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Annotated, List, Optional, Tuple

from pydantic import AfterValidator, BaseModel

from core.config import AUTO_CANCEL_REARM_AFTER_REJECTION
from core.constants import REJECTION_REASON_EXPIRED, REJECTION_REASON_LOCUM
from models import (
    AppointmentApplication,
    AppointmentConfirmation,
    AppointmentRequest,
    ApplicationStatus,
    Booking,
    BookingStatus,
    CancellationPenalty,
    CancelledBy,
    ConfirmationStatus,
    IgnoredAppointment,
    RequestStatus,
)
from services.auto_cancel_scheduler import AutoCancelScheduler, get_auto_cancel_scheduler
from services.confirmation_expiry_scanner import (
    ConfirmationExpiryScanner,
    PendingConfirmation,
    reject_confirmation,
)
from services.errors import (
    ConfirmationExpiredError,
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    LifecycleError,
    NotFoundError,
)
from services.notifications import (
    ApplicantSelected,
    ApplicationReceived,
    BookingCancelled,
    LoggingNotifier,
    Notifier,
    RequestCancelled,
    SelectionConfirmed,
    SelectionRejected,
    send_notification,
)
from services.penalty_calculator import PenaltyCalculator
from services.request_store import RequestStore
from services.response_window_policy import window_for
from utils.datetime_utils import NowFn, local_instant, parse_time_string, utc_now
from utils.id_utils import new_id

logger = logging.getLogger(__name__)

AUTO_CANCEL_REASON = "No applicants within the response window"


class ConfirmationAction(str, enum.Enum):
    CONFIRM = "CONFIRM"
    REJECT = "REJECT"


def _validate_hhmm(value: str) -> str:
    parse_time_string(value)
    return value.strip()


HHMM = Annotated[str, AfterValidator(_validate_hhmm)]


class RequestSlot(BaseModel):
    """Work slot a practice posts."""
    appointment_date: date
    start_time: HHMM
    end_time: HHMM
    location: str
    required_role: str
    branch_id: Optional[str] = None


class RequestUpdate(BaseModel):
    """Partial update of a PENDING request. Omitted fields are left unchanged."""
    appointment_date: Optional[date] = None
    start_time: Optional[HHMM] = None
    end_time: Optional[HHMM] = None
    location: Optional[str] = None
    required_role: Optional[str] = None


@dataclass
class ConfirmationResult:
    """Outcome of a locum answering an offer."""
    action: ConfirmationAction
    confirmation: AppointmentConfirmation
    booking: Optional[Booking] = None


class LifecycleEngine:
    """
    Entry point for every state transition of requests, applications,
    confirmations and bookings.
    """

    def __init__(
        self,
        store: Optional[RequestStore] = None,
        scheduler: Optional[AutoCancelScheduler] = None,
        notifier: Optional[Notifier] = None,
        now_fn: NowFn = utc_now,
        rearm_after_rejection: bool = AUTO_CANCEL_REARM_AFTER_REJECTION,
    ):
        self.store = store or RequestStore()
        self.scheduler = scheduler or get_auto_cancel_scheduler()
        self.scheduler.set_fire_callback(self.auto_cancel_fire)
        self.notifier = notifier or LoggingNotifier()
        self.now_fn = now_fn
        self.rearm_after_rejection = rearm_after_rejection
        self.expiry_scanner = ConfirmationExpiryScanner(
            self.store, now_fn=now_fn, on_expired=self._after_expiry
        )

    # ===== Requests =====

    @staticmethod
    def _validate_slot(appointment_date: date, start_time: str, end_time: str, now: datetime) -> None:
        if parse_time_string(end_time) <= parse_time_string(start_time):
            raise ValueError("End time must be after start time")
        if local_instant(appointment_date, start_time) <= now:
            raise ValueError("Request date must be in the future")

    def create_request(self, practice_id: str, slot: RequestSlot) -> AppointmentRequest:
        """
        Post a new request in PENDING and arm its auto-cancel timer.

        Raises:
            ValueError: If the slot is in the past or ends before it starts
        """
        now = self.now_fn()
        self._validate_slot(slot.appointment_date, slot.start_time, slot.end_time, now)

        delay = window_for(now, slot.appointment_date, slot.start_time)
        request = AppointmentRequest(
            id=new_id(),
            practice_id=practice_id,
            branch_id=slot.branch_id,
            appointment_date=slot.appointment_date,
            start_time=slot.start_time,
            end_time=slot.end_time,
            location=slot.location,
            required_role=slot.required_role,
            status=RequestStatus.PENDING,
            auto_cancel_at=now + delay,
            created_at=now,
            updated_at=now,
        )
        with self.store.transaction() as db:
            self.store.add(db, request)

        self.scheduler.schedule(request.id, delay)
        logger.info(f"Created request {request.id} for practice {practice_id}, auto-cancel in {delay}")
        return request

    def update_request(self, request_id: str, practice_id: str, changes: RequestUpdate) -> AppointmentRequest:
        """
        Edit a PENDING request that has no booking and no open offer.

        Changing the required role drops existing applications. A request left
        without applications gets a fresh auto-cancel timer for its new slot.
        """
        now = self.now_fn()
        delay: Optional[timedelta] = None
        with self.store.transaction() as db:
            request = self._get_owned_request(db, request_id, practice_id)
            if request.status != RequestStatus.PENDING:
                raise InvalidStateError("Only pending requests can be updated", request_id)
            if self.store.get_booking_for_request(db, request_id) is not None:
                raise InvalidStateError("Cannot update request with confirmed booking", request_id)
            if self.store.get_active_confirmation(db, request_id) is not None:
                raise InvalidStateError("Cannot update request with active confirmations pending", request_id)

            new_date = changes.appointment_date or request.appointment_date
            new_start = changes.start_time or request.start_time
            new_end = changes.end_time or request.end_time
            self._validate_slot(new_date, new_start, new_end, now)

            if changes.required_role and changes.required_role != request.required_role:
                dropped = self.store.delete_applications(db, request_id)
                logger.info(f"Role changed on request {request_id}, dropped {dropped} application(s)")
                request.required_role = changes.required_role

            request.appointment_date = new_date
            request.start_time = new_start
            request.end_time = new_end
            if changes.location:
                request.location = changes.location

            if self.store.count_applications(db, request_id) == 0:
                delay = window_for(now, new_date, new_start)
                request.auto_cancel_at = now + delay

        if delay is not None:
            self.scheduler.schedule(request_id, delay)
        return request

    def cancel_request(self, request_id: str, practice_id: str, reason: Optional[str] = None) -> AppointmentRequest:
        """
        Cancel a request on behalf of its practice.

        A confirmed booking is cancelled with it, subject to the 48-hour rule.
        Open applications and unfinished confirmation rounds are removed; the
        request row itself is kept as CANCELLED.

        Raises:
            ForbiddenError: If the practice does not own the request
            InvalidStateError: If the request is already cancelled
            CancellationWindowError: If a confirmed booking starts within 48 hours
        """
        now = self.now_fn()
        with self.store.transaction() as db:
            request = self._get_owned_request(db, request_id, practice_id)
            if not request.can_transition_to(RequestStatus.CANCELLED):
                raise InvalidStateError("Appointment request is already cancelled", request_id)

            notify_locums = {a.locum_id for a in self.store.list_applications(db, request_id)}
            booking = self.store.get_booking_for_request(db, request_id)
            if booking is not None and booking.status == BookingStatus.CONFIRMED:
                PenaltyCalculator.ensure_cancellable(booking, now)
                self._cancel_booking_row(booking, CancelledBy.PRACTICE, now,
                                         reason or "Appointment request cancelled by practice")
                notify_locums.add(booking.locum_id)

            self.store.delete_unfinished_confirmations(db, request_id)
            self.store.delete_applications(db, request_id)

            request.status = RequestStatus.CANCELLED
            request.cancellation_reason = reason
            request.auto_cancel_at = None

        self.scheduler.cancel(request_id)
        for locum_id in sorted(notify_locums):
            send_notification(self.notifier, locum_id, "locum",
                              RequestCancelled(request_id=request_id, reason=reason))
        logger.info(f"Request {request_id} cancelled by practice {practice_id}")
        return request

    def auto_cancel_fire(self, request_id: str) -> bool:
        """
        Timer callback: cancel the request if it is still unclaimed.

        The request is re-read under lock, so an application that arrived after
        the timer was armed always wins. The persisted `auto_cancel_at` must
        also have passed, so a timer left behind by an edit or by another
        process does nothing. Failures are logged and dropped.

        Returns:
            True if the request was cancelled
        """
        try:
            with self.store.transaction() as db:
                request = self.store.get_request(db, request_id, for_update=True)
                if request is None:
                    logger.info(f"Request {request_id} not found - may have been deleted")
                    return False
                if request.status != RequestStatus.PENDING:
                    logger.info(f"Request {request_id} is no longer PENDING (status: {request.status.value})")
                    return False
                # Only the stored deadline counts; a stale timer is a no-op
                if request.auto_cancel_at is None or request.auto_cancel_at > self.now_fn():
                    logger.info(f"Request {request_id} auto-cancel deadline not reached ({request.auto_cancel_at})")
                    return False

                applicants = self.store.count_applications(db, request_id, ApplicationStatus.ACCEPTED)
                if applicants > 0:
                    logger.info(f"Request {request_id} has {applicants} applicants - not cancelling")
                    return False
                if self.store.get_active_confirmation(db, request_id) is not None:
                    logger.info(f"Request {request_id} has an open confirmation - not cancelling")
                    return False

                request.status = RequestStatus.CANCELLED
                request.cancellation_reason = AUTO_CANCEL_REASON
                request.auto_cancel_at = None
                practice_id = request.practice_id
        except LifecycleError as e:
            logger.error(f"Error in auto-cancellation for request {request_id}: {e.message}")
            return False

        self.scheduler.cancel(request_id)
        send_notification(self.notifier, practice_id, "practice",
                          RequestCancelled(request_id=request_id, automatic=True, reason=AUTO_CANCEL_REASON))
        logger.info(f"Auto-cancelled appointment request {request_id} - no applicants")
        return True

    def run_auto_cancel_sweep(self) -> int:
        """
        Cancel unclaimed requests whose durable deadline has passed.

        Covers timers lost to a restart or scheduled on another process.

        Returns:
            Number of requests cancelled
        """
        now = self.now_fn()
        with self.store.transaction() as db:
            overdue = [r.id for r in self.store.list_overdue_auto_cancels(db, now)]

        cancelled = sum(1 for request_id in overdue if self.auto_cancel_fire(request_id))
        if overdue:
            logger.info(f"Auto-cancel sweep: {cancelled} of {len(overdue)} overdue request(s) cancelled")
        return cancelled

    def restore_timers(self) -> int:
        """
        Rebuild the in-memory timer registry from persisted deadlines.

        Called on process start. Deadlines already in the past fire immediately.

        Returns:
            Number of timers armed
        """
        now = self.now_fn()
        with self.store.transaction() as db:
            armed = [(r.id, r.auto_cancel_at) for r in self.store.list_armed_requests(db)]

        for request_id, auto_cancel_at in armed:
            self.scheduler.schedule(request_id, max(auto_cancel_at - now, timedelta(0)))
        logger.info(f"Restored {len(armed)} auto-cancel timer(s)")
        return len(armed)

    # ===== Applications =====

    def apply(self, request_id: str, locum_id: str, message: Optional[str] = None) -> AppointmentApplication:
        """
        Record a locum's application and disarm the request's auto-cancel timer.

        Raises:
            NotFoundError: If the request does not exist
            ConflictError: If the request is not PENDING or the locum already applied
        """
        now = self.now_fn()
        with self.store.transaction() as db:
            request = self.store.get_request(db, request_id, for_update=True)
            if request is None:
                raise NotFoundError("Appointment request not found", request_id)
            if request.status != RequestStatus.PENDING:
                raise ConflictError("Job no longer available", request_id)
            if self.store.get_application(db, request_id, locum_id) is not None:
                raise ConflictError("You have already applied for this job", request_id)

            application = AppointmentApplication(
                id=new_id(),
                request_id=request_id,
                locum_id=locum_id,
                status=ApplicationStatus.ACCEPTED,
                message=message,
                responded_at=now,
            )
            self.store.add(db, application)
            # A claimed request is left for the practice to act on
            request.auto_cancel_at = None
            practice_id = request.practice_id

        self.scheduler.cancel(request_id)
        send_notification(self.notifier, practice_id, "practice",
                          ApplicationReceived(request_id=request_id, locum_id=locum_id))
        return application

    def select_applicant(
        self, request_id: str, locum_id: str, practice_id: Optional[str] = None
    ) -> AppointmentConfirmation:
        """
        Offer the request to one applicant.

        Creates the next confirmation round, expiring after the response window
        measured from the request's creation.

        Raises:
            NotFoundError: If the request or the application does not exist
            ForbiddenError: If practice_id is given and does not own the request
            ConflictError: If the request is not PENDING, the application is not
                open, the locum already rejected an offer for this request, or
                another applicant is currently selected
        """
        now = self.now_fn()
        with self.store.transaction() as db:
            request = self.store.get_request(db, request_id, for_update=True)
            if request is None:
                raise NotFoundError("Appointment request not found", request_id)
            if practice_id is not None and request.practice_id != practice_id:
                raise ForbiddenError("You can only select applicants for your own requests", request_id)
            if request.status != RequestStatus.PENDING:
                raise ConflictError("Job no longer available for selection", request_id)

            application = self.store.get_application(db, request_id, locum_id)
            if application is None:
                raise NotFoundError("Locum has not applied for this job", request_id)
            if self.store.locum_was_rejected(db, request_id, locum_id):
                raise ConflictError(
                    "This locum has been previously rejected for this appointment and cannot be selected again",
                    request_id,
                )
            if application.status != ApplicationStatus.ACCEPTED:
                raise ConflictError("Locum's application is no longer open", request_id)
            if self.store.get_active_confirmation(db, request_id) is not None:
                raise ConflictError("Another locum is already selected for this appointment", request_id)

            sequence = self.store.count_confirmations(db, request_id) + 1
            expires_at = now + window_for(request.created_at, request.appointment_date, request.start_time)

            application.status = ApplicationStatus.PRACTICE_CONFIRMED
            confirmation = AppointmentConfirmation(
                id=new_id(),
                request_id=request_id,
                chosen_locum_id=locum_id,
                sequence=sequence,
                status=ConfirmationStatus.PRACTICE_CONFIRMED,
                expires_at=expires_at,
                created_at=now,
            )
            self.store.add(db, confirmation)
            request.auto_cancel_at = None

            payload = ApplicantSelected(
                request_id=request_id,
                confirmation_id=confirmation.id,
                appointment_date=request.appointment_date,
                start_time=request.start_time,
                end_time=request.end_time,
                location=request.location,
                expires_at=expires_at,
            )

        self.scheduler.cancel(request_id)
        send_notification(self.notifier, locum_id, "locum", payload)
        logger.info(f"Locum {locum_id} selected for request {request_id} (round {sequence}, expires {expires_at})")
        return confirmation

    # ===== Confirmations =====

    def respond_to_confirmation(
        self,
        confirmation_id: str,
        locum_id: str,
        action: ConfirmationAction,
        reason: Optional[str] = None,
    ) -> ConfirmationResult:
        """
        The chosen locum confirms or rejects their offer.

        CONFIRM books the slot and closes the request; REJECT reopens the
        request for a new selection round without this locum. An offer past its
        deadline is recorded as LOCUM_REJECTED("expired") and the call fails.

        Raises:
            NotFoundError: If the confirmation does not exist
            ForbiddenError: If the locum is not the chosen one
            InvalidStateError: If the offer was already answered
            ConfirmationExpiredError: If the offer's deadline has passed
            ConflictError: If confirming would double-book the locum
        """
        action = ConfirmationAction(action)
        now = self.now_fn()
        expired = False
        booking: Optional[Booking] = None

        with self.store.transaction() as db:
            confirmation = self.store.get_confirmation(db, confirmation_id)
            if confirmation is None:
                raise NotFoundError("Confirmation not found", confirmation_id)
            if confirmation.chosen_locum_id != locum_id:
                raise ForbiddenError("You are not the selected locum for this confirmation", confirmation_id)

            # Lock order: request first, then its confirmation
            request = self.store.get_request(db, confirmation.request_id, for_update=True)
            db.refresh(confirmation, with_for_update=True)
            if confirmation.status != ConfirmationStatus.PRACTICE_CONFIRMED:
                raise InvalidStateError("This confirmation is no longer valid", confirmation_id)

            if confirmation.is_expired(now):
                reject_confirmation(db, self.store, confirmation, REJECTION_REASON_EXPIRED, now)
                expired = True
            elif action == ConfirmationAction.REJECT:
                reject_confirmation(db, self.store, confirmation, reason or REJECTION_REASON_LOCUM, now)
            else:
                if request is None or request.status != RequestStatus.PENDING:
                    raise InvalidStateError("Appointment request is no longer open", confirmation_id)
                # Confirmations of one locum run one at a time from here to commit
                self.store.lock_locum_schedule(db, locum_id, now)
                clash = self.store.find_overlapping_booking(
                    db, locum_id, request.appointment_date, request.start_time, request.end_time
                )
                if clash is not None:
                    raise ConflictError(
                        f"You already have a confirmed booking from {clash.start_time} to {clash.end_time} on this date",
                        confirmation_id,
                    )

                booking = Booking(
                    id=new_id(),
                    request_id=request.id,
                    locum_id=locum_id,
                    practice_id=request.practice_id,
                    branch_id=request.branch_id,
                    booking_date=request.appointment_date,
                    start_time=request.start_time,
                    end_time=request.end_time,
                    location=request.location,
                    status=BookingStatus.CONFIRMED,
                    accept_time=now,
                )
                self.store.add(db, booking)
                confirmation.status = ConfirmationStatus.LOCUM_CONFIRMED
                confirmation.locum_responded_at = now
                request.status = RequestStatus.CONFIRMED
                request.auto_cancel_at = None

        if expired:
            self._after_rejection_logged(confirmation)
            raise ConfirmationExpiredError("Confirmation has expired", confirmation_id)

        if action == ConfirmationAction.REJECT:
            self._after_rejection_logged(confirmation)
            logger.info(f"Locum {locum_id} rejected confirmation {confirmation_id}")
            return ConfirmationResult(action=action, confirmation=confirmation)

        send_notification(self.notifier, request.practice_id, "practice",
                          SelectionConfirmed(request_id=request.id, booking_id=booking.id, locum_id=locum_id))
        logger.info(f"Locum {locum_id} confirmed request {request.id}, booking {booking.id}")
        return ConfirmationResult(action=action, confirmation=confirmation, booking=booking)

    def pending_confirmations(self, locum_id: str) -> List[PendingConfirmation]:
        """A locum's open offers, with overdue ones expired first."""
        return self.expiry_scanner.list_pending_for_locum(locum_id)

    def _after_expiry(self, expired: List[AppointmentConfirmation]) -> None:
        for confirmation in expired:
            self._after_rejection(confirmation)

    def _after_rejection_logged(self, confirmation: AppointmentConfirmation) -> None:
        # Runs after the rejection committed; failures are only logged
        try:
            self._after_rejection(confirmation)
        except Exception as e:
            logger.exception(f"Error handling rejected confirmation {confirmation.id}: {e}")

    def _after_rejection(self, confirmation: AppointmentConfirmation) -> None:
        """Tell the practice and, if configured, re-arm auto-cancel on an abandoned request."""
        now = self.now_fn()
        delay: Optional[timedelta] = None
        with self.store.transaction() as db:
            request = self.store.get_request(db, confirmation.request_id, for_update=True)
            if request is None:
                return
            practice_id = request.practice_id
            if self.rearm_after_rejection and request.status == RequestStatus.PENDING:
                open_applications = self.store.count_applications(
                    db, request.id, ApplicationStatus.ACCEPTED, ApplicationStatus.PRACTICE_CONFIRMED
                )
                if open_applications == 0:
                    delay = window_for(now, request.appointment_date, request.start_time)
                    request.auto_cancel_at = now + delay

        if delay is not None:
            self.scheduler.schedule(confirmation.request_id, delay)
        send_notification(self.notifier, practice_id, "practice", SelectionRejected(
            request_id=confirmation.request_id,
            confirmation_id=confirmation.id,
            locum_id=confirmation.chosen_locum_id,
            reason=confirmation.rejection_reason or REJECTION_REASON_LOCUM,
        ))

    # ===== Bookings =====

    @staticmethod
    def _cancel_booking_row(booking: Booking, cancelled_by: CancelledBy, now: datetime, reason: Optional[str]) -> None:
        booking.status = BookingStatus.CANCELLED
        booking.cancel_by = cancelled_by
        booking.cancel_time = now
        booking.cancellation_reason = reason or f"Cancelled by {cancelled_by.value}"

    def _lock_booking(self, db, booking_id: str) -> Tuple[Booking, Optional[AppointmentRequest]]:
        booking = self.store.get_booking(db, booking_id)
        if booking is None:
            raise NotFoundError("Booking not found", booking_id)
        request = self.store.get_request(db, booking.request_id, for_update=True)
        db.refresh(booking, with_for_update=True)
        return booking, request

    def cancel_booking(
        self, booking_id: str, user_id: str, user_type: str, reason: Optional[str] = None
    ) -> Booking:
        """
        Self-service cancellation by the booked locum or the practice.

        Refused within 48 hours of the start; beyond that no penalty applies.

        Raises:
            ValueError: If user_type is not 'locum' or 'practice'
            NotFoundError: If the booking does not exist
            ForbiddenError: If the user is not a party to the booking
            InvalidStateError: If the booking is not CONFIRMED
            CancellationWindowError: If the appointment starts within 48 hours
        """
        cancelled_by = CancelledBy(user_type)
        if cancelled_by == CancelledBy.ADMIN:
            raise ValueError("Invalid user type. Must be 'locum' or 'practice'")

        now = self.now_fn()
        with self.store.transaction() as db:
            booking, request = self._lock_booking(db, booking_id)
            if cancelled_by == CancelledBy.LOCUM and booking.locum_id != user_id:
                raise ForbiddenError("You can only cancel your own bookings", booking_id)
            if cancelled_by == CancelledBy.PRACTICE and booking.practice_id != user_id:
                raise ForbiddenError("You can only cancel your practice's bookings", booking_id)

            PenaltyCalculator.ensure_cancellable(booking, now)
            self._cancel_booking_row(booking, cancelled_by, now, reason)
            if request is not None and request.can_transition_to(RequestStatus.CANCELLED):
                request.status = RequestStatus.CANCELLED
                request.cancellation_reason = booking.cancellation_reason

        payload = BookingCancelled(
            booking_id=booking.id, request_id=booking.request_id,
            cancelled_by=cancelled_by.value, reason=booking.cancellation_reason,
        )
        if cancelled_by == CancelledBy.LOCUM:
            send_notification(self.notifier, booking.practice_id, "practice", payload)
        else:
            send_notification(self.notifier, booking.locum_id, "locum", payload)
        logger.info(f"Booking {booking_id} cancelled by {cancelled_by.value} {user_id}")
        return booking

    def admin_cancel_booking(
        self,
        booking_id: str,
        cancelled_party_type: str,
        reason: Optional[str] = None,
        hourly_rate: Optional[Decimal] = None,
    ) -> Tuple[Booking, Optional[CancellationPenalty]]:
        """
        Administrative cancellation on behalf of one party.

        Bypasses the 48-hour block and records a PENDING penalty against the
        party at fault when the cancellation is late.

        Returns:
            The cancelled booking and the penalty, if one was recorded
        """
        now = self.now_fn()
        with self.store.transaction() as db:
            booking, request = self._lock_booking(db, booking_id)
            if booking.status != BookingStatus.CONFIRMED:
                raise InvalidStateError("Only confirmed bookings can be cancelled", booking_id)

            penalty = PenaltyCalculator.on_cancel(
                booking, CancelledBy.ADMIN, now,
                cancelled_party_type=cancelled_party_type,
                hourly_rate=hourly_rate,
                reason=reason,
            )
            if penalty is not None:
                self.store.add(db, penalty)

            self._cancel_booking_row(booking, CancelledBy.ADMIN, now, reason)
            if request is not None and request.can_transition_to(RequestStatus.CANCELLED):
                request.status = RequestStatus.CANCELLED
                request.cancellation_reason = booking.cancellation_reason

        payload = BookingCancelled(
            booking_id=booking.id,
            request_id=booking.request_id,
            cancelled_by=CancelledBy.ADMIN.value,
            reason=booking.cancellation_reason,
            penalty_id=penalty.id if penalty else None,
            penalty_amount=penalty.penalty_amount if penalty else None,
        )
        send_notification(self.notifier, booking.practice_id, "practice", payload)
        send_notification(self.notifier, booking.locum_id, "locum", payload)
        return booking, penalty

    # ===== Locum queue =====

    def ignore_request(self, request_id: str, locum_id: str, reason: Optional[str] = None) -> IgnoredAppointment:
        """Hide a request from the locum's queue."""
        now = self.now_fn()
        with self.store.transaction() as db:
            if self.store.get_request(db, request_id) is None:
                raise NotFoundError("Appointment request not found", request_id)
            if self.store.get_ignored(db, request_id, locum_id) is not None:
                raise ConflictError("Appointment is already ignored by this locum", request_id)
            ignored = IgnoredAppointment(
                id=new_id(), request_id=request_id, locum_id=locum_id, reason=reason, created_at=now
            )
            self.store.add(db, ignored)
        return ignored

    def unignore_request(self, request_id: str, locum_id: str) -> None:
        with self.store.transaction() as db:
            ignored = self.store.get_ignored(db, request_id, locum_id)
            if ignored is None:
                raise NotFoundError("Appointment is not ignored by this locum", request_id)
            db.delete(ignored)

    def available_requests(self, locum_id: str, required_role: Optional[str] = None) -> List[AppointmentRequest]:
        """Open requests the locum can still apply to, soonest first."""
        today = self.now_fn().date()
        with self.store.transaction() as db:
            return self.store.list_open_requests_for_locum(db, locum_id, required_role, today)

    # ===== Helpers =====

    def _get_owned_request(self, db, request_id: str, practice_id: str) -> AppointmentRequest:
        request = self.store.get_request(db, request_id, for_update=True)
        if request is None:
            raise NotFoundError("Appointment request not found", request_id)
        if request.practice_id != practice_id:
            raise ForbiddenError("You can only manage your own appointment requests", request_id)
        return request


# Global lifecycle engine instance
_lifecycle_engine: Optional[LifecycleEngine] = None


def get_lifecycle_engine() -> LifecycleEngine:
    """
    Get the global lifecycle engine instance.

    Returns:
        LifecycleEngine bound to the application database and auto-cancel scheduler
    """
    global _lifecycle_engine
    if _lifecycle_engine is None:
        _lifecycle_engine = LifecycleEngine()
    return _lifecycle_engine
