"""
Request store: transactional persistence for the appointment lifecycle.

The store is the only place the lifecycle touches the database. Every state
transition runs inside `RequestStore.transaction()`, which commits on success
and rolls back on any error, and the query helpers below are always given the
session of the surrounding transaction.
"""

import logging
from contextlib import contextmanager
from datetime import date, datetime
from typing import Callable, Generator, List, Optional

from sqlalchemy import func, select, text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from core.config import TRANSACTION_TIMEOUT_SECONDS
from models import (
    AppointmentApplication,
    AppointmentConfirmation,
    AppointmentRequest,
    ApplicationStatus,
    Booking,
    BookingStatus,
    CancellationPenalty,
    ConfirmationStatus,
    IgnoredAppointment,
    LocumScheduleLock,
    PenaltyStatus,
    RequestStatus,
)
from services.errors import ConflictError, LifecycleError, TransactionTimeoutError
from utils.datetime_utils import time_ranges_overlap

logger = logging.getLogger(__name__)

# PostgreSQL error codes raised when lock_timeout / statement_timeout trip
_PG_LOCK_NOT_AVAILABLE = "55P03"
_PG_QUERY_CANCELED = "57014"


def _is_timeout(error: OperationalError) -> bool:
    pgcode = getattr(error.orig, "pgcode", None)
    if pgcode in (_PG_LOCK_NOT_AVAILABLE, _PG_QUERY_CANCELED):
        return True
    # SQLite reports writer contention as "database is locked"
    return "database is locked" in str(error.orig).lower()


class RequestStore:
    """
    Transactional CRUD and queries over requests, applications,
    confirmations, bookings, penalties and ignored appointments.
    """

    def __init__(
        self,
        session_factory: Optional[Callable[[], Session]] = None,
        timeout_seconds: float = TRANSACTION_TIMEOUT_SECONDS,
    ):
        if session_factory is None:
            from core.database import SessionLocal
            session_factory = SessionLocal
        self._session_factory = session_factory
        self._timeout_seconds = timeout_seconds

    # ===== Transaction boundary =====

    @contextmanager
    def transaction(self) -> Generator[Session, None, None]:
        """
        Run a block as one atomic transaction.

        Lifecycle errors raised inside the block roll the transaction back and
        propagate unchanged. Constraint violations surface as ConflictError and
        lock/statement timeouts as TransactionTimeoutError.

        Example:
            ```python
            with store.transaction() as db:
                request = store.get_request(db, request_id, for_update=True)
                request.status = RequestStatus.CANCELLED
            ```
        """
        db = self._session_factory()
        try:
            self._apply_timeouts(db)
            yield db
            db.commit()
        except LifecycleError:
            db.rollback()
            raise
        except IntegrityError as e:
            db.rollback()
            logger.warning(f"Constraint violation, transaction rolled back: {e.orig}")
            raise ConflictError("Conflicting change detected, please retry") from e
        except OperationalError as e:
            db.rollback()
            if _is_timeout(e):
                logger.warning(f"Transaction timed out after {self._timeout_seconds}s: {e.orig}")
                raise TransactionTimeoutError("The operation timed out, please retry") from e
            logger.exception(f"Database transaction failed: {e}")
            raise
        except Exception as e:
            db.rollback()
            logger.exception(f"Database transaction failed: {e}")
            raise
        finally:
            db.close()

    def _apply_timeouts(self, db: Session) -> None:
        """Bound lock waits and statements for this transaction (PostgreSQL only)."""
        if db.get_bind().dialect.name != "postgresql":
            return
        timeout_ms = int(self._timeout_seconds * 1000)
        db.execute(text(f"SET LOCAL lock_timeout = {timeout_ms}"))
        db.execute(text(f"SET LOCAL statement_timeout = {timeout_ms}"))

    @staticmethod
    def add(db: Session, entity: object) -> None:
        """Insert an entity and flush so constraint violations fail inside the transaction."""
        db.add(entity)
        db.flush()

    # ===== Requests =====

    @staticmethod
    def get_request(db: Session, request_id: str, for_update: bool = False) -> Optional[AppointmentRequest]:
        query = db.query(AppointmentRequest).filter(AppointmentRequest.id == request_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    @staticmethod
    def list_overdue_auto_cancels(db: Session, now: datetime) -> List[AppointmentRequest]:
        """PENDING requests whose auto-cancel deadline has passed."""
        return db.query(AppointmentRequest).filter(
            AppointmentRequest.status == RequestStatus.PENDING,
            AppointmentRequest.auto_cancel_at.isnot(None),
            AppointmentRequest.auto_cancel_at <= now,
        ).all()

    @staticmethod
    def list_armed_requests(db: Session) -> List[AppointmentRequest]:
        """PENDING requests that still carry an auto-cancel deadline."""
        return db.query(AppointmentRequest).filter(
            AppointmentRequest.status == RequestStatus.PENDING,
            AppointmentRequest.auto_cancel_at.isnot(None),
        ).order_by(AppointmentRequest.auto_cancel_at).all()

    @staticmethod
    def list_open_requests_for_locum(
        db: Session,
        locum_id: str,
        required_role: Optional[str],
        from_date: date,
    ) -> List[AppointmentRequest]:
        """
        PENDING requests visible in a locum's queue.

        Excludes requests the locum ignored or already applied to.
        """
        ignored = select(IgnoredAppointment.request_id).where(IgnoredAppointment.locum_id == locum_id)
        applied = select(AppointmentApplication.request_id).where(AppointmentApplication.locum_id == locum_id)
        query = db.query(AppointmentRequest).filter(
            AppointmentRequest.status == RequestStatus.PENDING,
            AppointmentRequest.appointment_date >= from_date,
            AppointmentRequest.id.notin_(ignored),
            AppointmentRequest.id.notin_(applied),
        )
        if required_role:
            query = query.filter(AppointmentRequest.required_role == required_role)
        return query.order_by(AppointmentRequest.appointment_date, AppointmentRequest.start_time).all()

    # ===== Applications =====

    @staticmethod
    def get_application(db: Session, request_id: str, locum_id: str) -> Optional[AppointmentApplication]:
        return db.query(AppointmentApplication).filter(
            AppointmentApplication.request_id == request_id,
            AppointmentApplication.locum_id == locum_id,
        ).first()

    @staticmethod
    def list_applications(db: Session, request_id: str) -> List[AppointmentApplication]:
        return db.query(AppointmentApplication).filter(
            AppointmentApplication.request_id == request_id
        ).order_by(AppointmentApplication.responded_at).all()

    @staticmethod
    def count_applications(db: Session, request_id: str, *statuses: ApplicationStatus) -> int:
        query = db.query(func.count(AppointmentApplication.id)).filter(
            AppointmentApplication.request_id == request_id
        )
        if statuses:
            query = query.filter(AppointmentApplication.status.in_(statuses))
        return query.scalar() or 0

    @staticmethod
    def delete_applications(db: Session, request_id: str) -> int:
        return db.query(AppointmentApplication).filter(
            AppointmentApplication.request_id == request_id
        ).delete(synchronize_session=False)

    # ===== Confirmations =====

    @staticmethod
    def get_confirmation(db: Session, confirmation_id: str, for_update: bool = False) -> Optional[AppointmentConfirmation]:
        query = db.query(AppointmentConfirmation).filter(AppointmentConfirmation.id == confirmation_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    @staticmethod
    def get_active_confirmation(db: Session, request_id: str) -> Optional[AppointmentConfirmation]:
        return db.query(AppointmentConfirmation).filter(
            AppointmentConfirmation.request_id == request_id,
            AppointmentConfirmation.status == ConfirmationStatus.PRACTICE_CONFIRMED,
        ).first()

    @staticmethod
    def count_confirmations(db: Session, request_id: str) -> int:
        return db.query(func.count(AppointmentConfirmation.id)).filter(
            AppointmentConfirmation.request_id == request_id
        ).scalar() or 0

    @staticmethod
    def locum_was_rejected(db: Session, request_id: str, locum_id: str) -> bool:
        """Whether the locum already turned down (or let expire) an offer for this request."""
        return db.query(AppointmentConfirmation.id).filter(
            AppointmentConfirmation.request_id == request_id,
            AppointmentConfirmation.chosen_locum_id == locum_id,
            AppointmentConfirmation.status == ConfirmationStatus.LOCUM_REJECTED,
        ).first() is not None

    @staticmethod
    def list_open_confirmations(db: Session, locum_id: Optional[str] = None) -> List[AppointmentConfirmation]:
        """PRACTICE_CONFIRMED offers, soonest deadline first, optionally for one locum."""
        query = db.query(AppointmentConfirmation).filter(
            AppointmentConfirmation.status == ConfirmationStatus.PRACTICE_CONFIRMED
        )
        if locum_id is not None:
            query = query.filter(AppointmentConfirmation.chosen_locum_id == locum_id)
        return query.order_by(AppointmentConfirmation.expires_at).all()

    @staticmethod
    def list_expired_confirmations(
        db: Session, now: datetime, locum_id: Optional[str] = None
    ) -> List[AppointmentConfirmation]:
        query = db.query(AppointmentConfirmation).filter(
            AppointmentConfirmation.status == ConfirmationStatus.PRACTICE_CONFIRMED,
            AppointmentConfirmation.expires_at.isnot(None),
            AppointmentConfirmation.expires_at < now,
        )
        if locum_id is not None:
            query = query.filter(AppointmentConfirmation.chosen_locum_id == locum_id)
        return query.with_for_update().all()

    @staticmethod
    def delete_unfinished_confirmations(db: Session, request_id: str) -> int:
        """Delete confirmation rounds of a request, keeping a LOCUM_CONFIRMED one (it backs the booking)."""
        return db.query(AppointmentConfirmation).filter(
            AppointmentConfirmation.request_id == request_id,
            AppointmentConfirmation.status != ConfirmationStatus.LOCUM_CONFIRMED,
        ).delete(synchronize_session=False)

    # ===== Bookings =====

    @staticmethod
    def get_booking(db: Session, booking_id: str, for_update: bool = False) -> Optional[Booking]:
        query = db.query(Booking).filter(Booking.id == booking_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    @staticmethod
    def get_booking_for_request(db: Session, request_id: str) -> Optional[Booking]:
        return db.query(Booking).filter(Booking.request_id == request_id).first()

    @staticmethod
    def lock_locum_schedule(db: Session, locum_id: str, now: datetime) -> None:
        """
        Hold the locum's schedule until the surrounding transaction ends.

        Upserts the locum's `LocumScheduleLock` row. On PostgreSQL that takes a
        row lock; on SQLite it takes the database write lock. A second
        confirmation for the same locum waits here, then reads the bookings the
        first one committed.
        """
        insert = sqlite_insert if db.get_bind().dialect.name == "sqlite" else pg_insert
        stmt = insert(LocumScheduleLock).values(locum_id=locum_id, locked_at=now)
        db.execute(stmt.on_conflict_do_update(index_elements=["locum_id"], set_={"locked_at": now}))

    @staticmethod
    def find_overlapping_booking(
        db: Session,
        locum_id: str,
        booking_date: date,
        start_time: str,
        end_time: str,
    ) -> Optional[Booking]:
        """Return a CONFIRMED booking of the locum that overlaps the given slot, if any."""
        same_day = db.query(Booking).filter(
            Booking.locum_id == locum_id,
            Booking.booking_date == booking_date,
            Booking.status == BookingStatus.CONFIRMED,
        ).all()
        for booking in same_day:
            if time_ranges_overlap(booking.start_time, booking.end_time, start_time, end_time):
                return booking
        return None

    # ===== Penalties =====

    @staticmethod
    def get_penalty(db: Session, penalty_id: str, for_update: bool = False) -> Optional[CancellationPenalty]:
        query = db.query(CancellationPenalty).filter(CancellationPenalty.id == penalty_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    @staticmethod
    def list_penalties(db: Session, booking_id: Optional[str] = None, status: Optional[PenaltyStatus] = None) -> List[CancellationPenalty]:
        query = db.query(CancellationPenalty)
        if booking_id is not None:
            query = query.filter(CancellationPenalty.booking_id == booking_id)
        if status is not None:
            query = query.filter(CancellationPenalty.status == status)
        return query.order_by(CancellationPenalty.created_at).all()

    # ===== Ignored appointments =====

    @staticmethod
    def get_ignored(db: Session, request_id: str, locum_id: str) -> Optional[IgnoredAppointment]:
        return db.query(IgnoredAppointment).filter(
            IgnoredAppointment.request_id == request_id,
            IgnoredAppointment.locum_id == locum_id,
        ).first()
