"""
Unit tests for PenaltyService.

Penalties start PENDING and move once, to CHARGED or DISMISSED.
"""

import pytest
from datetime import timedelta
from unittest.mock import Mock

from models import (
    AppointmentRequest,
    Booking,
    BookingStatus,
    CancellationPenalty,
    CancelledBy,
    PenaltyStatus,
    RequestStatus,
)
from services.errors import InvalidStateError, NotFoundError
from services.penalty_service import PenaltyService


@pytest.fixture
def penalty_service(store, clock):
    return PenaltyService(store, now_fn=clock)


@pytest.fixture
def booking(db_session, clock):
    day = clock.now.date() + timedelta(days=1)
    request = AppointmentRequest(
        id="request-1", practice_id="practice-1", appointment_date=day,
        start_time="09:00", end_time="17:00", location="Surgery", required_role="GP",
        status=RequestStatus.CANCELLED, created_at=clock.now, updated_at=clock.now,
    )
    booking = Booking(
        id="booking-1", request_id="request-1", locum_id="locum-1", practice_id="practice-1",
        booking_date=day, start_time="09:00", end_time="17:00", location="Surgery",
        status=BookingStatus.CANCELLED, accept_time=clock.now, cancel_by=CancelledBy.ADMIN,
    )
    db_session.add_all([request, booking])
    db_session.commit()
    return booking


def add_penalty(db_session, booking, clock, penalty_id, status=PenaltyStatus.PENDING):
    penalty = CancellationPenalty(
        id=penalty_id,
        booking_id=booking.id,
        cancelled_by=CancelledBy.ADMIN,
        cancelled_party_id=booking.locum_id,
        cancelled_party_type="locum",
        status=status,
        appointment_start=booking.appointment_start,
        cancellation_time=clock.now,
        hours_before_appointment=25.0,
        penalty_hours=3,
        created_at=clock.now,
    )
    db_session.add(penalty)
    db_session.commit()
    return penalty


class TestPenaltyResolution:
    """Test mark_charged and dismiss."""

    def test_mark_charged(self, penalty_service, db_session, booking, clock):
        add_penalty(db_session, booking, clock, "penalty-1")
        clock.advance(hours=1)

        penalty = penalty_service.mark_charged("penalty-1")

        assert penalty.status == PenaltyStatus.CHARGED
        assert penalty.resolved_at == clock.now

    def test_dismiss(self, penalty_service, db_session, booking, clock, load):
        add_penalty(db_session, booking, clock, "penalty-1")

        penalty_service.dismiss("penalty-1")

        assert load(CancellationPenalty, "penalty-1").status == PenaltyStatus.DISMISSED

    def test_resolution_is_final(self, penalty_service, db_session, booking, clock):
        add_penalty(db_session, booking, clock, "penalty-1", status=PenaltyStatus.CHARGED)

        with pytest.raises(InvalidStateError, match="already CHARGED"):
            penalty_service.dismiss("penalty-1")

    def test_missing_penalty(self, penalty_service):
        with pytest.raises(NotFoundError):
            penalty_service.mark_charged("nope")

    def test_list_penalties_filters_by_status(self, penalty_service, db_session, booking, clock):
        add_penalty(db_session, booking, clock, "penalty-1")
        add_penalty(db_session, booking, clock, "penalty-2", status=PenaltyStatus.DISMISSED)

        pending = penalty_service.list_penalties(status=PenaltyStatus.PENDING)

        assert [p.id for p in pending] == ["penalty-1"]
        assert len(penalty_service.list_penalties(booking_id="booking-1")) == 2


class TestChargePending:
    """Test the payment worker entry point."""

    def test_charges_every_pending_penalty(self, penalty_service, db_session, booking, clock, load):
        add_penalty(db_session, booking, clock, "penalty-1")
        add_penalty(db_session, booking, clock, "penalty-2")
        gate = Mock()

        charged = penalty_service.charge_pending(gate)

        assert charged == 2
        assert gate.charge_penalty.call_count == 2
        assert load(CancellationPenalty, "penalty-1").status == PenaltyStatus.CHARGED

    def test_failed_charge_stays_pending(self, penalty_service, db_session, booking, clock, load):
        add_penalty(db_session, booking, clock, "penalty-1")
        clock.advance(minutes=1)
        add_penalty(db_session, booking, clock, "penalty-2")
        gate = Mock()
        gate.charge_penalty.side_effect = [RuntimeError("card declined"), None]

        charged = penalty_service.charge_pending(gate)

        assert charged == 1
        assert load(CancellationPenalty, "penalty-1").status == PenaltyStatus.PENDING
        assert load(CancellationPenalty, "penalty-2").status == PenaltyStatus.CHARGED
