"""
Unit tests for AutoCancelScheduler.

Tests idempotent schedule/cancel, replacement of existing timers and the
firing path into the registered callback.
"""

import threading
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

from apscheduler.jobstores.base import JobLookupError  # type: ignore
from apscheduler.schedulers.background import BackgroundScheduler  # type: ignore
from apscheduler.triggers.date import DateTrigger  # type: ignore

from services.auto_cancel_scheduler import AutoCancelScheduler


class TestScheduleAndCancel:
    """Timer registry behaviour on a scheduler that is not running."""

    def test_schedule_registers_timer(self, auto_cancel_scheduler):
        auto_cancel_scheduler.schedule("request-1", timedelta(minutes=15))

        assert auto_cancel_scheduler.is_scheduled("request-1")
        assert auto_cancel_scheduler.scheduled_request_ids() == ["request-1"]

    def test_schedule_replaces_existing_timer(self, auto_cancel_scheduler):
        first = auto_cancel_scheduler.schedule("request-1", timedelta(minutes=15))
        second = auto_cancel_scheduler.schedule("request-1", timedelta(minutes=120))

        assert second > first
        assert auto_cancel_scheduler.scheduled_request_ids() == ["request-1"]
        assert len(auto_cancel_scheduler.scheduler.get_jobs()) == 1

    def test_run_at_is_wall_clock_time(self, auto_cancel_scheduler):
        before = datetime.now(timezone.utc)
        run_at = auto_cancel_scheduler.schedule("request-1", timedelta(minutes=15))
        after = datetime.now(timezone.utc)

        assert before + timedelta(minutes=15) <= run_at <= after + timedelta(minutes=15)

    def test_cancel_is_idempotent(self, auto_cancel_scheduler):
        auto_cancel_scheduler.schedule("request-1", timedelta(minutes=15))

        assert auto_cancel_scheduler.cancel("request-1") is True
        assert auto_cancel_scheduler.cancel("request-1") is False
        assert auto_cancel_scheduler.cancel("never-scheduled") is False
        assert not auto_cancel_scheduler.is_scheduled("request-1")
        assert auto_cancel_scheduler.scheduler.get_jobs() == []

    def test_negative_delay_is_clamped(self, auto_cancel_scheduler):
        run_at = auto_cancel_scheduler.schedule("request-1", timedelta(minutes=-5))
        job = auto_cancel_scheduler.scheduler.get_job("auto_cancel:request-1")

        assert job is not None
        assert run_at.tzinfo is not None

    def test_add_job_arguments(self):
        backend = Mock()
        scheduler = AutoCancelScheduler(scheduler=backend)

        scheduler.schedule("request-1", timedelta(minutes=60))

        _, kwargs = backend.add_job.call_args
        args, _ = backend.add_job.call_args
        assert args[0] == scheduler._run
        assert isinstance(args[1], DateTrigger)
        assert kwargs["args"] == ["request-1"]
        assert kwargs["id"] == "auto_cancel:request-1"
        assert kwargs["replace_existing"] is True

    def test_cancel_tolerates_job_already_gone(self):
        backend = Mock()
        backend.remove_job.side_effect = JobLookupError("auto_cancel:request-1")
        scheduler = AutoCancelScheduler(scheduler=backend)
        scheduler.schedule("request-1", timedelta(minutes=60))

        assert scheduler.cancel("request-1") is True
        assert not scheduler.is_scheduled("request-1")


class TestFiring:
    """Timer callback path."""

    def test_run_invokes_callback_and_forgets_timer(self, auto_cancel_scheduler):
        fire = Mock()
        auto_cancel_scheduler.set_fire_callback(fire)
        auto_cancel_scheduler.schedule("request-1", timedelta(minutes=15))

        auto_cancel_scheduler._run("request-1")

        fire.assert_called_once_with("request-1")
        assert not auto_cancel_scheduler.is_scheduled("request-1")

    def test_callback_errors_are_swallowed(self, auto_cancel_scheduler):
        fire = Mock(side_effect=RuntimeError("database unavailable"))
        auto_cancel_scheduler.set_fire_callback(fire)

        auto_cancel_scheduler._run("request-1")

        fire.assert_called_once_with("request-1")

    def test_run_without_callback_is_noop(self, auto_cancel_scheduler):
        auto_cancel_scheduler._run("request-1")

    def test_started_scheduler_fires_elapsed_timer(self):
        fired = threading.Event()
        received = []

        def fire(request_id):
            received.append(request_id)
            fired.set()

        scheduler = AutoCancelScheduler(BackgroundScheduler(timezone=timezone.utc))
        scheduler.set_fire_callback(fire)
        scheduler.start()
        try:
            scheduler.schedule("request-1", timedelta(0))
            assert fired.wait(timeout=5)
        finally:
            scheduler.shutdown()

        assert received == ["request-1"]
        assert not scheduler.is_scheduled("request-1")

    def test_start_twice_is_harmless(self):
        scheduler = AutoCancelScheduler(BackgroundScheduler(timezone=timezone.utc))
        scheduler.start()
        try:
            scheduler.start()
        finally:
            scheduler.shutdown()
        scheduler.shutdown()
