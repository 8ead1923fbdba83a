"""
Auto-cancel scheduler for unclaimed appointment requests.

Holds one APScheduler date job per request id. When a job fires, the lifecycle
engine re-checks the request inside a transaction and cancels it only if it is
still PENDING with no applicants, so a timer that fires late or races with an
application is harmless.

The timers are process-local. The durable copy of each deadline is
`AppointmentRequest.auto_cancel_at`; on startup the engine re-arms timers from
that column and a periodic sweep catches anything a dead process dropped.
"""

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from apscheduler.job import Job  # type: ignore
from apscheduler.jobstores.base import JobLookupError  # type: ignore
from apscheduler.schedulers.background import BackgroundScheduler  # type: ignore
from apscheduler.schedulers.base import BaseScheduler  # type: ignore
from apscheduler.triggers.date import DateTrigger  # type: ignore

from core.constants import MISFIRE_GRACE_TIME_SECONDS

logger = logging.getLogger(__name__)

FireCallback = Callable[[str], None]


def _job_id(request_id: str) -> str:
    return f"auto_cancel:{request_id}"


class AutoCancelScheduler:
    """
    Registry of cancellable per-request timers.

    `schedule` and `cancel` are idempotent and safe to call from any thread.
    Timers run on the wall clock of the process.
    """

    def __init__(self, scheduler: Optional[BaseScheduler] = None):
        # Timers fire on APScheduler's worker threads, away from request handlers
        self.scheduler = scheduler or BackgroundScheduler(timezone=timezone.utc)
        self._timers: Dict[str, Job] = {}
        self._lock = threading.Lock()
        self._fire: Optional[FireCallback] = None
        self._is_started = False

    def set_fire_callback(self, fire: FireCallback) -> None:
        """Register the function invoked with the request id when a timer elapses."""
        self._fire = fire

    def start(self) -> None:
        if self._is_started:
            logger.warning("Auto-cancel scheduler is already started")
            return
        self.scheduler.start()
        self._is_started = True
        logger.info("Auto-cancel scheduler started")

    def shutdown(self) -> None:
        if not self._is_started:
            return
        self.scheduler.shutdown(wait=False)
        self._is_started = False
        logger.info("Auto-cancel scheduler stopped")

    def schedule(self, request_id: str, delay: timedelta) -> datetime:
        """
        Arm (or re-arm) the timer for a request.

        Any existing timer for the same request is replaced.

        Returns:
            Instant at which the timer fires, read from the real wall clock
            rather than the engine's injected clock. It is not comparable
            with `AppointmentRequest.auto_cancel_at` under a test clock.
        """
        run_at = datetime.now(timezone.utc) + max(delay, timedelta(0))
        with self._lock:
            self._remove_locked(request_id)
            job = self.scheduler.add_job(  # type: ignore
                self._run,
                DateTrigger(run_date=run_at),
                args=[request_id],
                id=_job_id(request_id),
                name=f"Auto-cancel request {request_id}",
                replace_existing=True,
                misfire_grace_time=MISFIRE_GRACE_TIME_SECONDS,
            )
            self._timers[request_id] = job
        logger.info(f"Scheduled auto-cancellation for request {request_id} in {delay}")
        return run_at

    def cancel(self, request_id: str) -> bool:
        """
        Disarm the timer for a request.

        Best effort: a timer that is already firing is left to the engine's re-check.

        Returns:
            True if a timer was armed
        """
        with self._lock:
            removed = self._remove_locked(request_id)
        if removed:
            logger.info(f"Cancelled auto-cancellation timer for request {request_id}")
        return removed

    def is_scheduled(self, request_id: str) -> bool:
        with self._lock:
            return request_id in self._timers

    def scheduled_request_ids(self) -> List[str]:
        with self._lock:
            return list(self._timers)

    def _remove_locked(self, request_id: str) -> bool:
        job = self._timers.pop(request_id, None)
        if job is None:
            return False
        try:
            self.scheduler.remove_job(job.id)  # type: ignore
        except JobLookupError:
            # Already fired or removed by the scheduler
            pass
        return True

    def _run(self, request_id: str) -> None:
        with self._lock:
            self._timers.pop(request_id, None)

        if self._fire is None:
            logger.warning(f"Auto-cancel timer for request {request_id} fired with no callback registered")
            return

        try:
            self._fire(request_id)
        except Exception as e:
            # No retry: the periodic sweep picks up anything left behind
            logger.exception(f"Error in auto-cancellation for request {request_id}: {e}")


# Global auto-cancel scheduler instance
_auto_cancel_scheduler: Optional[AutoCancelScheduler] = None


def get_auto_cancel_scheduler() -> AutoCancelScheduler:
    """
    Get the global auto-cancel scheduler instance.

    Returns:
        AutoCancelScheduler instance
    """
    global _auto_cancel_scheduler
    if _auto_cancel_scheduler is None:
        _auto_cancel_scheduler = AutoCancelScheduler()
    return _auto_cancel_scheduler
