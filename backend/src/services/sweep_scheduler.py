"""
Lifecycle sweep scheduler.

Runs every SWEEP_INTERVAL_MINUTES to:
1. Auto-cancel unclaimed requests whose persisted deadline has passed
   (timers lost to a restart or owned by a dead process)
2. Expire confirmation offers nobody has read since their deadline
"""

import asyncio
import logging
from datetime import timezone
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler  # type: ignore
from apscheduler.triggers.interval import IntervalTrigger  # type: ignore

from core.config import SWEEP_INTERVAL_MINUTES
from core.constants import MISFIRE_GRACE_TIME_SECONDS, SWEEP_SCHEDULER_MAX_INSTANCES
from services.lifecycle_engine import LifecycleEngine, get_lifecycle_engine

logger = logging.getLogger(__name__)

# Global singleton instance
_sweep_scheduler: Optional['SweepScheduler'] = None


class SweepScheduler:
    """Periodic safety net behind the per-request timers and lazy expiry."""

    def __init__(self, engine: Optional[LifecycleEngine] = None, interval_minutes: int = SWEEP_INTERVAL_MINUTES):
        self.engine = engine or get_lifecycle_engine()
        self.interval_minutes = interval_minutes
        self.scheduler = AsyncIOScheduler(timezone=timezone.utc)
        self._is_started = False

    async def start_scheduler(self) -> None:
        """
        Start the sweep job.

        This should be called during application startup.
        """
        if self._is_started:
            logger.warning("Sweep scheduler is already started")
            return

        self.scheduler.add_job(  # type: ignore
            self._run_sweep,
            IntervalTrigger(minutes=self.interval_minutes),
            id="lifecycle_sweep",
            name="Auto-cancel and confirmation expiry sweep",
            replace_existing=True,
            max_instances=SWEEP_SCHEDULER_MAX_INSTANCES,
            misfire_grace_time=MISFIRE_GRACE_TIME_SECONDS,
        )

        self.scheduler.start()
        self._is_started = True
        logger.info(f"Sweep scheduler started (runs every {self.interval_minutes} minute(s))")

    async def stop_scheduler(self) -> None:
        """
        Stop the sweep job.

        This should be called during application shutdown.
        """
        if self._is_started:
            self.scheduler.shutdown(wait=True)
            self._is_started = False
            logger.info("Sweep scheduler stopped")

    async def _run_sweep(self) -> None:
        # Blocking database work goes to a worker thread to keep the event loop free
        await asyncio.to_thread(self.run_once)

    def run_once(self) -> None:
        """Run both sweeps once. Errors are logged so the next run still happens."""
        try:
            cancelled = self.engine.run_auto_cancel_sweep()
            if cancelled:
                logger.info(f"Sweep auto-cancelled {cancelled} request(s)")
        except Exception as e:
            logger.exception(f"Error during auto-cancel sweep: {e}")

        try:
            expired = self.engine.expiry_scanner.sweep_expired()
            if expired:
                logger.info(f"Sweep expired {expired} confirmation(s)")
        except Exception as e:
            logger.exception(f"Error during confirmation expiry sweep: {e}")


def get_sweep_scheduler() -> SweepScheduler:
    """
    Get the global sweep scheduler instance.

    Returns:
        SweepScheduler: The global scheduler instance
    """
    global _sweep_scheduler
    if _sweep_scheduler is None:
        _sweep_scheduler = SweepScheduler()
    return _sweep_scheduler


async def start_sweep_scheduler() -> None:
    """Start the global sweep scheduler."""
    scheduler = get_sweep_scheduler()
    await scheduler.start_scheduler()


async def stop_sweep_scheduler() -> None:
    """Stop the global sweep scheduler."""
    global _sweep_scheduler
    if _sweep_scheduler:
        await _sweep_scheduler.stop_scheduler()
