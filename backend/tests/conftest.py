"""
Test configuration and shared fixtures for the Locum Match test suite.

Each test gets its own in-memory SQLite database, a frozen clock, a notifier
that records deliveries, and an auto-cancel scheduler that is never started
(timers are registered but only fire when a test calls the engine directly).
"""

import os
import threading

# Must be set before core.database is imported anywhere
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["APP_UTC_OFFSET_HOURS"] = "0"

import pytest
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Generator, List, Tuple

from apscheduler.schedulers.background import BackgroundScheduler  # type: ignore
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from core.database import Base
import models  # noqa: F401  (registers every table on Base.metadata)
from services.auto_cancel_scheduler import AutoCancelScheduler
from services.lifecycle_engine import LifecycleEngine, RequestSlot
from services.notifications import NotificationPayload
from services.request_store import RequestStore


# Monday morning, so "N hours ahead" lands on predictable local times
BASE_NOW = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)

PRACTICE_ID = "practice-1"
OTHER_PRACTICE_ID = "practice-2"


class FrozenClock:
    """Callable clock that only moves when a test advances it."""

    def __init__(self, now: datetime = BASE_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingNotifier:
    """Notifier that keeps every delivery for assertions."""

    def __init__(self):
        self.sent: List[Tuple[str, str, NotificationPayload]] = []

    def notify(self, user_id, user_type, payload) -> None:
        self.sent.append((user_id, user_type, payload))

    def types_for(self, user_id: str) -> List[str]:
        return [payload.type for uid, _, payload in self.sent if uid == user_id]


def make_slot(
    appointment_date: date,
    start_time: str = "09:00",
    end_time: str = "17:00",
    required_role: str = "GP",
    location: str = "Main Street Surgery",
) -> RequestSlot:
    return RequestSlot(
        appointment_date=appointment_date,
        start_time=start_time,
        end_time=end_time,
        location=location,
        required_role=required_role,
    )


def slot_hours_ahead(now: datetime, hours: float, required_role: str = "GP") -> RequestSlot:
    """One-hour slot starting exactly `hours` after `now` (same local day)."""
    start = now + timedelta(hours=hours)
    end = start + timedelta(hours=1)
    assert start.date() == end.date(), "helper only builds same-day slots"
    return make_slot(start.date(), start.strftime("%H:%M"), end.strftime("%H:%M"), required_role=required_role)


@pytest.fixture(scope="function")
def db_engine():
    """
    Create a fresh in-memory database for a test.

    StaticPool keeps the single SQLite connection alive across sessions and
    threads (the API tests call the engine from FastAPI's threadpool).
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> sessionmaker:
    return sessionmaker(bind=db_engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory) -> Generator[Session, None, None]:
    """Plain session for arranging and inspecting rows directly."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def load(session_factory):
    """Re-read an entity by primary key in a fresh session."""
    def _load(model, entity_id):
        with session_factory() as db:
            return db.get(model, entity_id)
    return _load


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def store(session_factory) -> RequestStore:
    return RequestStore(session_factory=session_factory)


@pytest.fixture
def auto_cancel_scheduler() -> AutoCancelScheduler:
    # Not started: jobs stay pending and never run on their own
    return AutoCancelScheduler(BackgroundScheduler(timezone=timezone.utc))


@pytest.fixture
def engine(store, auto_cancel_scheduler, notifier, clock) -> LifecycleEngine:
    return LifecycleEngine(
        store=store,
        scheduler=auto_cancel_scheduler,
        notifier=notifier,
        now_fn=clock,
        rearm_after_rejection=False,
    )


@pytest.fixture
def far_slot(clock) -> RequestSlot:
    """Slot a week out: 120-minute windows, outside every cancellation rule."""
    return make_slot(clock.now.date() + timedelta(days=7))


def run_concurrently(*calls: Callable[[], object]) -> Tuple[list, List[Exception]]:
    """Run each call on its own thread; return (results, errors) once all finish."""
    results: list = []
    errors: List[Exception] = []
    lock = threading.Lock()

    def worker(call):
        try:
            value = call()
        except Exception as e:
            with lock:
                errors.append(e)
        else:
            with lock:
                results.append(value)

    threads = [threading.Thread(target=worker, args=(call,)) for call in calls]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)
    return results, errors


def hold_until_both_arrive(monkeypatch, store: RequestStore, method_name: str, timeout: float = 1.0) -> None:
    """
    Make two threads meet inside a store query before either runs it.

    A thread that is kept out by a lock never arrives; the waiting thread gives
    up after `timeout` and carries on alone.
    """
    original = getattr(store, method_name)
    arrived = []
    both_here = threading.Event()
    guard = threading.Lock()

    def held(*args, **kwargs):
        with guard:
            arrived.append(threading.get_ident())
            if len(arrived) >= 2:
                both_here.set()
        both_here.wait(timeout)
        return original(*args, **kwargs)

    monkeypatch.setattr(store, method_name, held)


@pytest.fixture
def file_db_engine(tmp_path):
    """
    File-backed database with a real connection pool.

    Unlike the in-memory database, every thread gets its own connection, so
    transactions really run side by side.
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'locum_match.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
        echo=False,
    )
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def shared_store(file_db_engine) -> RequestStore:
    factory = sessionmaker(bind=file_db_engine, autoflush=False, expire_on_commit=False)
    return RequestStore(session_factory=factory)


@pytest.fixture
def shared_engine(shared_store, notifier, clock) -> LifecycleEngine:
    """Engine on the file-backed database, for tests that run transitions in parallel."""
    return LifecycleEngine(
        store=shared_store,
        scheduler=AutoCancelScheduler(BackgroundScheduler(timezone=timezone.utc)),
        notifier=notifier,
        now_fn=clock,
        rearm_after_rejection=False,
    )
