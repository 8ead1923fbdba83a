# pyright: reportMissingTypeStubs=false
"""
Database configuration and session management.

This module sets up the SQLAlchemy database connection, the session factory
used by the request store, and the declarative base for all models.
"""

import logging

from sqlalchemy import DateTime, create_engine, event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.types import TypeDecorator

from core.config import DATABASE_URL
from core.constants import DB_POOL_RECYCLE_SECONDS

logger = logging.getLogger(__name__)

# Create SQLAlchemy engine with optimized settings
engine = create_engine(
    DATABASE_URL,
    pool_pre_ping=True,  # Verify connections before use
    pool_recycle=DB_POOL_RECYCLE_SECONDS,
    echo=False,          # Disable SQL logging
    future=True,         # Use SQLAlchemy 2.0 style
)

# Create configured SessionLocal class
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    expire_on_commit=False,  # Don't expire objects after commit
)

# Create Base class for declarative models
class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


class UTCDateTime(TypeDecorator):  # type: ignore[type-arg]
    """
    Timezone-aware timestamp stored as UTC.

    PostgreSQL keeps the offset natively; SQLite drops it, so values are
    normalized to UTC on the way in and re-tagged as UTC on the way out.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):  # type: ignore
        from utils.datetime_utils import ensure_utc
        return ensure_utc(value)

    def process_result_value(self, value, dialect):  # type: ignore
        from utils.datetime_utils import ensure_utc
        return ensure_utc(value)


# SQLAlchemy event listeners to automatically set created_at and updated_at in UTC
@event.listens_for(Base, "before_insert", propagate=True)  # type: ignore
def receive_before_insert(mapper, connection, target):  # type: ignore
    """Set created_at and updated_at on insert unless the caller already did."""
    # Import here to avoid circular import
    from utils.datetime_utils import utc_now
    now = utc_now()
    # Only set created_at if it's a mapped column (exists in mapper.columns)
    if hasattr(mapper, "columns") and "created_at" in mapper.columns:  # type: ignore
        if getattr(target, "created_at", None) is None:  # type: ignore
            setattr(target, "created_at", now)  # type: ignore
    if hasattr(mapper, "columns") and "updated_at" in mapper.columns:  # type: ignore
        if getattr(target, "updated_at", None) is None:  # type: ignore
            setattr(target, "updated_at", now)  # type: ignore


@event.listens_for(Base, "before_update", propagate=True)  # type: ignore
def receive_before_update(mapper, connection, target):  # type: ignore
    """Set updated_at on update."""
    # Import here to avoid circular import
    from utils.datetime_utils import utc_now
    if hasattr(mapper, "columns") and "updated_at" in mapper.columns:  # type: ignore
        setattr(target, "updated_at", utc_now())  # type: ignore


def create_tables() -> None:
    """
    Create all database tables defined in SQLAlchemy models.

    This function creates tables for all models that inherit from Base.
    Safe to call multiple times - will not recreate existing tables.
    """
    # Register every model on Base.metadata
    import models  # noqa: F401

    try:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created successfully")
    except SQLAlchemyError as e:
        logger.exception(f"Failed to create database tables: {e}")
        raise


def drop_tables() -> None:
    """
    Drop all database tables defined in SQLAlchemy models.

    WARNING: This will permanently delete all data in the tables!
    Only use in testing or development environments.
    """
    import models  # noqa: F401

    try:
        Base.metadata.drop_all(bind=engine)
        logger.info("Database tables dropped successfully")
    except SQLAlchemyError as e:
        logger.exception(f"Failed to drop database tables: {e}")
        raise
