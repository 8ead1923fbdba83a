"""
Services package for the appointment lifecycle.

This package contains the engine that owns every state transition and the
collaborators it is built from: persistence, timers, expiry, penalties and
notifications.
"""

from .errors import (
    LifecycleError,
    NotFoundError,
    ConflictError,
    ConfirmationExpiredError,
    InvalidStateError,
    CancellationWindowError,
    ForbiddenError,
    TransactionTimeoutError,
)
from .request_store import RequestStore
from .auto_cancel_scheduler import AutoCancelScheduler
from .confirmation_expiry_scanner import ConfirmationExpiryScanner
from .penalty_calculator import PenaltyCalculator
from .penalty_service import PenaltyService
from .lifecycle_engine import LifecycleEngine

__all__ = [
    "LifecycleError",
    "NotFoundError",
    "ConflictError",
    "ConfirmationExpiredError",
    "InvalidStateError",
    "CancellationWindowError",
    "ForbiddenError",
    "TransactionTimeoutError",
    "RequestStore",
    "AutoCancelScheduler",
    "ConfirmationExpiryScanner",
    "PenaltyCalculator",
    "PenaltyService",
    "LifecycleEngine",
]
