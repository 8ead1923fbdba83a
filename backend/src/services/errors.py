"""
Error types raised by the appointment lifecycle.

Every lifecycle operation either returns its result or raises one of these.
The request store rolls the transaction back on any of them, and the API layer
maps them to HTTP responses through `status_code`.
"""

from typing import Optional


class LifecycleError(Exception):
    """Base class for lifecycle failures that are reported to the caller."""

    status_code = 400
    error_type = "lifecycle_error"

    def __init__(self, message: str, entity_id: Optional[str] = None):
        self.message = message
        self.entity_id = entity_id
        super().__init__(self.message)


class NotFoundError(LifecycleError):
    """Entity missing."""

    status_code = 404
    error_type = "not_found"


class ConflictError(LifecycleError):
    """
    Invariant violated: duplicate application, already-selected request,
    re-selection of a rejected candidate, overlapping booking, expired offer.
    """

    status_code = 409
    error_type = "conflict"


class ConfirmationExpiredError(ConflictError):
    """The offer's deadline passed; it has been recorded as LOCUM_REJECTED("expired")."""

    error_type = "confirmation_expired"


class InvalidStateError(LifecycleError):
    """Operation attempted outside the entity's current lifecycle state."""

    status_code = 400
    error_type = "invalid_state"


class CancellationWindowError(InvalidStateError):
    """Self-service cancellation refused inside the no-cancellation window."""

    error_type = "cancellation_window"


class ForbiddenError(LifecycleError):
    """Caller does not own the entity it is acting on."""

    status_code = 403
    error_type = "forbidden"


class TransactionTimeoutError(LifecycleError):
    """Transaction exceeded its time bound. Safe to retry."""

    status_code = 503
    error_type = "timeout"
