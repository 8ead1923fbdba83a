# Package initialization
# Import all models to ensure they are registered with Base.metadata
from .appointment_request import AppointmentRequest, RequestStatus
from .appointment_application import AppointmentApplication, ApplicationStatus
from .appointment_confirmation import AppointmentConfirmation, ConfirmationStatus
from .booking import Booking, BookingStatus, CancelledBy
from .cancellation_penalty import CancellationPenalty, PenaltyStatus
from .ignored_appointment import IgnoredAppointment
from .locum_schedule_lock import LocumScheduleLock

__all__ = [
    "AppointmentRequest",
    "RequestStatus",
    "AppointmentApplication",
    "ApplicationStatus",
    "AppointmentConfirmation",
    "ConfirmationStatus",
    "Booking",
    "BookingStatus",
    "CancelledBy",
    "CancellationPenalty",
    "PenaltyStatus",
    "IgnoredAppointment",
    "LocumScheduleLock",
]
