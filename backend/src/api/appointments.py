# pyright: reportMissingTypeStubs=false
"""
Appointment lifecycle API endpoints.

Practices post and manage requests, locums apply, answer offers and manage
their queue, and administrators cancel bookings and resolve penalties.

Authentication is handled upstream; callers pass the acting user id in the
request body or path. Lifecycle errors are mapped to HTTP responses by the
application-wide exception handler.
"""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field

from core.constants import MAX_REASON_LENGTH, MAX_STRING_LENGTH
from models import (
    ApplicationStatus,
    BookingStatus,
    CancelledBy,
    ConfirmationStatus,
    PenaltyStatus,
    RequestStatus,
)
from services.confirmation_expiry_scanner import PendingConfirmation
from services.lifecycle_engine import (
    ConfirmationAction,
    LifecycleEngine,
    RequestSlot,
    RequestUpdate,
    get_lifecycle_engine,
)
from services.penalty_service import PenaltyService

logger = logging.getLogger(__name__)

router = APIRouter()


def get_engine() -> LifecycleEngine:
    """Dependency returning the process-wide lifecycle engine."""
    return get_lifecycle_engine()


def get_penalty_service(engine: LifecycleEngine = Depends(get_engine)) -> PenaltyService:
    return PenaltyService(engine.store, now_fn=engine.now_fn)


# ===== Request Models =====

class CreateRequestBody(RequestSlot):
    practice_id: str = Field(..., max_length=MAX_STRING_LENGTH)


class UpdateRequestBody(RequestUpdate):
    practice_id: str


class CancelRequestBody(BaseModel):
    practice_id: str
    reason: Optional[str] = Field(None, max_length=MAX_REASON_LENGTH)


class ApplyBody(BaseModel):
    locum_id: str
    message: Optional[str] = Field(None, max_length=MAX_REASON_LENGTH)


class SelectApplicantBody(BaseModel):
    locum_id: str
    practice_id: Optional[str] = None


class RespondBody(BaseModel):
    locum_id: str
    action: ConfirmationAction
    reason: Optional[str] = Field(None, max_length=MAX_REASON_LENGTH)


class IgnoreBody(BaseModel):
    locum_id: str
    reason: Optional[str] = Field(None, max_length=MAX_REASON_LENGTH)


class CancelBookingBody(BaseModel):
    user_id: str
    user_type: Literal["locum", "practice"]
    reason: Optional[str] = Field(None, max_length=MAX_REASON_LENGTH)


class AdminCancelBookingBody(BaseModel):
    cancelled_party_type: Literal["locum", "practice"]
    reason: Optional[str] = Field(None, max_length=MAX_REASON_LENGTH)
    hourly_rate: Optional[Decimal] = Field(None, ge=0)


# ===== Response Models =====

class RequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    practice_id: str
    branch_id: Optional[str] = None
    appointment_date: date
    start_time: str
    end_time: str
    location: str
    required_role: str
    status: RequestStatus
    auto_cancel_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    created_at: datetime


class ApplicationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    request_id: str
    locum_id: str
    status: ApplicationStatus
    message: Optional[str] = None
    responded_at: Optional[datetime] = None


class ConfirmationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    request_id: str
    chosen_locum_id: str
    sequence: int
    status: ConfirmationStatus
    expires_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    locum_responded_at: Optional[datetime] = None


class BookingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    request_id: str
    locum_id: str
    practice_id: str
    booking_date: date
    start_time: str
    end_time: str
    location: str
    status: BookingStatus
    accept_time: datetime
    cancel_by: Optional[CancelledBy] = None
    cancel_time: Optional[datetime] = None
    cancellation_reason: Optional[str] = None


class PenaltyResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    booking_id: str
    cancelled_party_id: str
    cancelled_party_type: str
    status: PenaltyStatus
    hours_before_appointment: float
    penalty_hours: int
    hourly_rate: Optional[Decimal] = None
    penalty_amount: Optional[Decimal] = None
    reason: Optional[str] = None
    resolved_at: Optional[datetime] = None


class RespondResponse(BaseModel):
    action: ConfirmationAction
    confirmation: ConfirmationResponse
    booking: Optional[BookingResponse] = None


class AdminCancelResponse(BaseModel):
    booking: BookingResponse
    penalty: Optional[PenaltyResponse] = None


class RequestListResponse(BaseModel):
    requests: List[RequestResponse]


class PendingConfirmationListResponse(BaseModel):
    confirmations: List[PendingConfirmation]


class PenaltyListResponse(BaseModel):
    penalties: List[PenaltyResponse]


# ===== Practice endpoints =====

@router.post("/requests", response_model=RequestResponse, status_code=status.HTTP_201_CREATED)
def create_request(body: CreateRequestBody, engine: LifecycleEngine = Depends(get_engine)) -> RequestResponse:
    """Post a new appointment request."""
    slot = RequestSlot(**body.model_dump(exclude={"practice_id"}))
    request = engine.create_request(body.practice_id, slot)
    return RequestResponse.model_validate(request)


@router.patch("/requests/{request_id}", response_model=RequestResponse)
def update_request(
    request_id: str, body: UpdateRequestBody, engine: LifecycleEngine = Depends(get_engine)
) -> RequestResponse:
    changes = RequestUpdate(**body.model_dump(exclude={"practice_id"}))
    request = engine.update_request(request_id, body.practice_id, changes)
    return RequestResponse.model_validate(request)


@router.post("/requests/{request_id}/cancel", response_model=RequestResponse)
def cancel_request(
    request_id: str, body: CancelRequestBody, engine: LifecycleEngine = Depends(get_engine)
) -> RequestResponse:
    request = engine.cancel_request(request_id, body.practice_id, body.reason)
    return RequestResponse.model_validate(request)


@router.post("/requests/{request_id}/select", response_model=ConfirmationResponse, status_code=status.HTTP_201_CREATED)
def select_applicant(
    request_id: str, body: SelectApplicantBody, engine: LifecycleEngine = Depends(get_engine)
) -> ConfirmationResponse:
    """Offer the request to one applicant."""
    confirmation = engine.select_applicant(request_id, body.locum_id, practice_id=body.practice_id)
    return ConfirmationResponse.model_validate(confirmation)


# ===== Locum endpoints =====

@router.post(
    "/requests/{request_id}/applications",
    response_model=ApplicationResponse,
    status_code=status.HTTP_201_CREATED,
)
def apply(request_id: str, body: ApplyBody, engine: LifecycleEngine = Depends(get_engine)) -> ApplicationResponse:
    application = engine.apply(request_id, body.locum_id, body.message)
    return ApplicationResponse.model_validate(application)


@router.post("/confirmations/{confirmation_id}/respond", response_model=RespondResponse)
def respond_to_confirmation(
    confirmation_id: str, body: RespondBody, engine: LifecycleEngine = Depends(get_engine)
) -> RespondResponse:
    """Confirm or reject an offer."""
    result = engine.respond_to_confirmation(confirmation_id, body.locum_id, body.action, body.reason)
    return RespondResponse(
        action=result.action,
        confirmation=ConfirmationResponse.model_validate(result.confirmation),
        booking=BookingResponse.model_validate(result.booking) if result.booking else None,
    )


@router.get("/locums/{locum_id}/pending-confirmations", response_model=PendingConfirmationListResponse)
def pending_confirmations(
    locum_id: str, engine: LifecycleEngine = Depends(get_engine)
) -> PendingConfirmationListResponse:
    return PendingConfirmationListResponse(confirmations=engine.pending_confirmations(locum_id))


@router.get("/locums/{locum_id}/available-requests", response_model=RequestListResponse)
def available_requests(
    locum_id: str,
    required_role: Optional[str] = Query(None),
    engine: LifecycleEngine = Depends(get_engine),
) -> RequestListResponse:
    requests = engine.available_requests(locum_id, required_role)
    return RequestListResponse(requests=[RequestResponse.model_validate(r) for r in requests])


@router.post("/requests/{request_id}/ignore", status_code=status.HTTP_201_CREATED)
def ignore_request(request_id: str, body: IgnoreBody, engine: LifecycleEngine = Depends(get_engine)) -> dict:
    ignored = engine.ignore_request(request_id, body.locum_id, body.reason)
    return {"success": True, "id": ignored.id}


@router.delete("/requests/{request_id}/ignore")
def unignore_request(
    request_id: str, locum_id: str = Query(...), engine: LifecycleEngine = Depends(get_engine)
) -> dict:
    engine.unignore_request(request_id, locum_id)
    return {"success": True}


# ===== Bookings =====

@router.post("/bookings/{booking_id}/cancel", response_model=BookingResponse)
def cancel_booking(
    booking_id: str, body: CancelBookingBody, engine: LifecycleEngine = Depends(get_engine)
) -> BookingResponse:
    booking = engine.cancel_booking(booking_id, body.user_id, body.user_type, body.reason)
    return BookingResponse.model_validate(booking)


# ===== Admin =====

@router.post("/admin/bookings/{booking_id}/cancel", response_model=AdminCancelResponse)
def admin_cancel_booking(
    booking_id: str, body: AdminCancelBookingBody, engine: LifecycleEngine = Depends(get_engine)
) -> AdminCancelResponse:
    booking, penalty = engine.admin_cancel_booking(
        booking_id, body.cancelled_party_type, body.reason, body.hourly_rate
    )
    return AdminCancelResponse(
        booking=BookingResponse.model_validate(booking),
        penalty=PenaltyResponse.model_validate(penalty) if penalty else None,
    )


@router.get("/admin/penalties", response_model=PenaltyListResponse)
def list_penalties(
    booking_id: Optional[str] = Query(None),
    penalty_status: Optional[PenaltyStatus] = Query(None, alias="status"),
    service: PenaltyService = Depends(get_penalty_service),
) -> PenaltyListResponse:
    penalties = service.list_penalties(booking_id=booking_id, status=penalty_status)
    return PenaltyListResponse(penalties=[PenaltyResponse.model_validate(p) for p in penalties])


@router.post("/admin/penalties/{penalty_id}/charge", response_model=PenaltyResponse)
def mark_penalty_charged(penalty_id: str, service: PenaltyService = Depends(get_penalty_service)) -> PenaltyResponse:
    return PenaltyResponse.model_validate(service.mark_charged(penalty_id))


@router.post("/admin/penalties/{penalty_id}/dismiss", response_model=PenaltyResponse)
def dismiss_penalty(penalty_id: str, service: PenaltyService = Depends(get_penalty_service)) -> PenaltyResponse:
    return PenaltyResponse.model_validate(service.dismiss(penalty_id))
