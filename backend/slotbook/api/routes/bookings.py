"""
Bookings API: create, read, and lifecycle actions.

Routes stay thin; every rule lives in services.booking_service and errors map through core.errors.
"""
from datetime import date, datetime
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from slotbook.core.constants import (
    BookingStatus,
    ClientType,
    PaymentMethod,
    PaymentStatus,
    ServiceLocation,
    ServiceType,
)
from slotbook.db.session import get_db
from slotbook.services import booking_service
from slotbook.services.booking_service import booking_to_dict

router = APIRouter()


class CreateBookingRequest(BaseModel):
    customer_id: int
    provider_id: int
    slot_ids: list[int] | None = Field(None, min_length=1, max_length=12, description="Explicit slot set")
    start_slot_id: int | None = Field(None, description="Or a start slot; the rest is resolved from the service")
    required_slot_count: int | None = Field(None, ge=1, le=12)
    service_type: ServiceType
    service_location: ServiceLocation
    client_type: ClientType
    total: float = Field(..., ge=0)
    deposit_required: float = Field(..., ge=0)
    discount_amount: float = Field(0.0, ge=0)
    client_notes: str | None = None
    admin_notes: str | None = None


class PaymentRequest(BaseModel):
    paid_amount: float = Field(..., ge=0)
    tip_amount: float = Field(0.0, ge=0)
    method: PaymentMethod | None = None
    allow_completed: bool = False


class CancelRequest(BaseModel):
    admin_override: bool = False
    reason: str | None = None


class ReasonRequest(BaseModel):
    reason: str | None = None


class RescheduleRequest(BaseModel):
    reason: str = Field(..., min_length=1)


class ProofRequest(BaseModel):
    proof_url: str = Field(..., min_length=1, max_length=2048)


class UpdateBookingRequest(BaseModel):
    service_type: ServiceType | None = None
    service_location: ServiceLocation | None = None
    client_type: ClientType | None = None
    total: float | None = Field(None, ge=0)
    deposit_required: float | None = Field(None, ge=0)
    discount_amount: float | None = Field(None, ge=0)
    client_notes: str | None = None
    admin_notes: str | None = None


# --- Create / read ---


@router.post("", status_code=201)
def create_booking_route(body: CreateBookingRequest, db: Session = Depends(get_db)) -> dict[str, Any]:
    """409 slot_reservation_failed (context.cause == "slot_unavailable") means: pick another slot."""
    booking = booking_service.create_booking(
        db,
        customer_id=body.customer_id,
        provider_id=body.provider_id,
        service_type=body.service_type,
        service_location=body.service_location,
        client_type=body.client_type,
        total=body.total,
        deposit_required=body.deposit_required,
        slot_ids=body.slot_ids,
        start_slot_id=body.start_slot_id,
        required_count=body.required_slot_count,
        discount_amount=body.discount_amount,
        client_notes=body.client_notes,
        admin_notes=body.admin_notes,
    )
    return booking_to_dict(booking)


@router.get("")
def list_bookings_route(
    db: Session = Depends(get_db),
    customer_id: int | None = Query(None),
    provider_id: int | None = Query(None),
    status: BookingStatus | None = Query(None),
    payment_status: PaymentStatus | None = Query(None),
    slot_date: date | None = Query(None),
    created_from: datetime | None = Query(None),
    created_to: datetime | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
) -> dict[str, Any]:
    rows = booking_service.list_bookings(
        db,
        customer_id=customer_id,
        provider_id=provider_id,
        status=status,
        payment_status=payment_status,
        slot_date=slot_date,
        limit=limit,
        created_from=created_from,
        created_to=created_to,
    )
    return {"bookings": [booking_to_dict(b) for b in rows]}


@router.get("/code/{booking_code}")
def get_booking_by_code_route(booking_code: str, db: Session = Depends(get_db)) -> dict[str, Any]:
    return booking_to_dict(booking_service.get_booking_by_code(db, booking_code))


@router.get("/{booking_id}")
def get_booking_route(booking_id: int, db: Session = Depends(get_db)) -> dict[str, Any]:
    return booking_to_dict(booking_service.require_booking(db, booking_id))


@router.patch("/{booking_id}")
def update_booking_route(booking_id: int, body: UpdateBookingRequest, db: Session = Depends(get_db)) -> dict[str, Any]:
    booking = booking_service.update_booking_details(db, booking_id, **body.model_dump(exclude_unset=True))
    return booking_to_dict(booking)


# --- Lifecycle actions ---


@router.post("/{booking_id}/payment")
def update_payment_route(booking_id: int, body: PaymentRequest, db: Session = Depends(get_db)) -> dict[str, Any]:
    booking = booking_service.update_payment(
        db,
        booking_id,
        body.paid_amount,
        body.tip_amount,
        method=body.method,
        allow_completed=body.allow_completed,
    )
    return booking_to_dict(booking)


@router.post("/{booking_id}/proof")
def attach_proof_route(booking_id: int, body: ProofRequest, db: Session = Depends(get_db)) -> dict[str, Any]:
    return booking_to_dict(booking_service.attach_payment_proof(db, booking_id, body.proof_url))


@router.post("/{booking_id}/confirm")
def confirm_route(booking_id: int, db: Session = Depends(get_db)) -> dict[str, Any]:
    return booking_to_dict(booking_service.confirm_booking(db, booking_id))


@router.post("/{booking_id}/cancel")
def cancel_route(booking_id: int, body: CancelRequest, db: Session = Depends(get_db)) -> dict[str, Any]:
    booking = booking_service.cancel_booking(db, booking_id, admin_override=body.admin_override, reason=body.reason)
    return booking_to_dict(booking)


@router.post("/{booking_id}/complete")
def complete_route(booking_id: int, db: Session = Depends(get_db)) -> dict[str, Any]:
    return booking_to_dict(booking_service.mark_completed(db, booking_id))


@router.post("/{booking_id}/no-show")
def no_show_route(booking_id: int, body: ReasonRequest, db: Session = Depends(get_db)) -> dict[str, Any]:
    return booking_to_dict(booking_service.mark_no_show(db, booking_id, reason=body.reason))


@router.post("/{booking_id}/reschedule")
def reschedule_route(booking_id: int, body: RescheduleRequest, db: Session = Depends(get_db)) -> dict[str, Any]:
    return booking_to_dict(booking_service.reschedule_booking(db, booking_id, body.reason))
