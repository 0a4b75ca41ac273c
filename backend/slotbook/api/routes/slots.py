"""
Staff slot management: batch create, list, edit, delete.

Edits and deletes are refused (409 slot_in_use) while a booking holds the slot.
"""
from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from slotbook.core.constants import SlotStatus, SlotType
from slotbook.db.session import get_db
from slotbook.services import slot_ledger

router = APIRouter()


class CreateSlotsRequest(BaseModel):
    provider_id: int
    dates: list[date] = Field(..., min_length=1, max_length=93)
    times: list[str] = Field(..., min_length=1, max_length=48, description="HH:MM or 9:00 AM")
    status: SlotStatus = SlotStatus.AVAILABLE
    slot_type: SlotType = SlotType.REGULAR
    notes: str | None = None
    hidden: bool = False


class UpdateSlotRequest(BaseModel):
    status: SlotStatus | None = None
    slot_type: SlotType | None = None
    notes: str | None = None
    hidden: bool | None = None


@router.post("", status_code=201)
def create_slots_route(body: CreateSlotsRequest, db: Session = Depends(get_db)) -> dict[str, Any]:
    """Creates every date x time combination; existing ones are listed in `errors` and skipped."""
    created, errors = slot_ledger.create_slots(
        db,
        body.provider_id,
        body.dates,
        body.times,
        status=body.status,
        slot_type=body.slot_type,
        notes=body.notes,
        hidden=body.hidden,
    )
    return {"created": [slot_ledger.slot_to_dict(s) for s in created], "errors": errors}


@router.get("")
def list_slots_route(
    db: Session = Depends(get_db),
    provider_id: int | None = Query(None),
    date_: date | None = Query(None, alias="date"),
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    status: SlotStatus | None = Query(None),
) -> dict[str, Any]:
    rows = slot_ledger.list_slots(db, provider_id, date_, start_date, end_date, status)
    return {"slots": [slot_ledger.slot_to_dict(s) for s in rows]}


@router.get("/{slot_id}")
def get_slot_route(slot_id: int, db: Session = Depends(get_db)) -> dict[str, Any]:
    return slot_ledger.slot_to_dict(slot_ledger.get_slot(db, slot_id))


@router.patch("/{slot_id}")
def update_slot_route(slot_id: int, body: UpdateSlotRequest, db: Session = Depends(get_db)) -> dict[str, Any]:
    slot = slot_ledger.update_slot(db, slot_id, **body.model_dump(exclude_unset=True))
    return slot_ledger.slot_to_dict(slot)


@router.delete("/{slot_id}", status_code=204)
def delete_slot_route(slot_id: int, db: Session = Depends(get_db)) -> Response:
    slot_ledger.delete_slot(db, slot_id)
    return Response(status_code=204)
