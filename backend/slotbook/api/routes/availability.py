"""Public availability: open slots, and where a multi-slot service fits."""
from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from slotbook.core.constants import ServiceType
from slotbook.db.session import get_db
from slotbook.services.availability import get_availability, resolve_for_slot
from slotbook.services.slot_ledger import slot_to_dict

router = APIRouter()


@router.get("")
def availability_route(
    provider_id: int,
    start_date: date,
    end_date: date | None = Query(None),
    service_type: ServiceType | None = Query(None),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """Hidden slots are never listed here."""
    return get_availability(db, provider_id, start_date, end_date, service_type)


@router.get("/resolve")
def resolve_route(
    start_slot_id: int,
    service_type: ServiceType | None = Query(None),
    required_count: int | None = Query(None, ge=1, le=12),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """Preview which slots a booking from start_slot_id would take, or why it cannot fit."""
    result = resolve_for_slot(db, start_slot_id, service_type, required_count)
    return {
        "ok": result.ok,
        "slots": [slot_to_dict(s) for s in result.slots],
        "failure": result.failure.value if result.failure else None,
        "diagnostic": result.diagnostic,
        "blocking_slot_id": getattr(result.blocking_slot, "id", None),
    }
