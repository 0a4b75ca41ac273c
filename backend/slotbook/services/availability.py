"""
Public availability: which slots can be booked, and which dates/start slots fit a given service.
"""
import logging
from datetime import date, timedelta
from typing import Any

from sqlalchemy.orm import Session

from slotbook.core.constants import AVAILABILITY_MAX_DAYS, ServiceType, required_slot_count
from slotbook.core.errors import ValidationFailed
from slotbook.services import slot_ledger
from slotbook.services.slot_resolver import ResolveResult, compatible_start_slots, eligible_dates, resolve

logger = logging.getLogger(__name__)


def _slot_count(service_type: ServiceType | str | None, required_count: int | None) -> int:
    if required_count is not None:
        if required_count < 1:
            raise ValidationFailed("required_count must be at least 1")
        return required_count
    if service_type is None:
        return 1
    try:
        return required_slot_count(service_type)
    except ValueError:
        raise ValidationFailed(f"Unknown service type {service_type!r}") from None


def resolve_for_slot(
    db: Session,
    start_slot_id: int,
    service_type: ServiceType | str | None = None,
    required_count: int | None = None,
) -> ResolveResult:
    """Run the consecutive-slot walk from a stored slot against that provider's slots on the same date."""
    start = slot_ledger.get_slot(db, start_slot_id)
    count = _slot_count(service_type, required_count)
    return resolve(start, count, slot_ledger.slots_for_date(db, start.provider_id, start.date))


def get_availability(
    db: Session,
    provider_id: int,
    start_date: date,
    end_date: date | None = None,
    service_type: ServiceType | str | None = None,
    include_hidden: bool = False,
) -> dict[str, Any]:
    """Available slots in range; with a service, also the dates and start slots where it fits."""
    end_date = end_date or start_date
    if end_date < start_date:
        raise ValidationFailed("end_date must not be before start_date")
    if end_date - start_date > timedelta(days=AVAILABILITY_MAX_DAYS):
        raise ValidationFailed(f"Date range may span at most {AVAILABILITY_MAX_DAYS} days")

    available = slot_ledger.list_available_slots(db, provider_id, start_date, end_date, include_hidden=include_hidden)
    out: dict[str, Any] = {
        "provider_id": provider_id,
        "start_date": start_date.isoformat(),
        "end_date": end_date.isoformat(),
        "slots": [slot_ledger.slot_to_dict(s) for s in available],
    }
    if service_type is None:
        return out

    count = _slot_count(service_type, None)
    # The walk needs every record in range (occupied ones break runs), not just the available ones
    every_slot = slot_ledger.list_slots(db, provider_id=provider_id, start_date=start_date, end_date=end_date)
    starts = compatible_start_slots(every_slot, count, include_hidden=include_hidden)
    out["service_type"] = ServiceType(service_type).value
    out["required_slot_count"] = count
    out["eligible_dates"] = [d.isoformat() for d in eligible_dates(every_slot, count, include_hidden=include_hidden)]
    out["start_slots"] = [slot_ledger.slot_to_dict(s) for s in starts]
    return out
