"""
Slot ledger: the only writer of slot status.

Every status change is a single conditional UPDATE on the expected prior status, so checking
"is this slot available" and marking it pending cannot be split by a concurrent request.
Multi-slot reservations go through one statement and are rolled back unless every row matched.
"""
import logging
from datetime import date, datetime
from typing import Any, Iterable

from sqlalchemy import delete, exists, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from slotbook.core.constants import HELD_SLOT_STATUSES, STAFF_SLOT_STATUSES, SlotStatus, SlotType
from slotbook.core.errors import (
    ProviderMismatch,
    ProviderNotFound,
    SlotInUse,
    SlotNotFound,
    SlotUnavailable,
    StateConflict,
    ValidationFailed,
)
from slotbook.core.time_grid import business_now, default_grid, normalize_time
from slotbook.models.booking import BookingSlot
from slotbook.models.provider import Provider
from slotbook.models.slot import Slot

logger = logging.getLogger(__name__)


def normalize_slot_ids(slot_ids: Iterable[Any]) -> list[int]:
    """Non-empty, duplicate-free list of int ids, order preserved."""
    if slot_ids is None:
        raise ValidationFailed("At least one slot is required")
    ids: list[int] = []
    for raw in slot_ids:
        try:
            slot_id = int(raw)
        except (TypeError, ValueError):
            raise ValidationFailed(f"Invalid slot id {raw!r}") from None
        if slot_id in ids:
            raise ValidationFailed(f"Slot {slot_id} listed more than once")
        ids.append(slot_id)
    if not ids:
        raise ValidationFailed("At least one slot is required")
    return ids


def as_date(value: date | str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        raise ValidationFailed(f"Invalid date {value}. Use YYYY-MM-DD.") from None


def _diagnose_reservation(db: Session, slot_ids: list[int], provider_id: int) -> Exception:
    """Explain why a reservation UPDATE matched fewer rows than requested."""
    rows = {s.id: s for s in db.query(Slot).filter(Slot.id.in_(slot_ids)).all()}
    missing = [i for i in slot_ids if i not in rows]
    if missing:
        return SlotNotFound("One or more slots not found", slot_ids=missing)
    for slot_id in slot_ids:
        slot = rows[slot_id]
        if slot.provider_id != provider_id:
            return ProviderMismatch(
                "All slots must belong to the same provider",
                slot_id=slot_id,
                provider_id=slot.provider_id,
            )
    for slot_id in slot_ids:
        slot = rows[slot_id]
        if slot.status != SlotStatus.AVAILABLE:
            return SlotUnavailable(
                f"Slot {slot_id} is not available (status: {slot.status.value})",
                slot_id=slot_id,
                status=slot.status.value,
            )
    # Every row looks fine now: it was taken and released between our UPDATE and this read.
    return SlotUnavailable("One or more slots changed while reserving", slot_ids=slot_ids)


def validate_and_reserve(db: Session, slot_ids: Iterable[Any], provider_id: int, *, commit: bool = True) -> list[int]:
    """Flip every slot available -> pending, or none of them.

    Raises SlotNotFound, ProviderMismatch or SlotUnavailable (after rolling back) when any slot fails.
    """
    ids = normalize_slot_ids(slot_ids)
    result = db.execute(
        update(Slot)
        .where(
            Slot.id.in_(ids),
            Slot.provider_id == provider_id,
            Slot.status == SlotStatus.AVAILABLE,
        )
        .values(status=SlotStatus.PENDING)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != len(ids):
        db.rollback()
        raise _diagnose_reservation(db, ids, provider_id)
    if commit:
        db.commit()
    logger.info("Reserved slots %s for provider %s", ids, provider_id)
    return ids


def release(db: Session, slot_ids: Iterable[Any], *, commit: bool = True) -> int:
    """Set slots back to available whatever their status. Idempotent."""
    ids = [int(i) for i in slot_ids]
    if not ids:
        return 0
    result = db.execute(
        update(Slot)
        .where(Slot.id.in_(ids))
        .values(status=SlotStatus.AVAILABLE)
        .execution_options(synchronize_session=False)
    )
    released = result.rowcount
    if commit:
        db.commit()
    logger.info("Released slots %s", ids)
    return released


def confirm(db: Session, slot_ids: Iterable[Any], *, commit: bool = True) -> int:
    """pending -> confirmed for every slot. Raises StateConflict if any slot is not pending."""
    ids = [int(i) for i in slot_ids]
    if not ids:
        return 0
    result = db.execute(
        update(Slot)
        .where(Slot.id.in_(ids), Slot.status == SlotStatus.PENDING)
        .values(status=SlotStatus.CONFIRMED)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != len(ids):
        if commit:
            db.rollback()
        raise StateConflict("Cannot confirm slots that are not pending", slot_ids=ids)
    if commit:
        db.commit()
    return len(ids)


# --- Staff CRUD ---


def create_slots(
    db: Session,
    provider_id: int,
    dates: Iterable[date | str],
    times: Iterable[str],
    status: SlotStatus | str = SlotStatus.AVAILABLE,
    slot_type: SlotType | str = SlotType.REGULAR,
    notes: str | None = None,
    hidden: bool = False,
) -> tuple[list[Slot], list[str]]:
    """Create one slot per date x time. Existing combinations are skipped with a diagnostic each."""
    if db.get(Provider, provider_id) is None:
        raise ProviderNotFound(f"Provider {provider_id} not found")
    try:
        status = SlotStatus(status)
        slot_type = SlotType(slot_type)
    except ValueError as e:
        raise ValidationFailed(str(e)) from None
    if status not in STAFF_SLOT_STATUSES:
        raise ValidationFailed(f"New slots must be available or blocked, got {status.value}")
    day_list = [as_date(d) for d in dates]
    time_list = [normalize_time(t) for t in times]
    if not day_list or not time_list:
        raise ValidationFailed("Date and time are required")
    grid = default_grid()
    off_grid = [t for t in time_list if t not in grid]
    if off_grid:
        raise ValidationFailed(f"Times not on the slot grid: {', '.join(off_grid)}")

    existing = {
        (d, t)
        for d, t in db.query(Slot.date, Slot.time).filter(
            Slot.provider_id == provider_id, Slot.date.in_(day_list), Slot.time.in_(time_list)
        )
    }
    created: list[Slot] = []
    errors: list[str] = []
    for day in day_list:
        for t in time_list:
            if (day, t) in existing:
                errors.append(f"Slot already exists: {day.isoformat()} {t}")
                continue
            existing.add((day, t))
            slot = Slot(
                provider_id=provider_id,
                date=day,
                time=t,
                status=status,
                slot_type=slot_type,
                notes=(notes or "").strip() or None,
                hidden=bool(hidden),
            )
            db.add(slot)
            created.append(slot)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise StateConflict("Slots were created concurrently for the same times; retry") from None
    for slot in created:
        db.refresh(slot)
    logger.info("Created %s slots for provider %s (%s skipped)", len(created), provider_id, len(errors))
    return created, errors


def get_slot(db: Session, slot_id: int) -> Slot:
    slot = db.get(Slot, slot_id)
    if slot is None:
        raise SlotNotFound(f"Slot {slot_id} not found", slot_id=slot_id)
    return slot


def slots_for_date(db: Session, provider_id: int, day: date) -> list[Slot]:
    """Every slot record (any status, hidden included) for one provider on one date."""
    return (
        db.query(Slot)
        .filter(Slot.provider_id == provider_id, Slot.date == day)
        .order_by(Slot.time.asc())
        .all()
    )


def list_slots(
    db: Session,
    provider_id: int | None = None,
    day: date | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    status: SlotStatus | str | None = None,
) -> list[Slot]:
    q = db.query(Slot)
    if provider_id is not None:
        q = q.filter(Slot.provider_id == provider_id)
    if day is not None:
        q = q.filter(Slot.date == day)
    if start_date is not None:
        q = q.filter(Slot.date >= start_date)
    if end_date is not None:
        q = q.filter(Slot.date <= end_date)
    if status is not None:
        q = q.filter(Slot.status == SlotStatus(status))
    return q.order_by(Slot.date.asc(), Slot.time.asc()).all()


def list_available_slots(
    db: Session,
    provider_id: int,
    start_date: date,
    end_date: date,
    include_hidden: bool = False,
) -> list[Slot]:
    """Public availability: available slots in [start_date, end_date], hidden ones excluded by default."""
    if start_date > end_date:
        raise ValidationFailed("start_date must not be after end_date")
    q = db.query(Slot).filter(
        Slot.provider_id == provider_id,
        Slot.date >= start_date,
        Slot.date <= end_date,
        Slot.status == SlotStatus.AVAILABLE,
    )
    if not include_hidden:
        q = q.filter(Slot.hidden.is_(False))
    return q.order_by(Slot.date.asc(), Slot.time.asc()).all()


def update_slot(
    db: Session,
    slot_id: int,
    status: SlotStatus | str | None = None,
    slot_type: SlotType | str | None = None,
    notes: str | None = None,
    hidden: bool | None = None,
) -> Slot:
    """Staff edit. Refused (SlotInUse) while a booking holds the slot; the check is part of the UPDATE."""
    values: dict[str, Any] = {}
    try:
        if status is not None:
            status = SlotStatus(status)
            if status not in STAFF_SLOT_STATUSES:
                raise ValidationFailed("Staff may only set a slot to available or blocked")
            values["status"] = status
        if slot_type is not None:
            values["slot_type"] = SlotType(slot_type)
    except ValueError as e:
        raise ValidationFailed(str(e)) from None
    if notes is not None:
        values["notes"] = notes.strip() or None
    if hidden is not None:
        values["hidden"] = bool(hidden)
    if not values:
        return get_slot(db, slot_id)

    result = db.execute(
        update(Slot)
        .where(Slot.id == slot_id, Slot.status.not_in(HELD_SLOT_STATUSES))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        slot = get_slot(db, slot_id)
        raise SlotInUse(f"Cannot edit a {slot.status.value} slot", slot_id=slot_id, status=slot.status.value)
    db.commit()
    slot = get_slot(db, slot_id)
    db.refresh(slot)
    return slot


def _unreferenced():
    return ~exists().where(BookingSlot.slot_id == Slot.id)


def delete_slot(db: Session, slot_id: int) -> None:
    """Delete an available/blocked slot that no booking has ever referenced (hide it otherwise)."""
    result = db.execute(
        delete(Slot)
        .where(Slot.id == slot_id, Slot.status.in_(STAFF_SLOT_STATUSES), _unreferenced())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        slot = get_slot(db, slot_id)
        raise SlotInUse(
            f"Cannot delete slot {slot_id} (status: {slot.status.value}); it is or was part of a booking",
            slot_id=slot_id,
            status=slot.status.value,
        )
    db.commit()
    logger.info("Deleted slot %s", slot_id)


def cleanup_past_slots(db: Session, now: datetime | None = None) -> dict[str, Any]:
    """Delete past slots that no booking references.

    Past = date before today (business timezone), or today with a time already gone.
    """
    local_now = business_now(now)
    today, now_time = local_now.date(), local_now.strftime("%H:%M")
    past = (Slot.date < today) | ((Slot.date == today) & (Slot.time < now_time))
    guard = (past, Slot.status.not_in(HELD_SLOT_STATUSES), _unreferenced())
    slot_ids = list(db.scalars(select(Slot.id).where(*guard)))
    if not slot_ids:
        return {"deleted": 0, "slot_ids": []}
    result = db.execute(
        delete(Slot).where(Slot.id.in_(slot_ids), *guard).execution_options(synchronize_session=False)
    )
    deleted = result.rowcount
    db.commit()
    logger.info("Cleaned up %s past slots", deleted)
    return {"deleted": deleted, "slot_ids": slot_ids}


def slot_to_dict(slot: Slot) -> dict[str, Any]:
    return {
        "id": slot.id,
        "provider_id": slot.provider_id,
        "date": slot.date.isoformat(),
        "time": slot.time,
        "status": slot.status.value,
        "slot_type": slot.slot_type.value,
        "hidden": bool(slot.hidden),
        "notes": slot.notes,
    }
