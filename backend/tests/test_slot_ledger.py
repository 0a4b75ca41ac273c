from datetime import date, datetime, timezone

import pytest

from slotbook.core.constants import SlotStatus, SlotType
from slotbook.core.errors import (
    ProviderMismatch,
    ProviderNotFound,
    SlotInUse,
    SlotNotFound,
    SlotUnavailable,
    StateConflict,
    ValidationFailed,
)
from slotbook.models.slot import Slot
from slotbook.services import slot_ledger
from slotbook.services.provider_service import create_provider

DAY = date(2024, 6, 1)


def statuses(db, rows):
    db.expire_all()
    return [db.get(Slot, r.id).status for r in rows]


def test_reserve_all_or_nothing(db, provider, make_slots):
    a, b, c = make_slots(provider.id, ["09:00", "09:30", "10:00"])
    db.query(Slot).filter(Slot.id == c.id).update({"status": SlotStatus.CONFIRMED})
    db.commit()

    with pytest.raises(SlotUnavailable) as exc:
        slot_ledger.validate_and_reserve(db, [a.id, b.id, c.id], provider.id)
    assert exc.value.context["slot_id"] == c.id
    assert statuses(db, [a, b]) == [SlotStatus.AVAILABLE, SlotStatus.AVAILABLE]

    assert slot_ledger.validate_and_reserve(db, [a.id, b.id], provider.id) == [a.id, b.id]
    assert statuses(db, [a, b]) == [SlotStatus.PENDING, SlotStatus.PENDING]


def test_reserve_diagnoses_missing_and_wrong_provider(db, provider, make_slots):
    other = create_provider(db, "Bea")
    (mine,) = make_slots(provider.id, ["09:00"])
    (theirs,) = make_slots(other.id, ["09:00"])

    with pytest.raises(SlotNotFound):
        slot_ledger.validate_and_reserve(db, [mine.id, 9999], provider.id)
    with pytest.raises(ProviderMismatch):
        slot_ledger.validate_and_reserve(db, [mine.id, theirs.id], provider.id)
    assert statuses(db, [mine, theirs]) == [SlotStatus.AVAILABLE, SlotStatus.AVAILABLE]


@pytest.mark.parametrize("bad", [[], [1, 1], ["x"], None])
def test_reserve_rejects_bad_id_lists(db, provider, bad):
    with pytest.raises(ValidationFailed):
        slot_ledger.validate_and_reserve(db, bad, provider.id)


def test_release_is_idempotent_and_unconditional(db, provider, make_slots):
    a, b = make_slots(provider.id, ["09:00", "09:30"], status=SlotStatus.CONFIRMED)
    assert slot_ledger.release(db, [a.id, b.id]) == 2
    assert slot_ledger.release(db, [a.id, b.id]) == 2
    assert statuses(db, [a, b]) == [SlotStatus.AVAILABLE, SlotStatus.AVAILABLE]
    assert slot_ledger.release(db, []) == 0


def test_confirm_requires_pending(db, provider, make_slots):
    (a,) = make_slots(provider.id, ["09:00"], status=SlotStatus.PENDING)
    (b,) = make_slots(provider.id, ["09:30"])
    with pytest.raises(StateConflict):
        slot_ledger.confirm(db, [a.id, b.id])
    assert statuses(db, [a, b]) == [SlotStatus.PENDING, SlotStatus.AVAILABLE]
    assert slot_ledger.confirm(db, [a.id]) == 1
    assert statuses(db, [a]) == [SlotStatus.CONFIRMED]


def test_create_slots_batch_reports_duplicates(db, provider):
    created, errors = slot_ledger.create_slots(db, provider.id, ["2024-06-01", DAY], ["9:00", "9:30 AM"])
    # The same date listed twice: the second pass only produces duplicates
    assert len(created) == 2
    assert errors == ["Slot already exists: 2024-06-01 09:00", "Slot already exists: 2024-06-01 09:30"]

    created, errors = slot_ledger.create_slots(
        db, provider.id, [DAY, date(2024, 6, 2)], ["09:00"], slot_type=SlotType.SURCHARGE, hidden=True
    )
    assert [(s.date, s.time) for s in created] == [(date(2024, 6, 2), "09:00")]
    assert created[0].slot_type == SlotType.SURCHARGE
    assert created[0].hidden is True
    assert errors == ["Slot already exists: 2024-06-01 09:00"]


def test_create_slots_validation(db, provider):
    with pytest.raises(ProviderNotFound):
        slot_ledger.create_slots(db, 999, [DAY], ["09:00"])
    with pytest.raises(ValidationFailed):
        slot_ledger.create_slots(db, provider.id, [DAY], ["09:00"], status=SlotStatus.PENDING)
    with pytest.raises(ValidationFailed):
        slot_ledger.create_slots(db, provider.id, [DAY], ["09:15"])  # off the 30-minute grid
    with pytest.raises(ValidationFailed):
        slot_ledger.create_slots(db, provider.id, ["June 1"], ["09:00"])


def test_list_available_hides_hidden_and_taken(db, provider, make_slots):
    make_slots(provider.id, ["09:00", "09:30"])
    make_slots(provider.id, ["10:00"], hidden=True)
    make_slots(provider.id, ["10:30"], status=SlotStatus.BLOCKED)
    make_slots(provider.id, ["11:00"], status=SlotStatus.PENDING)

    public = slot_ledger.list_available_slots(db, provider.id, DAY, DAY)
    assert [s.time for s in public] == ["09:00", "09:30"]
    staff = slot_ledger.list_available_slots(db, provider.id, DAY, DAY, include_hidden=True)
    assert [s.time for s in staff] == ["09:00", "09:30", "10:00"]
    with pytest.raises(ValidationFailed):
        slot_ledger.list_available_slots(db, provider.id, date(2024, 6, 2), DAY)


def test_update_slot_refused_while_held(db, provider, make_slots):
    (free,) = make_slots(provider.id, ["09:00"])
    (held,) = make_slots(provider.id, ["09:30"], status=SlotStatus.PENDING)

    updated = slot_ledger.update_slot(db, free.id, status=SlotStatus.BLOCKED, notes=" lunch ", hidden=True)
    assert updated.status == SlotStatus.BLOCKED
    assert updated.notes == "lunch"
    assert updated.hidden is True

    with pytest.raises(SlotInUse):
        slot_ledger.update_slot(db, held.id, notes="x")
    with pytest.raises(ValidationFailed):
        slot_ledger.update_slot(db, free.id, status=SlotStatus.CONFIRMED)


def test_delete_slot(db, provider, customer, make_slots, make_booking):
    free, booked = make_slots(provider.id, ["09:00", "09:30"])
    free_id, booked_id = free.id, booked.id
    slot_ledger.delete_slot(db, free_id)
    with pytest.raises(SlotNotFound):
        slot_ledger.get_slot(db, free_id)

    make_booking(customer.id, provider.id, [booked_id])
    with pytest.raises(SlotInUse):
        slot_ledger.delete_slot(db, booked_id)


def test_cleanup_past_slots(db, provider, customer, make_slots, make_booking):
    old_free, old_booked = make_slots(provider.id, ["09:00", "09:30"], day=date(2024, 5, 30))
    make_booking(customer.id, provider.id, [old_booked.id])
    today_early, today_late = make_slots(provider.id, ["09:00", "18:00"], day=date(2024, 6, 1))
    deleted_ids = sorted([old_free.id, today_early.id])
    kept_ids = {old_booked.id, today_late.id}

    # 2024-06-01 04:00 UTC is 12:00 in Manila
    now = datetime(2024, 6, 1, 4, 0, tzinfo=timezone.utc)
    result = slot_ledger.cleanup_past_slots(db, now=now)
    assert result["deleted"] == 2
    assert sorted(result["slot_ids"]) == deleted_ids
    remaining = {s.id for s in slot_ledger.list_slots(db, provider_id=provider.id)}
    assert remaining == kept_ids
