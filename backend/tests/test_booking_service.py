from datetime import date, datetime, timezone

import pytest

from slotbook.core.constants import BookingStatus, PaymentStatus, SlotStatus
from slotbook.core.errors import (
    BookingNotFound,
    BookingPersistenceFailed,
    ConsecutiveSlotsUnavailable,
    CustomerNotFound,
    PreconditionNotMet,
    SlotReservationFailed,
    ValidationFailed,
)
from slotbook.models.booking import Booking
from slotbook.models.slot import Slot
from slotbook.services import booking_service
from slotbook.services.booking_service import (
    cancel_booking,
    confirm_booking,
    create_booking,
    mark_completed,
    mark_no_show,
    reschedule_booking,
    update_payment,
)
from slotbook.services.customer_service import require_customer

DAY = date(2024, 6, 1)


def slot_status(db, slot_id):
    db.expire_all()
    return db.get(Slot, slot_id).status


def book(db, customer, provider, **kw):
    params = dict(
        customer_id=customer.id,
        provider_id=provider.id,
        service_type="manicure",
        service_location="homebased_studio",
        client_type="new",
        total=1500,
        deposit_required=500,
    )
    params.update(kw)
    return create_booking(db, **params)


def confirmed_booking(db, customer, provider, slot_ids):
    b = book(db, customer, provider, slot_ids=slot_ids)
    update_payment(db, b.id, 500)
    return confirm_booking(db, b.id)


def test_end_to_end_two_slot_booking(db, provider, customer, make_slots, notified):
    nine, nine_thirty, ten = make_slots(provider.id, ["09:00", "09:30", "10:00"])

    b = book(db, customer, provider, service_type="mani_pedi", start_slot_id=nine.id)
    assert b.status == BookingStatus.PENDING
    assert b.payment_status == PaymentStatus.UNPAID
    assert b.slot_ids == [nine.id, nine_thirty.id]
    assert b.booking_code.startswith("GN-")
    assert [slot_status(db, s.id) for s in (nine, nine_thirty, ten)] == [
        SlotStatus.PENDING,
        SlotStatus.PENDING,
        SlotStatus.AVAILABLE,
    ]
    assert len(notified) == 1
    assert notified[0][0]["booking_code"] == b.booking_code

    b = update_payment(db, b.id, 500, method="GCASH")
    assert b.payment_status == PaymentStatus.PARTIAL
    assert b.deposit_paid_at is not None

    b = confirm_booking(db, b.id)
    assert b.status == BookingStatus.CONFIRMED
    assert b.confirmed_at is not None
    assert slot_status(db, nine.id) == SlotStatus.CONFIRMED
    assert slot_status(db, nine_thirty.id) == SlotStatus.CONFIRMED

    b = mark_completed(db, b.id)
    assert b.status == BookingStatus.COMPLETED
    assert b.completed_at is not None
    c = require_customer(db, customer.id)
    db.refresh(c)
    assert (c.total_bookings, c.completed_bookings) == (1, 1)
    assert c.total_spent == pytest.approx(1500.0)


def test_resolution_skips_missing_records(db, provider, customer, make_slots):
    nine, ten = make_slots(provider.id, ["09:00", "10:00"])
    b = book(db, customer, provider, service_type="home_service_2slots", start_slot_id=nine.id)
    assert b.slot_ids == [nine.id, ten.id]


def test_resolution_gap_rejects_before_reserving(db, provider, customer, make_slots):
    (nine,) = make_slots(provider.id, ["09:00"])
    make_slots(provider.id, ["09:30"], status=SlotStatus.CONFIRMED)
    with pytest.raises(ConsecutiveSlotsUnavailable) as exc:
        book(db, customer, provider, service_type="mani_pedi", start_slot_id=nine.id)
    assert exc.value.reason == "gap_in_sequence"
    assert slot_status(db, nine.id) == SlotStatus.AVAILABLE
    assert db.query(Booking).count() == 0


def test_reservation_failure_is_distinguishable(db, provider, customer, make_slots):
    (nine,) = make_slots(provider.id, ["09:00"])
    book(db, customer, provider, slot_ids=[nine.id])
    with pytest.raises(SlotReservationFailed) as exc:
        book(db, customer, provider, slot_ids=[nine.id])
    assert exc.value.slot_unavailable
    assert exc.value.to_dict()["context"]["cause"] == "slot_unavailable"


def test_create_validates_before_mutating(db, provider, customer, make_slots):
    (nine,) = make_slots(provider.id, ["09:00"])
    with pytest.raises(ValidationFailed):
        book(db, customer, provider, slot_ids=[nine.id], total=-1)
    with pytest.raises(ValidationFailed):
        book(db, customer, provider, slot_ids=[nine.id], service_type="facial")
    with pytest.raises(ValidationFailed):
        book(db, customer, provider)  # neither slot_ids nor start_slot_id
    with pytest.raises(CustomerNotFound):
        book(db, customer, provider, slot_ids=[nine.id], customer_id=999)
    assert slot_status(db, nine.id) == SlotStatus.AVAILABLE


def test_persistence_failure_releases_reservation(db, provider, customer, make_slots, monkeypatch):
    a, b = make_slots(provider.id, ["09:00", "09:30"])

    def broken(*args, **kwargs):
        raise RuntimeError("counter table is gone")

    monkeypatch.setattr(booking_service, "next_booking_code", broken)
    with pytest.raises(BookingPersistenceFailed) as exc:
        book(db, customer, provider, slot_ids=[a.id, b.id])
    assert isinstance(exc.value.__cause__, RuntimeError)
    assert slot_status(db, a.id) == SlotStatus.AVAILABLE
    assert slot_status(db, b.id) == SlotStatus.AVAILABLE
    assert db.query(Booking).count() == 0


def test_confirm_requires_deposit(db, provider, customer, make_slots):
    (nine,) = make_slots(provider.id, ["09:00"])
    b = book(db, customer, provider, slot_ids=[nine.id])
    update_payment(db, b.id, 300, 100)
    with pytest.raises(PreconditionNotMet):
        confirm_booking(db, b.id)
    # paid + tip counts toward the deposit
    update_payment(db, b.id, 400, 100)
    assert confirm_booking(db, b.id).status == BookingStatus.CONFIRMED
    # confirming again is a no-op
    assert confirm_booking(db, b.id).status == BookingStatus.CONFIRMED


def test_cancel_confirmed_needs_admin_override(db, provider, customer, make_slots):
    nine, nine_thirty = make_slots(provider.id, ["09:00", "09:30"])
    b = confirmed_booking(db, customer, provider, [nine.id, nine_thirty.id])

    with pytest.raises(PreconditionNotMet):
        cancel_booking(db, b.id)
    with pytest.raises(ValidationFailed):
        cancel_booking(db, b.id, admin_override=True)
    assert slot_status(db, nine.id) == SlotStatus.CONFIRMED

    b = cancel_booking(db, b.id, admin_override=True, reason="Provider sick")
    assert b.status == BookingStatus.CANCELLED
    assert b.status_reason == "Provider sick"
    assert b.held_slot_ids == []
    assert slot_status(db, nine.id) == SlotStatus.AVAILABLE
    assert slot_status(db, nine_thirty.id) == SlotStatus.AVAILABLE

    # already cancelled: unchanged, no error
    assert cancel_booking(db, b.id).status == BookingStatus.CANCELLED


def test_customer_can_cancel_pending_and_slot_is_rebookable(db, provider, customer, make_slots):
    (nine,) = make_slots(provider.id, ["09:00"])
    first = book(db, customer, provider, slot_ids=[nine.id])
    cancel_booking(db, first.id)
    assert slot_status(db, nine.id) == SlotStatus.AVAILABLE

    second = book(db, customer, provider, slot_ids=[nine.id])
    assert second.booking_code != first.booking_code
    assert booking_service.get_active_bookings_for_slots(db, [nine.id])[0].id == second.id


def test_completion_rules(db, provider, customer, make_slots):
    nine, ten = make_slots(provider.id, ["09:00", "10:00"])
    pending = book(db, customer, provider, slot_ids=[nine.id])
    with pytest.raises(PreconditionNotMet):
        mark_completed(db, pending.id)

    b = confirmed_booking(db, customer, provider, [ten.id])
    done = mark_completed(db, b.id)
    completed_at = done.completed_at
    with pytest.raises(PreconditionNotMet):
        mark_completed(db, b.id)
    assert booking_service.require_booking(db, b.id).completed_at == completed_at
    # completed keeps its slots
    assert slot_status(db, ten.id) == SlotStatus.CONFIRMED

    with pytest.raises(PreconditionNotMet):
        cancel_booking(db, b.id, admin_override=True, reason="oops")
    with pytest.raises(PreconditionNotMet):
        booking_service.update_booking_details(db, b.id, total=9999)
    with pytest.raises(PreconditionNotMet):
        update_payment(db, b.id, 2000)

    # notes stay editable; late payment needs the explicit flag
    assert booking_service.update_booking_details(db, b.id, admin_notes="tipped in cash").admin_notes == "tipped in cash"
    paid = update_payment(db, b.id, 2000, 200, allow_completed=True)
    assert paid.payment_status == PaymentStatus.PAID
    assert paid.total == 1500
    c = require_customer(db, customer.id)
    db.refresh(c)
    assert c.total_tips == pytest.approx(200.0)


def test_no_show_frees_slots(db, provider, customer, make_slots):
    nine, ten = make_slots(provider.id, ["09:00", "10:00"])
    pending = book(db, customer, provider, slot_ids=[nine.id])
    with pytest.raises(PreconditionNotMet):
        mark_no_show(db, pending.id)

    b = confirmed_booking(db, customer, provider, [ten.id])
    b = mark_no_show(db, b.id)
    assert b.status == BookingStatus.NO_SHOW
    assert slot_status(db, ten.id) == SlotStatus.AVAILABLE
    assert mark_no_show(db, b.id).status == BookingStatus.NO_SHOW
    with pytest.raises(PreconditionNotMet):
        cancel_booking(db, b.id, admin_override=True, reason="late")


def test_reschedule(db, provider, customer, make_slots):
    nine, ten = make_slots(provider.id, ["09:00", "10:00"])
    b = confirmed_booking(db, customer, provider, [nine.id])
    with pytest.raises(ValidationFailed):
        reschedule_booking(db, b.id, "  ")

    b = reschedule_booking(db, b.id, "client asked for Sunday")
    assert b.status == BookingStatus.CANCELLED
    assert b.status_reason == "Rescheduled: client asked for Sunday"
    assert slot_status(db, nine.id) == SlotStatus.AVAILABLE

    done = confirmed_booking(db, customer, provider, [ten.id])
    mark_completed(db, done.id)
    with pytest.raises(PreconditionNotMet):
        reschedule_booking(db, done.id, "too late")


def test_payment_refused_on_cancelled(db, provider, customer, make_slots):
    (nine,) = make_slots(provider.id, ["09:00"])
    b = book(db, customer, provider, slot_ids=[nine.id])
    cancel_booking(db, b.id)
    with pytest.raises(PreconditionNotMet):
        update_payment(db, b.id, 500)
    with pytest.raises(PreconditionNotMet):
        booking_service.attach_payment_proof(db, b.id, "https://img.example/proof.jpg")
    with pytest.raises(ValidationFailed):
        update_payment(db, 12345, -1)


def test_update_details_rederives_payment_status(db, provider, customer, make_slots):
    (nine,) = make_slots(provider.id, ["09:00"])
    b = book(db, customer, provider, slot_ids=[nine.id], total=1000, deposit_required=0)
    b = update_payment(db, b.id, 1000)
    assert b.payment_status == PaymentStatus.PAID
    b = booking_service.update_booking_details(db, b.id, total=1200)
    assert b.payment_status == PaymentStatus.PARTIAL


def test_lookups(db, provider, customer, make_slots):
    nine, ten = make_slots(provider.id, ["09:00", "10:00"])
    first = book(db, customer, provider, slot_ids=[nine.id])
    second = book(db, customer, provider, slot_ids=[ten.id])
    cancel_booking(db, first.id)

    assert booking_service.get_booking_by_code(db, second.booking_code.lower()).id == second.id
    with pytest.raises(BookingNotFound):
        booking_service.get_booking_by_code(db, "GN-19990101001")
    with pytest.raises(BookingNotFound):
        booking_service.require_booking(db, 999)

    assert [b.id for b in booking_service.list_bookings(db, customer_id=customer.id)] == [second.id, first.id]
    assert [b.id for b in booking_service.list_bookings(db, status="cancelled")] == [first.id]
    assert [b.id for b in booking_service.list_bookings(db, slot_date=DAY, status=BookingStatus.PENDING)] == [second.id]

    db.query(Booking).filter(Booking.id == first.id).update({"created_at": datetime(2024, 5, 1, 9, tzinfo=timezone.utc)})
    db.query(Booking).filter(Booking.id == second.id).update({"created_at": datetime(2024, 5, 2, 9, tzinfo=timezone.utc)})
    db.commit()
    may_first = datetime(2024, 5, 1, tzinfo=timezone.utc)
    may_second = datetime(2024, 5, 2, tzinfo=timezone.utc)
    assert [b.id for b in booking_service.list_bookings(db, created_from=may_first, created_to=may_second)] == [first.id]
    assert [b.id for b in booking_service.list_bookings(db, created_from=may_second)] == [second.id]
    assert booking_service.list_bookings(db, created_to=may_first) == []
    assert booking_service.get_active_bookings_for_slots(db, [nine.id]) == []

    d = booking_service.booking_to_dict(booking_service.require_booking(db, second.id))
    assert d["slots"] == [{"id": ten.id, "date": "2024-06-01", "time": "10:00"}]
    assert d["status"] == "pending"
    assert d["payment_status"] == "unpaid"
