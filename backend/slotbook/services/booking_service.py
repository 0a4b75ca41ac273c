"""
Booking lifecycle: create, pay, confirm, complete, cancel, no-show, reschedule.

Booking status moves only along ALLOWED_TRANSITIONS. Every status write is a conditional UPDATE on the
status we read, in the same transaction as the slot changes it implies, so a booking and its slots
cannot diverge. Slot status itself is only ever written through slot_ledger.
"""
import logging
import math
from datetime import date, datetime, timezone
from typing import Any, Iterable

from sqlalchemy import exists, func, update
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from slotbook.core.constants import (
    ACTIVE_BOOKING_STATUSES,
    BOOKING_LIST_LIMIT,
    BookingStatus,
    ClientType,
    PaymentMethod,
    PaymentStatus,
    ServiceLocation,
    ServiceType,
    required_slot_count,
)
from slotbook.core.errors import (
    BookingError,
    BookingNotFound,
    BookingPersistenceFailed,
    ConsecutiveSlotsUnavailable,
    InvalidTransition,
    PreconditionNotMet,
    ProviderMismatch,
    SlotNotFound,
    SlotReservationFailed,
    SlotUnavailable,
    StateConflict,
    ValidationFailed,
)
from slotbook.models.booking import Booking, BookingSlot
from slotbook.models.slot import Slot
from slotbook.services import slot_ledger
from slotbook.services.booking_code import next_booking_code
from slotbook.services.booking_notify import notify_booking_created
from slotbook.services.customer_service import customer_to_dict, require_customer
from slotbook.services.payment_stats import (
    apply_payment,
    deposit_covered,
    recompute_customer_stats,
    refresh_payment_status,
)
from slotbook.services.provider_service import require_provider
from slotbook.services.slot_resolver import resolve

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.NO_SHOW}),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.NO_SHOW: frozenset(),
}

RESCHEDULE_REASON_PREFIX = "Rescheduled: "

_RESERVATION_ERRORS = (SlotNotFound, ProviderMismatch, SlotUnavailable)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _clean(value: str | None) -> str | None:
    return (value or "").strip() or None


def _amount(name: str, value: Any, default: float = 0.0) -> float:
    if value is None:
        return default
    try:
        amount = float(value)
    except (TypeError, ValueError):
        raise ValidationFailed(f"{name} must be a number") from None
    if math.isnan(amount) or math.isinf(amount) or amount < 0:
        raise ValidationFailed(f"{name} must be a non-negative number")
    return amount


def _parse(enum_cls, value: Any, field: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(e.value for e in enum_cls)
        raise ValidationFailed(f"Invalid {field} {value!r}. Use one of: {allowed}") from None


# --- Reads ---


def get_booking(db: Session, booking_id: int) -> Booking | None:
    return db.get(Booking, booking_id)


def require_booking(db: Session, booking_id: int) -> Booking:
    booking = get_booking(db, booking_id)
    if booking is None:
        raise BookingNotFound(f"Booking {booking_id} not found", booking_id=booking_id)
    return booking


def get_booking_by_code(db: Session, booking_code: str) -> Booking:
    code = (booking_code or "").strip().upper()
    booking = db.query(Booking).filter(Booking.booking_code == code).first()
    if booking is None:
        raise BookingNotFound(f"Booking {code} not found", booking_code=code)
    return booking


def list_bookings(
    db: Session,
    customer_id: int | None = None,
    provider_id: int | None = None,
    status: BookingStatus | str | None = None,
    payment_status: PaymentStatus | str | None = None,
    slot_date: date | None = None,
    limit: int = 50,
    created_from: datetime | None = None,
    created_to: datetime | None = None,
) -> list[Booking]:
    """Newest first. limit is capped at BOOKING_LIST_LIMIT.

    created_from is inclusive and created_to exclusive; slot_date keeps bookings holding a slot on that day.
    """
    q = db.query(Booking)
    if customer_id is not None:
        q = q.filter(Booking.customer_id == customer_id)
    if provider_id is not None:
        q = q.filter(Booking.provider_id == provider_id)
    if status is not None:
        q = q.filter(Booking.status == _parse(BookingStatus, status, "status"))
    if payment_status is not None:
        q = q.filter(Booking.payment_status == _parse(PaymentStatus, payment_status, "payment_status"))
    if created_from is not None:
        q = q.filter(Booking.created_at >= created_from)
    if created_to is not None:
        q = q.filter(Booking.created_at < created_to)
    if slot_date is not None:
        q = q.filter(
            exists().where(
                BookingSlot.booking_id == Booking.id,
                BookingSlot.slot_id == Slot.id,
                Slot.date == slot_date,
            )
        )
    limit = max(1, min(int(limit or 50), BOOKING_LIST_LIMIT))
    return q.order_by(Booking.created_at.desc(), Booking.id.desc()).limit(limit).all()


def get_active_bookings_for_slots(db: Session, slot_ids: Iterable[int]) -> list[Booking]:
    """Pending/confirmed bookings currently holding any of slot_ids."""
    ids = [int(i) for i in slot_ids]
    if not ids:
        return []
    return (
        db.query(Booking)
        .join(BookingSlot, BookingSlot.booking_id == Booking.id)
        .filter(
            BookingSlot.slot_id.in_(ids),
            BookingSlot.released_at.is_(None),
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
        )
        .distinct()
        .order_by(Booking.id.asc())
        .all()
    )


# --- Creation ---


def _resolve_slot_ids(
    db: Session,
    service_type: ServiceType,
    slot_ids: Iterable[Any] | None,
    start_slot_id: int | None,
    required_count: int | None,
) -> list[int]:
    if slot_ids is not None:
        return slot_ledger.normalize_slot_ids(slot_ids)
    if start_slot_id is None:
        raise ValidationFailed("Either slot_ids or start_slot_id is required")
    count = required_count if required_count is not None else required_slot_count(service_type)
    if count < 1:
        raise ValidationFailed("required_slot_count must be at least 1")
    start = slot_ledger.get_slot(db, start_slot_id)
    if count == 1:
        return [start.id]
    result = resolve(start, count, slot_ledger.slots_for_date(db, start.provider_id, start.date))
    if not result.ok:
        raise ConsecutiveSlotsUnavailable(
            result.diagnostic,
            reason=result.failure.value,
            start_slot_id=start.id,
            blocking_slot_id=getattr(result.blocking_slot, "id", None),
        )
    return [s.id for s in result.slots]


def create_booking(
    db: Session,
    customer_id: int,
    provider_id: int,
    service_type: ServiceType | str,
    service_location: ServiceLocation | str,
    client_type: ClientType | str,
    total: float,
    deposit_required: float,
    slot_ids: Iterable[Any] | None = None,
    start_slot_id: int | None = None,
    required_count: int | None = None,
    discount_amount: float = 0.0,
    client_notes: str | None = None,
    admin_notes: str | None = None,
    notify: bool = True,
    now: datetime | None = None,
) -> Booking:
    """Reserve the slots, then persist a pending booking with a fresh code.

    Slots are reserved first; if the booking row cannot be written afterwards the reservation is
    released before BookingPersistenceFailed is raised.
    """
    service_type = _parse(ServiceType, service_type, "service_type")
    service_location = _parse(ServiceLocation, service_location, "service_location")
    client_type = _parse(ClientType, client_type, "client_type")
    total = _amount("total", total)
    deposit_required = _amount("deposit_required", deposit_required)
    discount_amount = _amount("discount_amount", discount_amount)

    customer = require_customer(db, customer_id)
    require_provider(db, provider_id)
    ids = _resolve_slot_ids(db, service_type, slot_ids, start_slot_id, required_count)

    try:
        slot_ledger.validate_and_reserve(db, ids, provider_id)
    except _RESERVATION_ERRORS as e:
        logger.info("Reservation failed for customer %s slots %s: %s", customer_id, ids, e.message)
        raise SlotReservationFailed(e) from e

    try:
        code = next_booking_code(db, now=now, commit=False)
        booking = Booking(
            booking_code=code,
            customer_id=customer.id,
            provider_id=provider_id,
            service_type=service_type,
            service_location=service_location,
            client_type=client_type,
            status=BookingStatus.PENDING,
            total=total,
            deposit_required=deposit_required,
            paid_amount=0.0,
            tip_amount=0.0,
            discount_amount=discount_amount,
            client_notes=_clean(client_notes),
            admin_notes=_clean(admin_notes),
        )
        booking.slot_links = [BookingSlot(slot_id=slot_id, position=i) for i, slot_id in enumerate(ids)]
        refresh_payment_status(booking)
        db.add(booking)
        db.commit()
    except Exception as e:
        db.rollback()
        logger.exception("Booking persistence failed for slots %s; releasing reservation", ids)
        try:
            slot_ledger.release(db, ids)
        except Exception:
            db.rollback()
            logger.exception("Could not release slots %s after failed booking", ids)
        raise BookingPersistenceFailed("Could not save booking; the slots were released", slot_ids=ids) from e

    db.refresh(booking)
    logger.info("Created booking %s for customer %s (slots %s)", booking.booking_code, customer_id, ids)
    _refresh_customer_stats(db, booking.customer_id)
    if notify:
        notify_booking_created(booking_to_dict(booking), customer_to_dict(require_customer(db, customer_id)))
    return booking


# --- Status transitions ---


def _check_transition(booking: Booking, target: BookingStatus) -> None:
    if target not in ALLOWED_TRANSITIONS[booking.status]:
        raise InvalidTransition(
            f"Cannot move booking {booking.booking_code} from {booking.status.value} to {target.value}",
            booking_id=booking.id,
            status=booking.status.value,
            target=target.value,
        )


def _swap_status(db: Session, booking: Booking, target: BookingStatus, *extra_where, **values) -> None:
    """Conditional status write: only succeeds if the row still has the status we read.

    Does not commit. On a lost race the transaction is rolled back and StateConflict raised.
    """
    _check_transition(booking, target)
    booking_id, code, current = booking.id, booking.booking_code, booking.status
    result = db.execute(
        update(Booking)
        .where(Booking.id == booking_id, Booking.status == current, *extra_where)
        .values(status=target, version=Booking.version + 1, updated_at=func.now(), **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        raise StateConflict(
            f"Booking {code} changed while updating; reload and retry",
            booking_id=booking_id,
            expected_status=current.value,
        )


def _end_and_release(db: Session, booking: Booking, target: BookingStatus, reason: str | None, now: datetime) -> Booking:
    """Move to a terminal status that frees the slots (cancelled / no_show) in one transaction."""
    booking_id = booking.id
    held = booking.held_slot_ids
    try:
        _swap_status(db, booking, target, status_reason=reason)
        db.execute(
            update(BookingSlot)
            .where(BookingSlot.booking_id == booking_id, BookingSlot.released_at.is_(None))
            .values(released_at=now)
            .execution_options(synchronize_session=False)
        )
        slot_ledger.release(db, held, commit=False)
        db.commit()
    except BookingError:
        raise
    except Exception:
        db.rollback()
        raise
    db.refresh(booking)
    logger.info("Booking %s -> %s, released slots %s", booking.booking_code, target.value, held)
    return booking


def confirm_booking(db: Session, booking_id: int, now: datetime | None = None) -> Booking:
    """pending -> confirmed once paid + tip covers the deposit. Confirming twice is a no-op."""
    booking = require_booking(db, booking_id)
    if booking.status == BookingStatus.CONFIRMED:
        logger.debug("Booking %s already confirmed", booking.booking_code)
        return booking
    if booking.status != BookingStatus.PENDING:
        raise PreconditionNotMet(
            f"Cannot confirm a {booking.status.value} booking",
            booking_id=booking.id,
            status=booking.status.value,
        )
    if not deposit_covered(booking):
        raise PreconditionNotMet(
            f"Deposit not paid: {booking.paid_amount} paid + {booking.tip_amount} tip < {booking.deposit_required} required",
            booking_id=booking.id,
        )
    held = booking.held_slot_ids
    confirmed_at = booking.confirmed_at or now or _utcnow()
    # deposit re-checked against the row, a payment edit may have landed since we read it
    _swap_status(
        db,
        booking,
        BookingStatus.CONFIRMED,
        Booking.paid_amount + Booking.tip_amount >= Booking.deposit_required,
        confirmed_at=confirmed_at,
    )
    try:
        slot_ledger.confirm(db, held, commit=False)
    except StateConflict:
        db.rollback()
        raise
    db.commit()
    db.refresh(booking)
    logger.info("Confirmed booking %s", booking.booking_code)
    return booking


def cancel_booking(
    db: Session,
    booking_id: int,
    admin_override: bool = False,
    reason: str | None = None,
    now: datetime | None = None,
) -> Booking:
    """Cancel and free the slots.

    Confirmed bookings need admin_override, and an override needs a reason. Re-cancelling is a no-op.
    """
    booking = require_booking(db, booking_id)
    if booking.status == BookingStatus.CANCELLED:
        logger.debug("Booking %s already cancelled", booking.booking_code)
        return booking
    if booking.status in (BookingStatus.COMPLETED, BookingStatus.NO_SHOW):
        raise PreconditionNotMet(
            f"Cannot cancel a {booking.status.value} booking",
            booking_id=booking.id,
            status=booking.status.value,
        )
    if booking.status == BookingStatus.CONFIRMED and not admin_override:
        raise PreconditionNotMet(
            "Confirmed bookings can only be cancelled by staff (admin override)",
            booking_id=booking.id,
        )
    reason = _clean(reason)
    if admin_override and not reason:
        raise ValidationFailed("A reason is required when staff cancel a booking")
    return _end_and_release(db, booking, BookingStatus.CANCELLED, reason, now or _utcnow())


def mark_no_show(db: Session, booking_id: int, reason: str | None = None, now: datetime | None = None) -> Booking:
    booking = require_booking(db, booking_id)
    if booking.status == BookingStatus.NO_SHOW:
        logger.debug("Booking %s already no-show", booking.booking_code)
        return booking
    if booking.status != BookingStatus.CONFIRMED:
        raise PreconditionNotMet(
            f"Only confirmed bookings can be marked no-show (status: {booking.status.value})",
            booking_id=booking.id,
            status=booking.status.value,
        )
    return _end_and_release(db, booking, BookingStatus.NO_SHOW, _clean(reason), now or _utcnow())


def reschedule_booking(db: Session, booking_id: int, reason: str, now: datetime | None = None) -> Booking:
    """Cancel with a "Rescheduled: ..." reason and free the slots. The caller books the new time separately."""
    reason = _clean(reason)
    if not reason:
        raise ValidationFailed("A reason is required to reschedule a booking")
    booking = require_booking(db, booking_id)
    if booking.status == BookingStatus.CANCELLED:
        logger.debug("Booking %s already cancelled", booking.booking_code)
        return booking
    if booking.status in (BookingStatus.COMPLETED, BookingStatus.NO_SHOW):
        raise PreconditionNotMet(
            f"Cannot reschedule a {booking.status.value} booking",
            booking_id=booking.id,
            status=booking.status.value,
        )
    return _end_and_release(db, booking, BookingStatus.CANCELLED, RESCHEDULE_REASON_PREFIX + reason, now or _utcnow())


def mark_completed(db: Session, booking_id: int, now: datetime | None = None) -> Booking:
    """confirmed -> completed exactly once. Slots stay confirmed; the booking is frozen from here on."""
    booking = require_booking(db, booking_id)
    if booking.completed_at is not None or booking.status == BookingStatus.COMPLETED:
        raise PreconditionNotMet(f"Booking {booking.booking_code} is already completed", booking_id=booking.id)
    if booking.status != BookingStatus.CONFIRMED:
        raise PreconditionNotMet(
            f"Only confirmed bookings can be completed (status: {booking.status.value})",
            booking_id=booking.id,
            status=booking.status.value,
        )
    _swap_status(db, booking, BookingStatus.COMPLETED, Booking.completed_at.is_(None), completed_at=now or _utcnow())
    db.commit()
    db.refresh(booking)
    logger.info("Completed booking %s", booking.booking_code)
    _refresh_customer_stats(db, booking.customer_id)
    return booking


# --- Payment and details ---


def _commit_versioned(db: Session, booking: Booking) -> None:
    """Flush ORM edits; a concurrent status change (version bump) surfaces as StateConflict."""
    try:
        db.commit()
    except StaleDataError:
        db.rollback()
        raise StateConflict("Booking changed while updating; reload and retry", booking_id=booking.id) from None


def update_payment(
    db: Session,
    booking_id: int,
    paid_amount: float,
    tip_amount: float = 0.0,
    method: PaymentMethod | str | None = None,
    allow_completed: bool = False,
    now: datetime | None = None,
) -> Booking:
    """Record amounts paid so far and re-derive payment status. Does not confirm the booking."""
    paid_amount = _amount("paid_amount", paid_amount)
    tip_amount = _amount("tip_amount", tip_amount)
    if method is not None:
        method = _parse(PaymentMethod, method, "payment method")
    booking = require_booking(db, booking_id)
    if booking.status == BookingStatus.CANCELLED:
        raise PreconditionNotMet("Cannot record payment on a cancelled booking", booking_id=booking.id)
    if booking.completed_at is not None and not allow_completed:
        raise PreconditionNotMet(
            "Booking is completed; pass allow_completed to adjust its payment",
            booking_id=booking.id,
        )
    apply_payment(booking, paid_amount, tip_amount, method, now=now)
    _commit_versioned(db, booking)
    db.refresh(booking)
    logger.info(
        "Payment on %s: paid=%s tip=%s -> %s",
        booking.booking_code,
        paid_amount,
        tip_amount,
        booking.payment_status.value,
    )
    if booking.completed_at is not None:
        _refresh_customer_stats(db, booking.customer_id)
    return booking


def update_booking_details(
    db: Session,
    booking_id: int,
    service_type: ServiceType | str | None = None,
    service_location: ServiceLocation | str | None = None,
    client_type: ClientType | str | None = None,
    total: float | None = None,
    deposit_required: float | None = None,
    discount_amount: float | None = None,
    client_notes: str | None = None,
    admin_notes: str | None = None,
) -> Booking:
    """Edit service, pricing and notes. Service, total and deposit are frozen once completed."""
    booking = require_booking(db, booking_id)
    frozen = {
        "service_type": service_type,
        "service_location": service_location,
        "client_type": client_type,
        "total": total,
        "deposit_required": deposit_required,
    }
    touched_frozen = [k for k, v in frozen.items() if v is not None]
    if touched_frozen and booking.completed_at is not None:
        raise PreconditionNotMet(
            f"Completed bookings cannot change {', '.join(touched_frozen)}",
            booking_id=booking.id,
        )
    if service_type is not None:
        booking.service_type = _parse(ServiceType, service_type, "service_type")
    if service_location is not None:
        booking.service_location = _parse(ServiceLocation, service_location, "service_location")
    if client_type is not None:
        booking.client_type = _parse(ClientType, client_type, "client_type")
    if total is not None:
        booking.total = _amount("total", total)
    if deposit_required is not None:
        booking.deposit_required = _amount("deposit_required", deposit_required)
    if discount_amount is not None:
        booking.discount_amount = _amount("discount_amount", discount_amount)
    if client_notes is not None:
        booking.client_notes = _clean(client_notes)
    if admin_notes is not None:
        booking.admin_notes = _clean(admin_notes)
    refresh_payment_status(booking)
    _commit_versioned(db, booking)
    db.refresh(booking)
    if booking.completed_at is not None and discount_amount is not None:
        _refresh_customer_stats(db, booking.customer_id)
    return booking


def attach_payment_proof(db: Session, booking_id: int, proof_url: str) -> Booking:
    """Store the opaque proof-of-payment reference. Its content is never fetched here."""
    proof_url = _clean(proof_url)
    if not proof_url:
        raise ValidationFailed("proof_url is required")
    booking = require_booking(db, booking_id)
    if booking.status == BookingStatus.CANCELLED:
        raise PreconditionNotMet("Cannot attach proof to a cancelled booking", booking_id=booking.id)
    booking.proof_url = proof_url
    _commit_versioned(db, booking)
    db.refresh(booking)
    return booking


def _refresh_customer_stats(db: Session, customer_id: int) -> None:
    """Stats are a rebuildable cache: a failure here is logged, never undoes the booking change."""
    try:
        recompute_customer_stats(db, customer_id)
    except Exception as e:
        db.rollback()
        logger.exception("Failed to recompute stats for customer %s: %s", customer_id, e)


# --- Serialization ---


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def booking_to_dict(b: Booking) -> dict[str, Any]:
    return {
        "id": b.id,
        "booking_code": b.booking_code,
        "customer_id": b.customer_id,
        "provider_id": b.provider_id,
        "status": b.status.value,
        "payment_status": b.payment_status.value,
        "service_type": b.service_type.value,
        "service_location": b.service_location.value,
        "client_type": b.client_type.value,
        "slot_ids": b.slot_ids,
        "slots": [
            {"id": link.slot.id, "date": link.slot.date.isoformat(), "time": link.slot.time}
            for link in b.slot_links
            if link.slot is not None
        ],
        "total": b.total,
        "deposit_required": b.deposit_required,
        "paid_amount": b.paid_amount,
        "tip_amount": b.tip_amount,
        "discount_amount": b.discount_amount,
        "payment_method": b.payment_method.value if b.payment_method else None,
        "deposit_paid_at": _iso(b.deposit_paid_at),
        "fully_paid_at": _iso(b.fully_paid_at),
        "proof_url": b.proof_url,
        "confirmed_at": _iso(b.confirmed_at),
        "completed_at": _iso(b.completed_at),
        "status_reason": b.status_reason,
        "client_notes": b.client_notes,
        "admin_notes": b.admin_notes,
        "created_at": _iso(b.created_at),
    }
