"""
Payment status derivation and customer rollups.

payment_status is never set independently: it is recomputed from the pricing fields every time
they change. Customer stats are a cache rebuilt wholesale from the customer's bookings, so calling
recompute_customer_stats again is always safe.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from slotbook.core.constants import CustomerClientType, PaymentMethod, PaymentStatus
from slotbook.core.errors import CustomerNotFound
from slotbook.models.booking import Booking
from slotbook.models.customer import Customer

logger = logging.getLogger(__name__)


def derive_payment_status(paid_amount: float, tip_amount: float, total: float, deposit_required: float) -> PaymentStatus:
    """paid when paid+tip covers total+deposit, partial when anything was paid, unpaid otherwise.

    A paid deposit alone is still partial: the deposit confirms the slot, the balance is settled later.
    """
    paid = (paid_amount or 0) + (tip_amount or 0)
    required = (total or 0) + (deposit_required or 0)
    if paid >= required:
        return PaymentStatus.PAID
    if paid > 0:
        return PaymentStatus.PARTIAL
    return PaymentStatus.UNPAID


def refresh_payment_status(booking: Booking) -> PaymentStatus:
    """Write the derived status onto the booking (the only place payment_status is assigned)."""
    status = derive_payment_status(booking.paid_amount, booking.tip_amount, booking.total, booking.deposit_required)
    booking._payment_status = status
    return status


def deposit_covered(booking: Booking) -> bool:
    """Confirmation threshold: paid + tip >= deposit_required."""
    return (booking.paid_amount or 0) + (booking.tip_amount or 0) >= (booking.deposit_required or 0)


def apply_payment(
    booking: Booking,
    paid_amount: float,
    tip_amount: float = 0.0,
    method: PaymentMethod | None = None,
    now: datetime | None = None,
) -> PaymentStatus:
    """Set paid/tip amounts, stamp deposit/full-payment times once, re-derive payment_status."""
    now = now or datetime.now(timezone.utc)
    booking.paid_amount = paid_amount
    booking.tip_amount = tip_amount
    if method is not None:
        booking.payment_method = method
    if booking.deposit_paid_at is None and paid_amount + tip_amount > 0 and deposit_covered(booking):
        booking.deposit_paid_at = now
    status = refresh_payment_status(booking)
    if status == PaymentStatus.PAID and booking.fully_paid_at is None:
        booking.fully_paid_at = now
    return status


def recompute_customer_stats(db: Session, customer_id: int, *, commit: bool = True) -> Customer:
    """Rebuild a customer's rollups from all of their bookings."""
    customer = db.get(Customer, customer_id)
    if customer is None:
        raise CustomerNotFound(f"Customer {customer_id} not found", customer_id=customer_id)
    bookings = db.query(Booking).filter(Booking.customer_id == customer_id).all()

    total_spent = 0.0
    total_tips = 0.0
    total_discounts = 0.0
    completed = 0
    last_visit = None
    for b in bookings:
        if b.completed_at is None:
            continue
        completed += 1
        tip = b.tip_amount or 0.0
        total_spent += (b.total or 0.0) + tip
        total_tips += tip
        total_discounts += b.discount_amount or 0.0
        if last_visit is None or b.completed_at > last_visit:
            last_visit = b.completed_at

    customer.total_bookings = len(bookings)
    customer.completed_bookings = completed
    customer.total_spent = total_spent
    customer.total_tips = total_tips
    customer.total_discounts = total_discounts
    customer.last_visit = last_visit
    customer.client_type = (CustomerClientType.REPEAT if len(bookings) > 1 else CustomerClientType.NEW).value
    if commit:
        db.commit()
    logger.debug("Recomputed stats for customer %s: %s bookings, %s completed", customer_id, len(bookings), completed)
    return customer
