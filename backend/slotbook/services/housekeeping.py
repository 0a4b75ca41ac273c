"""
Periodic cleanup: expire unpaid pending bookings and drop past, unused slots.

Expiry goes through booking_service.cancel_booking like any other cancel, so it cannot bypass
the state machine or leave slots held.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy.orm import Session

from slotbook.config import settings
from slotbook.core.constants import BookingStatus, PaymentStatus
from slotbook.core.errors import StateConflict
from slotbook.models.booking import Booking
from slotbook.services.booking_service import cancel_booking

logger = logging.getLogger(__name__)


def expiry_reason(hours: int) -> str:
    return f"Auto-cancelled: no payment received within {hours} hours"


def expire_pending_bookings(db: Session, now: datetime | None = None, hours: int | None = None) -> dict[str, Any]:
    """Cancel pending bookings with no payment and no proof created more than `hours` ago."""
    hours = hours or settings.pending_expiry_hours
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(hours=hours)
    stale = (
        db.query(Booking.id, Booking.booking_code)
        .filter(
            Booking.status == BookingStatus.PENDING,
            Booking.payment_status == PaymentStatus.UNPAID,
            Booking.proof_url.is_(None),
            Booking.created_at < cutoff,
        )
        .order_by(Booking.id.asc())
        .all()
    )
    cancelled: list[str] = []
    skipped: list[str] = []
    for booking_id, code in stale:
        try:
            cancel_booking(db, booking_id, reason=expiry_reason(hours), now=now)
            cancelled.append(code)
        except StateConflict as e:
            # Paid, confirmed or cancelled since the query ran
            logger.info("Skipping expiry of %s: %s", code, e.message)
            skipped.append(code)
    if cancelled:
        logger.info("Auto-cancelled %s unpaid bookings: %s", len(cancelled), ", ".join(cancelled))
    return {"checked": len(stale), "cancelled": cancelled, "skipped": skipped}
