"""Runs every PENDING_EXPIRY_INTERVAL_MINUTES: auto-cancel unpaid pending bookings past the expiry window."""
import logging

from slotbook.db.session import SessionLocal
from slotbook.services.housekeeping import expire_pending_bookings

logger = logging.getLogger(__name__)


def run_pending_expiry_job() -> None:
    db = SessionLocal()
    try:
        expire_pending_bookings(db)
    except Exception as e:
        logger.exception("Pending expiry job failed: %s", e)
        db.rollback()
    finally:
        db.close()
