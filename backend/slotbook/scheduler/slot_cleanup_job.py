"""Runs every SLOT_CLEANUP_INTERVAL_MINUTES: delete past slots no booking ever used."""
import logging

from slotbook.db.session import SessionLocal
from slotbook.services.slot_ledger import cleanup_past_slots

logger = logging.getLogger(__name__)


def run_slot_cleanup_job() -> None:
    db = SessionLocal()
    try:
        cleanup_past_slots(db)
    except Exception as e:
        logger.exception("Slot cleanup job failed: %s", e)
        db.rollback()
    finally:
        db.close()
