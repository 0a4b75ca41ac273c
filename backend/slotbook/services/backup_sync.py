"""
Mirror new bookings to an external backup (spreadsheet web app) over HTTP.

Best effort only: a failed or slow mirror never blocks or rolls back a booking.
Set BACKUP_WEBHOOK_URL in .env; empty disables the mirror.
"""
import logging
import threading
from typing import Any

import httpx

from slotbook.config import settings

logger = logging.getLogger(__name__)


def sync_booking_to_backup(payload: dict[str, Any]) -> bool:
    """POST one booking row. Returns True on 2xx, False if disabled or failed."""
    url = (settings.backup_webhook_url or "").strip()
    if not url:
        logger.debug("BACKUP_WEBHOOK_URL not set; skipping backup sync")
        return False
    try:
        with httpx.Client(timeout=settings.backup_timeout_seconds) as client:
            resp = client.post(url, json={"type": "booking", "row": payload})
        if resp.is_success:
            return True
        logger.warning("Backup sync returned %s for %s: %s", resp.status_code, payload.get("booking_code"), resp.text[:200])
        return False
    except Exception as e:
        logger.exception("Backup sync failed for %s: %s", payload.get("booking_code"), e)
        return False


def schedule_backup_sync(payload: dict[str, Any]) -> threading.Thread:
    """Run sync_booking_to_backup on a daemon thread and return it."""
    thread = threading.Thread(target=sync_booking_to_backup, args=(payload,), daemon=True)
    thread.start()
    return thread
