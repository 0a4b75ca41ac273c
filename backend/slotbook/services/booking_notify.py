"""
After-commit notifications for new bookings: email and backup mirror, both on background threads.
A booking is never blocked or rolled back by anything here.
"""
import logging
import threading
from typing import Any

from slotbook.services.backup_sync import schedule_backup_sync
from slotbook.services.email_notify import send_booking_created_email

logger = logging.getLogger(__name__)


def _backup_row(summary: dict[str, Any], customer: dict[str, Any]) -> dict[str, Any]:
    return {
        "booking_code": summary.get("booking_code"),
        "status": summary.get("status"),
        "customer_name": customer.get("name"),
        "customer_email": customer.get("email"),
        "customer_phone": customer.get("phone"),
        "service_type": summary.get("service_type"),
        "service_location": summary.get("service_location"),
        "slots": [f"{s.get('date')} {s.get('time')}" for s in summary.get("slots") or []],
        "total": summary.get("total"),
        "deposit_required": summary.get("deposit_required"),
        "created_at": summary.get("created_at"),
    }


def notify_booking_created(summary: dict[str, Any], customer: dict[str, Any]) -> None:
    """Fire and forget. summary is booking_to_dict output, customer is customer_to_dict output."""
    try:
        threading.Thread(target=send_booking_created_email, args=(summary, customer), daemon=True).start()
        schedule_backup_sync(_backup_row(summary, customer))
    except Exception as e:
        logger.exception("Could not start notifications for %s: %s", summary.get("booking_code"), e)
