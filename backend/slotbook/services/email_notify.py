"""
Send booking emails via SMTP (Google Gmail or other).
Set SMTP_USER, SMTP_PASSWORD (and optionally ADMIN_NOTIFY_EMAIL) in .env. Use a Gmail App Password.
Never raises: callers fire and forget.
"""
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any

from slotbook.config import settings

logger = logging.getLogger(__name__)


def _from_address() -> str:
    if (settings.notify_from or "").strip():
        return settings.notify_from.strip()
    user = (settings.smtp_user or "").strip()
    if user:
        return f"Bookings <{user}>"
    return "Bookings <noreply@localhost>"


def _booking_lines(summary: dict[str, Any]) -> list[str]:
    lines = [
        f"Booking code: {summary.get('booking_code')}",
        f"Service: {summary.get('service_type')} ({summary.get('service_location')})",
    ]
    for s in summary.get("slots") or []:
        lines.append(f"• {s.get('date')} {s.get('time')}")
    lines.append(f"Total: {summary.get('total')}  Deposit required: {summary.get('deposit_required')}")
    if summary.get("client_notes"):
        lines.append(f"Notes: {summary['client_notes']}")
    return lines


def send_email(to_email: str, subject: str, body: str) -> bool:
    """Send one plain-text + HTML email. Returns True if sent, False if skipped or failed."""
    to_email = (to_email or "").strip()
    if not to_email:
        return False
    user = (settings.smtp_user or "").strip()
    password = (settings.smtp_password or "").strip()
    if not user or not password:
        logger.debug("SMTP_USER or SMTP_PASSWORD not set; skipping email to %s", to_email)
        return False
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = _from_address()
    msg["To"] = to_email
    msg.attach(MIMEText(body, "plain"))
    msg.attach(MIMEText(f"<pre style='font-family:sans-serif'>{body}</pre>", "html"))
    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=10) as server:
            server.starttls()
            server.login(user, password)
            server.sendmail(user, [to_email], msg.as_string())
        logger.info("Email sent to %s: %s", to_email, subject)
        return True
    except Exception as e:
        logger.exception("Failed to send email to %s: %s", to_email, e)
        return False


def send_booking_created_email(summary: dict[str, Any], customer: dict[str, Any]) -> int:
    """Email the customer (when they gave an address) and the admin inbox. Returns count sent."""
    lines = _booking_lines(summary)
    sent = 0
    name = customer.get("name") or "there"
    customer_body = "\n".join(
        [f"Hi {name},", "", "We received your booking request:", ""]
        + lines
        + ["", "Your slot is held while we wait for your deposit."]
    )
    if send_email(customer.get("email") or "", f"Booking received: {summary.get('booking_code')}", customer_body):
        sent += 1
    admin_body = "\n".join([f"New booking from {name} ({customer.get('email') or customer.get('phone') or 'no contact'})", ""] + lines)
    if send_email(settings.admin_notify_email, f"New booking {summary.get('booking_code')}", admin_body):
        sent += 1
    return sent
