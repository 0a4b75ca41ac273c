"""
Customer directory: find-or-create by contact details, lookup by id.
"""
import logging
from typing import Any

from sqlalchemy.orm import Session

from slotbook.core.errors import CustomerNotFound, ValidationFailed
from slotbook.models.customer import Customer

logger = logging.getLogger(__name__)


def _clean(value: str | None) -> str | None:
    return (value or "").strip() or None


def find_or_create_customer(
    db: Session,
    name: str,
    email: str | None = None,
    phone: str | None = None,
    social_media_name: str | None = None,
    referral_source: str | None = None,
    notes: str | None = None,
) -> Customer:
    """Match an existing customer by email, then phone; otherwise create one."""
    name = _clean(name)
    if not name:
        raise ValidationFailed("Customer name is required")
    email = _clean(email)
    email = email.lower() if email else None
    phone = _clean(phone)

    row = None
    if email:
        row = db.query(Customer).filter(Customer.email == email).order_by(Customer.id.asc()).first()
    if row is None and phone:
        row = db.query(Customer).filter(Customer.phone == phone).order_by(Customer.id.asc()).first()
    if row:
        # Fill gaps only; never overwrite what staff already recorded
        if email and not row.email:
            row.email = email
        if phone and not row.phone:
            row.phone = phone
        if social_media_name and not row.social_media_name:
            row.social_media_name = _clean(social_media_name)
        db.commit()
        db.refresh(row)
        return row

    row = Customer(
        name=name,
        email=email,
        phone=phone,
        social_media_name=_clean(social_media_name),
        referral_source=_clean(referral_source),
        notes=_clean(notes),
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info("Created customer %s (%s)", row.id, name)
    return row


def get_customer(db: Session, customer_id: int) -> Customer | None:
    return db.get(Customer, customer_id)


def require_customer(db: Session, customer_id: int) -> Customer:
    customer = get_customer(db, customer_id)
    if customer is None:
        raise CustomerNotFound(f"Customer {customer_id} not found", customer_id=customer_id)
    return customer


def customer_to_dict(c: Customer) -> dict[str, Any]:
    return {
        "id": c.id,
        "name": c.name,
        "email": c.email,
        "phone": c.phone,
        "social_media_name": c.social_media_name,
        "referral_source": c.referral_source,
        "notes": c.notes,
        "stats": {
            "total_bookings": c.total_bookings,
            "completed_bookings": c.completed_bookings,
            "total_spent": c.total_spent,
            "total_tips": c.total_tips,
            "total_discounts": c.total_discounts,
            "last_visit": c.last_visit.isoformat() if c.last_visit else None,
            "client_type": c.client_type,
        },
        "created_at": c.created_at.isoformat() if c.created_at else None,
    }
