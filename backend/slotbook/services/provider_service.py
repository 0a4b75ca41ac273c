"""Providers (nail techs): minimal directory used to validate slot and booking ownership."""
from sqlalchemy.orm import Session

from slotbook.core.errors import ProviderNotFound, ValidationFailed
from slotbook.models.provider import Provider


def create_provider(db: Session, name: str, status: str = "active") -> Provider:
    name = (name or "").strip()
    if not name:
        raise ValidationFailed("Provider name is required")
    if status not in ("active", "inactive"):
        raise ValidationFailed(f"Invalid provider status {status!r}")
    row = Provider(name=name, status=status)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def list_providers(db: Session, active_only: bool = False) -> list[dict]:
    q = db.query(Provider)
    if active_only:
        q = q.filter(Provider.status == "active")
    return [{"id": p.id, "name": p.name, "status": p.status} for p in q.order_by(Provider.id.asc()).all()]


def require_provider(db: Session, provider_id: int) -> Provider:
    row = db.get(Provider, provider_id)
    if row is None:
        raise ProviderNotFound(f"Provider {provider_id} not found", provider_id=provider_id)
    return row
