"""Customer directory: find-or-create and lookup (stats included)."""
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from slotbook.db.session import get_db
from slotbook.services.customer_service import customer_to_dict, find_or_create_customer, require_customer

router = APIRouter()


class CustomerRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=256)
    email: str | None = Field(None, max_length=256)
    phone: str | None = Field(None, max_length=32)
    social_media_name: str | None = Field(None, max_length=128)
    referral_source: str | None = Field(None, max_length=128)
    notes: str | None = None


@router.post("")
def find_or_create_customer_route(body: CustomerRequest, db: Session = Depends(get_db)) -> dict[str, Any]:
    """Returns the existing customer when email (or phone) matches, otherwise creates one."""
    c = find_or_create_customer(db, **body.model_dump())
    return customer_to_dict(c)


@router.get("/{customer_id}")
def get_customer_route(customer_id: int, db: Session = Depends(get_db)) -> dict[str, Any]:
    return customer_to_dict(require_customer(db, customer_id))
