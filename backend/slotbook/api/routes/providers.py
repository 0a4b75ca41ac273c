"""Providers (nail techs): create and list."""
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from slotbook.db.session import get_db
from slotbook.services.provider_service import create_provider, list_providers

router = APIRouter()


class CreateProviderRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=128)
    status: str = Field("active", description="active or inactive")


@router.post("", status_code=201)
def create_provider_route(body: CreateProviderRequest, db: Session = Depends(get_db)) -> dict[str, Any]:
    p = create_provider(db, body.name, body.status)
    return {"id": p.id, "name": p.name, "status": p.status}


@router.get("")
def list_providers_route(
    db: Session = Depends(get_db),
    active_only: bool = Query(False),
) -> dict[str, Any]:
    return {"providers": list_providers(db, active_only=active_only)}
