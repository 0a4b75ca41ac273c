"""Service provider (nail tech) who owns a calendar of slots."""
from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.sql import func

from slotbook.db.base import Base


class Provider(Base):
    __tablename__ = "providers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(128), nullable=False)
    status = Column(String(16), nullable=False, default="active")  # active | inactive
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
