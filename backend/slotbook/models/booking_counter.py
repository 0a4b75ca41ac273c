"""Per business-day sequence for booking codes. Created on first booking of the day, never deleted."""
from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.sql import func

from slotbook.db.base import Base


class BookingCounter(Base):
    __tablename__ = "booking_counters"

    id = Column(Integer, primary_key=True, autoincrement=True)
    date_key = Column(String(8), nullable=False, unique=True)  # YYYYMMDD, business timezone
    seq = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
