"""Customer record plus derived booking rollups.

The stats columns are a cache: slotbook.services.payment_stats.recompute_customer_stats rebuilds them
wholesale from the customer's bookings. Nothing else writes them.
"""
from sqlalchemy import Column, DateTime, Float, Integer, String, Text
from sqlalchemy.sql import func

from slotbook.db.base import Base


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(256), nullable=False)
    email = Column(String(256), nullable=True, index=True)  # stored lower-cased
    phone = Column(String(32), nullable=True, index=True)
    social_media_name = Column(String(128), nullable=True)
    referral_source = Column(String(128), nullable=True)
    notes = Column(Text, nullable=True)

    total_bookings = Column(Integer, nullable=False, default=0)
    completed_bookings = Column(Integer, nullable=False, default=0)
    total_spent = Column(Float, nullable=False, default=0.0)
    total_tips = Column(Float, nullable=False, default=0.0)
    total_discounts = Column(Float, nullable=False, default=0.0)
    last_visit = Column(DateTime(timezone=True), nullable=True)
    client_type = Column(String(8), nullable=False, default="NEW")  # NEW | REPEAT

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
