"""One bookable grid time on one provider's calendar.

status is written only by slotbook.services.slot_ledger, always as a conditional UPDATE on the
expected prior status.
"""
from sqlalchemy import Boolean, Column, Date, DateTime, Enum, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.sql import func

from slotbook.core.constants import SlotStatus, SlotType
from slotbook.db.base import Base


def _enum_values(enum_cls):
    return [m.value for m in enum_cls]


class Slot(Base):
    __tablename__ = "slots"

    id = Column(Integer, primary_key=True, autoincrement=True)
    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=False)
    date = Column(Date, nullable=False)
    time = Column(String(5), nullable=False)  # HH:MM on the fixed grid
    status = Column(
        Enum(SlotStatus, native_enum=False, length=16, values_callable=_enum_values),
        nullable=False,
        default=SlotStatus.AVAILABLE,
    )
    slot_type = Column(
        Enum(SlotType, native_enum=False, length=24, values_callable=_enum_values),
        nullable=False,
        default=SlotType.REGULAR,
    )
    hidden = Column(Boolean, nullable=False, default=False)  # excluded from public availability
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("provider_id", "date", "time", name="uq_slots_provider_date_time"),
        Index("ix_slots_provider_date_status", "provider_id", "date", "status"),
        Index("ix_slots_date_time", "date", "time"),
    )
