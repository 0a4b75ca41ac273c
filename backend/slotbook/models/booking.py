"""Customer reservation of one or more slots with one provider.

Field ownership:
  status / confirmed_at / completed_at -> slotbook.services.booking_service (compare-and-swap updates)
  payment_status                      -> slotbook.services.payment_stats (read-only here, no setter)
Once completed_at is set, slot links, service fields, total and deposit_required are frozen.
"""
from sqlalchemy import Column, DateTime, Enum, Float, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from slotbook.core.constants import (
    BookingStatus,
    ClientType,
    PaymentMethod,
    PaymentStatus,
    ServiceLocation,
    ServiceType,
)
from slotbook.db.base import Base
from slotbook.models.slot import _enum_values


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    booking_code = Column(String(32), nullable=False, unique=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=False, index=True)

    service_type = Column(Enum(ServiceType, native_enum=False, length=32, values_callable=_enum_values), nullable=False)
    service_location = Column(Enum(ServiceLocation, native_enum=False, length=32, values_callable=_enum_values), nullable=False)
    client_type = Column(Enum(ClientType, native_enum=False, length=16, values_callable=_enum_values), nullable=False)

    status = Column(
        Enum(BookingStatus, native_enum=False, length=16, values_callable=_enum_values),
        nullable=False,
        default=BookingStatus.PENDING,
        index=True,
    )
    _payment_status = Column(
        "payment_status",
        Enum(PaymentStatus, native_enum=False, length=16, values_callable=_enum_values),
        nullable=False,
        default=PaymentStatus.UNPAID,
        index=True,
    )

    # pricing
    total = Column(Float, nullable=False, default=0.0)
    deposit_required = Column(Float, nullable=False, default=0.0)
    paid_amount = Column(Float, nullable=False, default=0.0)
    tip_amount = Column(Float, nullable=False, default=0.0)
    discount_amount = Column(Float, nullable=False, default=0.0)

    # payment
    payment_method = Column(Enum(PaymentMethod, native_enum=False, length=8, values_callable=_enum_values), nullable=True)
    deposit_paid_at = Column(DateTime(timezone=True), nullable=True)
    fully_paid_at = Column(DateTime(timezone=True), nullable=True)
    proof_url = Column(Text, nullable=True)  # opaque; never fetched here

    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True, index=True)  # settable once
    status_reason = Column(Text, nullable=True)
    client_notes = Column(Text, nullable=True)
    admin_notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    version = Column(Integer, nullable=False)  # bumped by every write; stale ORM flushes raise StaleDataError

    slot_links = relationship(
        "BookingSlot",
        back_populates="booking",
        order_by="BookingSlot.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (Index("ix_bookings_status_completed_at", "status", "completed_at"),)
    __mapper_args__ = {"version_id_col": version}

    @hybrid_property
    def payment_status(self) -> PaymentStatus:
        return self._payment_status

    @payment_status.expression
    def payment_status(cls):
        return cls._payment_status

    @property
    def slot_ids(self) -> list[int]:
        return [link.slot_id for link in self.slot_links]

    @property
    def held_slot_ids(self) -> list[int]:
        """Slots this booking still holds (links not yet released)."""
        return [link.slot_id for link in self.slot_links if link.released_at is None]


class BookingSlot(Base):
    """Ordered slot membership of a booking.

    released_at is NULL while the booking holds the slot. The partial unique index means the database
    itself refuses a second active hold on the same slot.
    """

    __tablename__ = "booking_slots"

    id = Column(Integer, primary_key=True, autoincrement=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    slot_id = Column(Integer, ForeignKey("slots.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    released_at = Column(DateTime(timezone=True), nullable=True)

    booking = relationship("Booking", back_populates="slot_links")
    slot = relationship("Slot", lazy="selectin")

    __table_args__ = (
        Index(
            "uq_booking_slots_active_slot",
            "slot_id",
            unique=True,
            sqlite_where=text("released_at IS NULL"),
            postgresql_where=text("released_at IS NULL"),
        ),
    )
