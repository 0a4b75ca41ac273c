from slotbook.models.booking import Booking, BookingSlot
from slotbook.models.booking_counter import BookingCounter
from slotbook.models.customer import Customer
from slotbook.models.provider import Provider
from slotbook.models.slot import Slot

__all__ = [
    "Booking",
    "BookingCounter",
    "BookingSlot",
    "Customer",
    "Provider",
    "Slot",
]
