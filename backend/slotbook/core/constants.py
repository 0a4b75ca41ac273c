"""
Centralized constants: status vocabularies, service catalogue, scheduler job ids.

Change job IDs or catalogue entries here instead of scattering literals across services and routes.
"""
from enum import Enum


class SlotStatus(str, Enum):
    AVAILABLE = "available"
    PENDING = "pending"
    CONFIRMED = "confirmed"
    BLOCKED = "blocked"


# Statuses that mean "a booking holds this slot"; staff edits/deletes are refused for these
HELD_SLOT_STATUSES = (SlotStatus.PENDING, SlotStatus.CONFIRMED)
# Statuses staff may set directly
STAFF_SLOT_STATUSES = (SlotStatus.AVAILABLE, SlotStatus.BLOCKED)


class SlotType(str, Enum):
    REGULAR = "regular"
    SURCHARGE = "with_squeeze_fee"


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


ACTIVE_BOOKING_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)


class PaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"


class PaymentMethod(str, Enum):
    PNB = "PNB"
    CASH = "CASH"
    GCASH = "GCASH"


class ServiceType(str, Enum):
    MANICURE = "manicure"
    PEDICURE = "pedicure"
    MANI_PEDI = "mani_pedi"
    HOME_SERVICE_2SLOTS = "home_service_2slots"
    HOME_SERVICE_3SLOTS = "home_service_3slots"


class ServiceLocation(str, Enum):
    HOMEBASED_STUDIO = "homebased_studio"
    HOME_SERVICE = "home_service"


class ClientType(str, Enum):
    NEW = "new"
    REPEAT = "repeat"


class CustomerClientType(str, Enum):
    NEW = "NEW"
    REPEAT = "REPEAT"


# Consecutive grid slots each service occupies; anything not listed takes one
SERVICE_SLOT_COUNTS: dict[ServiceType, int] = {
    ServiceType.MANI_PEDI: 2,
    ServiceType.HOME_SERVICE_2SLOTS: 2,
    ServiceType.HOME_SERVICE_3SLOTS: 3,
}


def required_slot_count(service_type: ServiceType | str) -> int:
    return SERVICE_SLOT_COUNTS.get(ServiceType(service_type), 1)


# Scheduler job IDs (must match ids used in main.py add_job)
PENDING_EXPIRY_JOB_ID = "expire_pending_bookings"
SLOT_CLEANUP_JOB_ID = "cleanup_past_slots"

# Booking code: PREFIX-YYYYMMDD + zero-padded daily sequence
BOOKING_CODE_SEQUENCE_WIDTH = 3

# Listing caps so responses stay bounded
BOOKING_LIST_LIMIT = 200
AVAILABILITY_MAX_DAYS = 93
