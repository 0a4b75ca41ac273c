"""
Centralized error types for the booking core and their HTTP mapping.

Services raise these; routes stay thin and never build HTTPException themselves.
Each error carries a stable `code` so clients can branch (e.g. "slot_unavailable" -> pick another slot).
"""
from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------


class BookingError(Exception):
    """Root of every error the booking core raises on purpose."""

    code = "booking_error"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"error": self.code, "detail": self.message}
        if self.context:
            out["context"] = self.context
        return out


# ---------------------------------------------------------------------------
# Validation: malformed or missing input, rejected before any mutation
# ---------------------------------------------------------------------------


class ValidationFailed(BookingError):
    code = "validation_failed"


# ---------------------------------------------------------------------------
# Not found
# ---------------------------------------------------------------------------


class NotFound(BookingError):
    code = "not_found"


class SlotNotFound(NotFound):
    code = "slot_not_found"


class BookingNotFound(NotFound):
    code = "booking_not_found"


class CustomerNotFound(NotFound):
    code = "customer_not_found"


class ProviderNotFound(NotFound):
    code = "provider_not_found"


# ---------------------------------------------------------------------------
# State conflicts: the store is not in the state the operation needs
# ---------------------------------------------------------------------------


class StateConflict(BookingError):
    code = "state_conflict"


class SlotUnavailable(StateConflict):
    """Slot exists but is no longer available (usually lost to a concurrent booking)."""

    code = "slot_unavailable"


class ProviderMismatch(StateConflict):
    code = "provider_mismatch"


class SlotInUse(StateConflict):
    """Staff edit/delete refused because the slot is held by a booking."""

    code = "slot_in_use"


class PreconditionNotMet(StateConflict):
    code = "precondition_not_met"


class InvalidTransition(PreconditionNotMet):
    code = "invalid_transition"


class ConsecutiveSlotsUnavailable(StateConflict):
    """Multi-slot service cannot fit from the chosen start slot. `reason` is a ResolveFailure value."""

    code = "consecutive_slots_unavailable"

    def __init__(self, message: str, reason: str, **context: Any):
        super().__init__(message, reason=reason, **context)
        self.reason = reason


class SlotReservationFailed(StateConflict):
    """Booking creation could not reserve its slots. `cause` is the ledger's specific error."""

    code = "slot_reservation_failed"

    def __init__(self, cause: BookingError):
        super().__init__(cause.message, cause=cause.code, **cause.context)
        self.cause = cause

    @property
    def slot_unavailable(self) -> bool:
        return isinstance(self.cause, SlotUnavailable)


# ---------------------------------------------------------------------------
# Partial failure during multi-step creation (reservation already rolled back)
# ---------------------------------------------------------------------------


class BookingPersistenceFailed(BookingError):
    code = "booking_persistence_failed"


# ---------------------------------------------------------------------------
# HTTP mapping: (error class, status code). First match wins, so subclasses go first.
# Add new rules here instead of scattering checks in routes.
# ---------------------------------------------------------------------------

STATUS_BAD_REQUEST = 400
STATUS_NOT_FOUND = 404
STATUS_CONFLICT = 409
STATUS_INTERNAL_ERROR = 500

ERROR_STATUS_RULES: list[tuple[type[BookingError], int]] = [
    (ValidationFailed, STATUS_BAD_REQUEST),
    (NotFound, STATUS_NOT_FOUND),
    (StateConflict, STATUS_CONFLICT),
    (BookingPersistenceFailed, STATUS_INTERNAL_ERROR),
]


def status_for(exc: BookingError) -> int:
    for error_cls, status_code in ERROR_STATUS_RULES:
        if isinstance(exc, error_cls):
            return status_code
    return STATUS_INTERNAL_ERROR


def register_error_handlers(app: FastAPI) -> None:
    """Render every BookingError as {"error": code, "detail": message} with its mapped status."""

    @app.exception_handler(BookingError)
    async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
        return JSONResponse(status_code=status_for(exc), content=exc.to_dict())
