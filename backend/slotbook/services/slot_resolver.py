"""
Consecutive-slot resolution for multi-slot services.

Walks the fixed time grid forward from the start slot, one grid step at a time:
- grid ends before enough slots are found     -> INSUFFICIENT_GRID
- a slot record exists but is not available   -> GAP_IN_SEQUENCE (occupied/blocked breaks the run)
- no slot record at that grid time            -> skipped, keep stepping (staff never created it)
- an available slot record                    -> taken, becomes the new reference point

Slots are scoped to one provider and one calendar date; a run never crosses midnight.
The same walk backs the calendar listings (which dates/start slots can fit a service).
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Iterable

from slotbook.core.constants import SlotStatus
from slotbook.core.errors import ValidationFailed
from slotbook.core.time_grid import TimeGrid, default_grid

logger = logging.getLogger(__name__)


class ResolveFailure(str, Enum):
    INSUFFICIENT_GRID = "insufficient_grid"
    GAP_IN_SEQUENCE = "gap_in_sequence"


@dataclass
class ResolveResult:
    slots: list[Any] = field(default_factory=list)
    failure: ResolveFailure | None = None
    diagnostic: str | None = None
    blocking_slot: Any = None  # the non-available slot that broke the run (GAP_IN_SEQUENCE)

    @property
    def ok(self) -> bool:
        return self.failure is None


def _same_day_by_time(start_slot: Any, slots: Iterable[Any]) -> dict[str, Any]:
    return {
        s.time.strip(): s
        for s in slots
        if s.date == start_slot.date and s.provider_id == start_slot.provider_id
    }


def resolve(
    start_slot: Any,
    required_count: int,
    slots_for_date: Iterable[Any],
    grid: TimeGrid | None = None,
) -> ResolveResult:
    """Pick the ordered run of required_count slots starting at start_slot.

    slots_for_date: every slot record of the start slot's provider on its date (any status).
    Works on anything with provider_id, date, time and status attributes.
    """
    if required_count < 1:
        raise ValidationFailed(f"required_count must be >= 1, got {required_count}")
    if required_count == 1:
        return ResolveResult(slots=[start_slot])

    grid = grid or default_grid()
    by_time = _same_day_by_time(start_slot, slots_for_date)
    collected = [start_slot]
    reference_time = start_slot.time.strip()

    for _ in range(required_count - 1):
        check_time = reference_time
        while True:
            next_time = grid.successor(check_time)
            if next_time is None:
                available = ", ".join(
                    t for t, s in sorted(by_time.items()) if s.status == SlotStatus.AVAILABLE
                )
                return ResolveResult(
                    slots=collected,
                    failure=ResolveFailure.INSUFFICIENT_GRID,
                    diagnostic=(
                        f"This service requires {required_count} consecutive available slots starting "
                        f"from {start_slot.time}, but there aren't enough slots after this time. "
                        f"Available slots on this date: {available or 'none'}."
                    ),
                )
            candidate = by_time.get(next_time)
            if candidate is None:
                check_time = next_time
                continue
            if candidate.status != SlotStatus.AVAILABLE:
                status = getattr(candidate.status, "value", candidate.status)
                return ResolveResult(
                    slots=collected,
                    failure=ResolveFailure.GAP_IN_SEQUENCE,
                    diagnostic=(
                        f"This service requires {required_count} consecutive slots, but there is a "
                        f"{status} slot at {next_time} between the slots."
                    ),
                    blocking_slot=candidate,
                )
            collected.append(candidate)
            reference_time = next_time
            break

    return ResolveResult(slots=collected)


def can_accommodate(start_slot: Any, required_count: int, slots_for_date: Iterable[Any], grid: TimeGrid | None = None) -> bool:
    return resolve(start_slot, required_count, slots_for_date, grid).ok


def compatible_start_slots(
    slots: Iterable[Any],
    required_count: int,
    include_hidden: bool = False,
    grid: TimeGrid | None = None,
) -> list[Any]:
    """Available slots from which the service fits, ordered by (date, time).

    Hidden slots are never offered as a start unless include_hidden, but still count as records
    when walking the run.
    """
    grouped: dict[tuple[Any, date], list[Any]] = defaultdict(list)
    for s in slots:
        grouped[(s.provider_id, s.date)].append(s)
    out = []
    for key in sorted(grouped, key=lambda k: (k[1], str(k[0]))):
        day_slots = sorted(grouped[key], key=lambda s: s.time)
        for s in day_slots:
            if s.status != SlotStatus.AVAILABLE:
                continue
            if getattr(s, "hidden", False) and not include_hidden:
                continue
            if can_accommodate(s, required_count, day_slots, grid):
                out.append(s)
    return out


def eligible_dates(
    slots: Iterable[Any],
    required_count: int,
    include_hidden: bool = False,
    grid: TimeGrid | None = None,
) -> list[date]:
    """Dates with at least one start slot that fits the service."""
    return sorted({s.date for s in compatible_start_slots(slots, required_count, include_hidden, grid)})
