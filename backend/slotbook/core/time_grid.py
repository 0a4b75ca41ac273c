"""
Fixed, provider-wide time grid and business-calendar helpers.

The grid is an explicit ordered sequence of HH:MM values (e.g. every 30 minutes from opening to
closing). Slot records are only instantiated on some grid points; the resolver and the calendar
eligibility listing both step with successor(), so they agree on what "next slot" means.
"""
import re
from datetime import date, datetime, timedelta, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo

from slotbook.config import settings
from slotbook.core.errors import ValidationFailed

_TIME_24H = re.compile(r"^\s*(\d{1,2}):(\d{2})(?::\d{2})?\s*$")
_TIME_12H = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*([AaPp][Mm])\s*$")


def normalize_time(value: str) -> str:
    """Return HH:MM for '9:30', '09:30', '09:30:00' or '2:30 PM'. Raises ValidationFailed otherwise."""
    raw = value or ""
    match = _TIME_12H.match(raw)
    if match:
        hour, minute, period = int(match.group(1)), int(match.group(2)), match.group(3).upper()
        if not 1 <= hour <= 12:
            raise ValidationFailed(f"Invalid time {value!r}")
        if period == "PM" and hour != 12:
            hour += 12
        elif period == "AM" and hour == 12:
            hour = 0
    else:
        match = _TIME_24H.match(raw)
        if not match:
            raise ValidationFailed(f"Invalid time {value!r}. Use HH:MM.")
        hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ValidationFailed(f"Invalid time {value!r}")
    return f"{hour:02d}:{minute:02d}"


class TimeGrid:
    """Ordered grid of HH:MM times with successor lookup."""

    __slots__ = ("times", "_index")

    def __init__(self, times: list[str] | tuple[str, ...]):
        normalized = tuple(normalize_time(t) for t in times)
        if list(normalized) != sorted(set(normalized)):
            raise ValueError("Grid times must be unique and ascending")
        self.times = normalized
        self._index = {t: i for i, t in enumerate(normalized)}

    @classmethod
    def from_range(cls, start: str, end: str, step_minutes: int) -> "TimeGrid":
        """Every step_minutes from start to end inclusive."""
        base = datetime(2000, 1, 1)
        current = datetime.combine(base.date(), datetime.strptime(normalize_time(start), "%H:%M").time())
        last = datetime.combine(base.date(), datetime.strptime(normalize_time(end), "%H:%M").time())
        times = []
        while current <= last:
            times.append(current.strftime("%H:%M"))
            current += timedelta(minutes=step_minutes)
        return cls(times)

    def __contains__(self, value: str) -> bool:
        return value in self._index

    def __len__(self) -> int:
        return len(self.times)

    def index(self, value: str) -> int:
        return self._index[value]

    def successor(self, value: str) -> str | None:
        """Next grid time after value, or None at the end of the day.

        A time that is not itself on the grid steps to the first grid time after it.
        """
        i = self._index.get(value)
        if i is not None:
            return self.times[i + 1] if i + 1 < len(self.times) else None
        for t in self.times:
            if t > value:
                return t
        return None


@lru_cache(maxsize=1)
def default_grid() -> TimeGrid:
    return TimeGrid.from_range(
        settings.slot_grid_start,
        settings.slot_grid_end,
        settings.slot_grid_step_minutes,
    )


def business_now(now: datetime | None = None) -> datetime:
    """Current time in the business timezone."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(ZoneInfo(settings.business_timezone))


def business_today(now: datetime | None = None) -> date:
    return business_now(now).date()


def business_date_key(now: datetime | None = None) -> str:
    """YYYYMMDD of the business-timezone calendar day."""
    return business_now(now).strftime("%Y%m%d")
