"""
Booking codes: PREFIX-YYYYMMDDNNN, one sequence per business-timezone day.

The sequence comes from a single INSERT ... ON CONFLICT DO UPDATE seq = seq + 1 RETURNING seq,
so concurrent callers on the same day can never read the same number. Codes are never reused,
even when the booking that took one is cancelled.
"""
import logging
from datetime import datetime

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from slotbook.config import settings
from slotbook.core.constants import BOOKING_CODE_SEQUENCE_WIDTH
from slotbook.core.time_grid import business_date_key
from slotbook.models.booking_counter import BookingCounter

logger = logging.getLogger(__name__)

_UPSERT_BY_DIALECT = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def next_sequence(db: Session, date_key: str, *, commit: bool = True) -> int:
    """Atomically increment (creating on first use) the counter for date_key and return the new value."""
    dialect = db.get_bind().dialect.name
    insert = _UPSERT_BY_DIALECT.get(dialect)
    if insert is None:
        raise RuntimeError(f"Booking counter needs an upsert-capable database, got {dialect}")
    stmt = (
        insert(BookingCounter)
        .values(date_key=date_key, seq=1)
        .on_conflict_do_update(
            index_elements=[BookingCounter.date_key],
            set_={"seq": BookingCounter.seq + 1},
        )
        .returning(BookingCounter.seq)
    )
    seq = db.execute(stmt).scalar_one()
    if commit:
        db.commit()
    return seq


def format_booking_code(date_key: str, seq: int, prefix: str | None = None) -> str:
    prefix = prefix or settings.booking_code_prefix
    return f"{prefix}-{date_key}{str(seq).zfill(BOOKING_CODE_SEQUENCE_WIDTH)}"


def next_booking_code(db: Session, date_key: str | None = None, *, now: datetime | None = None, commit: bool = True) -> str:
    """Next code for date_key (default: today in the business timezone)."""
    date_key = date_key or business_date_key(now)
    seq = next_sequence(db, date_key, commit=commit)
    code = format_booking_code(date_key, seq)
    logger.debug("Issued booking code %s", code)
    return code
