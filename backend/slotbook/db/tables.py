"""
Single source of truth for database tables that exist after migrations.

alembic/env.py asserts the models match, so a new model needs a migration and an entry here.
"""
ALL_TABLE_NAMES = (
    "providers",
    "customers",
    "slots",
    "bookings",
    "booking_slots",
    "booking_counters",
)
