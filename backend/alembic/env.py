from logging.config import fileConfig

from dotenv import load_dotenv
from sqlalchemy import engine_from_config
from sqlalchemy import pool
from alembic import context

from slotbook.config import settings
from slotbook.db.base import Base
from slotbook.db.tables import ALL_TABLE_NAMES
from slotbook.models.booking import Booking, BookingSlot  # noqa: F401
from slotbook.models.booking_counter import BookingCounter  # noqa: F401
from slotbook.models.customer import Customer  # noqa: F401
from slotbook.models.provider import Provider  # noqa: F401
from slotbook.models.slot import Slot  # noqa: F401

load_dotenv()

# Every model table must be one the migrations create.
_registered = set(Base.metadata.tables)
_expected = set(ALL_TABLE_NAMES)
assert _registered == _expected, (
    f"Model tables {_registered} must match slotbook.db.tables.ALL_TABLE_NAMES {_expected}. "
    "Add a migration and update ALL_TABLE_NAMES together."
)

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata
config.set_main_option("sqlalchemy.url", settings.database_url)


def run_migrations_offline() -> None:
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=url.startswith("sqlite"),
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=connection.dialect.name == "sqlite",
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
