from datetime import date

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

import slotbook.models  # noqa: F401  (registers every table on Base.metadata)
from slotbook.config import settings
from slotbook.core.constants import SlotStatus, SlotType
from slotbook.db.base import Base
from slotbook.db.session import build_engine, get_db
from slotbook.models.slot import Slot
from slotbook.services import booking_service
from slotbook.services.customer_service import find_or_create_customer
from slotbook.services.provider_service import create_provider

DAY = date(2024, 6, 1)


@pytest.fixture
def engine(tmp_path):
    # File-backed so worker threads in the concurrency tests share one database
    eng = build_engine(f"sqlite:///{tmp_path / 'slotbook-test.db'}")
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def notified(monkeypatch):
    """Capture booking-created notifications instead of starting email/backup threads."""
    calls = []
    monkeypatch.setattr(booking_service, "notify_booking_created", lambda summary, customer: calls.append((summary, customer)))
    return calls


@pytest.fixture
def client(session_factory, monkeypatch):
    from slotbook.main import app

    monkeypatch.setattr(settings, "scheduler_enabled", False)

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def provider(db):
    return create_provider(db, "Ana")


@pytest.fixture
def customer(db):
    return find_or_create_customer(db, "Carla Reyes", email="carla@example.com", phone="09171234567")


@pytest.fixture
def make_slots(db):
    """Insert slot rows directly (any status) for one provider and date; returns them in time order."""

    def _make(provider_id, times, day=DAY, status=SlotStatus.AVAILABLE, hidden=False):
        rows = [
            Slot(
                provider_id=provider_id,
                date=day,
                time=t,
                status=status,
                slot_type=SlotType.REGULAR,
                hidden=hidden,
            )
            for t in times
        ]
        db.add_all(rows)
        db.commit()
        for row in rows:
            db.refresh(row)
        return rows

    return _make


@pytest.fixture
def make_booking(db):
    def _make(customer_id, provider_id, slot_ids, total=1500.0, deposit_required=500.0, service_type="manicure"):
        return booking_service.create_booking(
            db,
            customer_id=customer_id,
            provider_id=provider_id,
            service_type=service_type,
            service_location="homebased_studio",
            client_type="new",
            total=total,
            deposit_required=deposit_required,
            slot_ids=slot_ids,
        )

    return _make
