"""
Pytest configuration: use SQLite in-memory DB so tests run without MySQL.

Strategy: Set DATABASE_URL=sqlite:// BEFORE servicehub.db is imported.
db.py detects in-memory SQLite and shares one connection across threads.
"""
import os

# MUST be set before any servicehub module is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SENDGRID_API_KEY"] = ""
os.environ.setdefault("APP_BASE_URL", "http://localhost:8000")

from datetime import date, datetime

import pytest

from servicehub.db import Base, SessionLocal, engine
from servicehub.models import AvailabilitySlot, Technician, User, UserRole
from servicehub.notifications import RecordingNotifier
from servicehub.seed import seed_catalog
from servicehub import bookings

SUNDAY = date(2025, 6, 1)
MONDAY = date(2025, 6, 2)
TUESDAY = date(2025, 6, 3)

# After the early adopter deadline, so that achievement stays locked by default
REGISTERED_AT = datetime(2025, 5, 1, 9, 0)
# Bookings are created the Friday before MONDAY unless a test says otherwise
BOOKED_AT = datetime(2025, 5, 30, 9, 0)


@pytest.fixture
def db():
    """Fresh schema with the gamification catalog seeded."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    seed_catalog(session)
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user(db):
    created = []

    def _make(name="Cliente", role=UserRole.CUSTOMER, created_at=REGISTERED_AT):
        n = len(created) + 1
        user = User(
            name=f"{name} {n}",
            email=f"user{n}@example.com",
            password="secret",
            phone=f"809-555-{n:04d}",
            role=role,
            created_at=created_at,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        created.append(user)
        return user

    return _make


@pytest.fixture
def make_technician(db, make_user):
    def _make(verified=False, slots=None, created_at=REGISTERED_AT):
        user = make_user(name="Técnico", role=UserRole.TECHNICIAN, created_at=created_at)
        technician = Technician(user_id=user.id, location="Santiago", verified=verified,
                                specializations=["electricidad"])
        db.add(technician)
        db.flush()
        for day, start_time, end_time in slots or []:
            db.add(AvailabilitySlot(technician_id=technician.id, day_of_week=day,
                                    start_time=start_time, end_time=end_time))
        db.commit()
        db.refresh(technician)
        return technician

    return _make


@pytest.fixture
def customer(make_user):
    return make_user()


@pytest.fixture
def technician(make_technician):
    return make_technician()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def make_booking(db, notifier):
    def _make(customer, technician, day=MONDAY, time="10:00", now=BOOKED_AT):
        return bookings.create_booking(
            db,
            customer_id=customer.id,
            technician_id=technician.id,
            scheduled_date=day,
            scheduled_time=time,
            service_type="REPAIR",
            address="Calle del Sol 12",
            city="Santiago",
            phone="809-555-9999",
            notifier=notifier,
            now=now,
        )

    return _make
