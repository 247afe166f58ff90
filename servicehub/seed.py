import logging

from sqlalchemy.orm import Session

from . import catalog
from .db import SessionLocal
from .models import (
    Achievement, AvailabilitySlot, Level, Reward, Technician, User, UserPoints, UserRole,
)

logger = logging.getLogger("servicehub.seed")


# Demo customers: name, email, phone
CUSTOMERS_DATA = [
    ("Ana Rodríguez", "ana.rodriguez@example.com", "809-555-1001"),
    ("Carlos Pérez", "carlos.perez@example.com", "809-555-1002"),
    ("María Gómez", "maria.gomez@example.com", "829-555-1003"),
]

# Demo technicians: name, email, phone, location, specializations, verified, custom schedule
# A technician without a custom schedule works the implicit Mon-Sat 08:00-18:00 week.
TECHNICIANS_DATA = [
    ("Luis Fernández", "luis.fernandez@example.com", "809-555-2001", "Santiago",
     ["electricidad", "aire acondicionado"], True,
     [(1, "08:00", "12:00"), (1, "14:00", "18:00"), (3, "08:00", "12:00"), (5, "09:00", "17:00")]),
    ("Rosa Martínez", "rosa.martinez@example.com", "809-555-2002", "Santiago",
     ["plomería"], True, None),
    ("Pedro Núñez", "pedro.nunez@example.com", "829-555-2003", "Puerto Plata",
     ["refrigeración", "lavadoras"], False,
     [(2, "10:00", "16:00"), (4, "10:00", "16:00"), (6, "08:00", "12:00")]),
]

DEMO_PASSWORD = "demo-password-not-for-login"


def _upsert(db: Session, model, key: str, rows: list) -> int:
    """Insert or update catalog rows matched on `key`. Returns rows created."""
    created = 0
    for row in rows:
        existing = db.query(model).filter(getattr(model, key) == row[key]).first()
        if existing is None:
            db.add(model(**row))
            created += 1
        else:
            for field, value in row.items():
                setattr(existing, field, value)
    return created


def seed_catalog(db: Session) -> None:
    """Upsert levels, achievements and rewards from the static catalogs."""
    levels = _upsert(db, Level, "level_number", catalog.LEVELS)
    achievements = _upsert(db, Achievement, "code", catalog.ACHIEVEMENTS)
    rewards = _upsert(db, Reward, "code", catalog.REWARDS)
    db.commit()
    logger.info(f"Catalog seeded: {levels} new levels, {achievements} new achievements, "
                f"{rewards} new rewards.")


def seed_data():
    """Seed the catalog and, on an empty database, demo customers and technicians."""
    db = SessionLocal()
    try:
        seed_catalog(db)

        if db.query(User).first():
            logger.info("Users already exist, skipping demo data.")
            return

        users = []
        for name, email, phone in CUSTOMERS_DATA:
            users.append(User(name=name, email=email, phone=phone, password=DEMO_PASSWORD,
                              role=UserRole.CUSTOMER, email_verified=True))
        technician_users = []
        for name, email, phone, _, _, _, _ in TECHNICIANS_DATA:
            technician_users.append(User(name=name, email=email, phone=phone, password=DEMO_PASSWORD,
                                         role=UserRole.TECHNICIAN, email_verified=True))

        db.add_all(users + technician_users)
        db.flush()

        technicians = []
        slots = []
        for user, (_, _, _, location, specializations, verified, schedule) in zip(
            technician_users, TECHNICIANS_DATA
        ):
            technician = Technician(user_id=user.id, location=location,
                                    specializations=specializations, verified=verified)
            db.add(technician)
            db.flush()
            technicians.append(technician)
            for day, start_time, end_time in schedule or []:
                slots.append(AvailabilitySlot(technician_id=technician.id, day_of_week=day,
                                              start_time=start_time, end_time=end_time))

        points = [UserPoints(user_id=user.id) for user in users + technician_users]
        db.add_all(slots + points)
        db.commit()

        logger.info(f"Database seeded: {len(users)} customers, {len(technicians)} technicians, "
                    f"{len(slots)} availability slots.")
    except Exception as e:
        logger.error(f"Failed to seed database: {e}")
        db.rollback()
    finally:
        db.close()
