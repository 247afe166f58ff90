"""
Technician availability: weekly recurring slots, time off and open start times.

A technician with no availability rows at all works the implicit default
schedule (Monday-Saturday, DEFAULT_START_TIME to DEFAULT_END_TIME). As soon
as any row exists the default no longer applies to any day, so a weekday
without configured slots is closed.

Slots are whole-hour start times. Conflicts are detected on exact start time
only; a booking's estimated duration does not block the following hours.
"""
from datetime import date
from typing import List, Optional, Set

from sqlalchemy.orm import Session

from .calendar_utils import day_of_week, hourly_slots, parse_time, now_local
from .config import DEFAULT_START_TIME, DEFAULT_END_TIME
from .errors import NotFound, Unauthorized
from .models import AvailabilitySlot, TimeOff, Booking, Technician, INACTIVE_BOOKING_STATUSES
from .logging_config import get_logger, log_db_operation

logger = get_logger("availability")

SUNDAY = 0


def _has_any_slots(db: Session, technician_id: int) -> bool:
    return db.query(AvailabilitySlot.id).filter(
        AvailabilitySlot.technician_id == technician_id
    ).first() is not None


def _time_off_covering(db: Session, technician_id: int, day: date) -> Optional[TimeOff]:
    return db.query(TimeOff).filter(
        TimeOff.technician_id == technician_id,
        TimeOff.start_date <= day,
        TimeOff.end_date >= day,
    ).first()


def _booked_times(db: Session, technician_id: int, day: date) -> Set[str]:
    rows = db.query(Booking.scheduled_time).filter(
        Booking.technician_id == technician_id,
        Booking.scheduled_date == day,
        Booking.status.notin_(INACTIVE_BOOKING_STATUSES),
    ).all()
    return {scheduled_time for (scheduled_time,) in rows}


def within_default_hours(day: date, time: str) -> bool:
    if day_of_week(day) == SUNDAY:
        return False
    return DEFAULT_START_TIME <= time < DEFAULT_END_TIME


def check_availability(
    db: Session,
    technician_id: int,
    day: date,
    time: str,
    duration: int = 60,
) -> bool:
    """
    Whether the technician can take a booking starting at `time` on `day`.

    Args:
        db: Database session
        technician_id: Technician profile id
        day: Scheduled date
        time: Start time "HH:MM"
        duration: Estimated minutes; accepted but not used for overlap checks

    Returns:
        True if the slot is open
    """
    if _has_any_slots(db, technician_id):
        matching_slot = db.query(AvailabilitySlot).filter(
            AvailabilitySlot.technician_id == technician_id,
            AvailabilitySlot.day_of_week == day_of_week(day),
            AvailabilitySlot.is_available.is_(True),
            AvailabilitySlot.is_recurring.is_(True),
            AvailabilitySlot.start_time <= time,
            AvailabilitySlot.end_time >= time,
        ).first()
        if matching_slot is None:
            return False
    elif not within_default_hours(day, time):
        return False

    if _time_off_covering(db, technician_id, day) is not None:
        return False

    return time not in _booked_times(db, technician_id, day)


def get_available_slots(db: Session, technician_id: int, day: date) -> List[str]:
    """
    Open whole-hour start times for a date.

    Slots are listed in the order of the configured windows (by window start
    time), without de-duplication across overlapping windows.
    """
    if _time_off_covering(db, technician_id, day) is not None:
        return []

    windows = db.query(AvailabilitySlot).filter(
        AvailabilitySlot.technician_id == technician_id,
        AvailabilitySlot.day_of_week == day_of_week(day),
        AvailabilitySlot.is_available.is_(True),
        AvailabilitySlot.is_recurring.is_(True),
    ).order_by(AvailabilitySlot.start_time, AvailabilitySlot.id).all()

    booked = _booked_times(db, technician_id, day)

    if not _has_any_slots(db, technician_id):
        if day_of_week(day) == SUNDAY:
            return []
        return [slot for slot in hourly_slots(DEFAULT_START_TIME, DEFAULT_END_TIME) if slot not in booked]

    slots = []
    for window in windows:
        slots.extend(
            slot for slot in hourly_slots(window.start_time, window.end_time) if slot not in booked
        )
    return slots


def _require_technician(db: Session, technician_id: int) -> Technician:
    technician = db.get(Technician, technician_id)
    if technician is None:
        raise NotFound(f"Technician {technician_id} not found")
    return technician


def set_availability(db: Session, technician_id: int, slots: List[dict]) -> List[AvailabilitySlot]:
    """
    Replace the technician's recurring weekly schedule.

    Args:
        db: Database session
        technician_id: Technician profile id
        slots: dicts with day_of_week, start_time, end_time and optional is_available

    Returns:
        The created slot rows
    """
    _require_technician(db, technician_id)

    for slot in slots:
        if not 0 <= int(slot["day_of_week"]) <= 6:
            raise ValueError(f"day_of_week must be between 0 and 6, got {slot['day_of_week']}")
        if parse_time(slot["start_time"]) >= parse_time(slot["end_time"]):
            raise ValueError(f"start_time must be before end_time ({slot['start_time']}-{slot['end_time']})")

    try:
        db.query(AvailabilitySlot).filter(
            AvailabilitySlot.technician_id == technician_id,
            AvailabilitySlot.is_recurring.is_(True),
        ).delete(synchronize_session=False)

        created = [
            AvailabilitySlot(
                technician_id=technician_id,
                day_of_week=int(slot["day_of_week"]),
                start_time=slot["start_time"],
                end_time=slot["end_time"],
                is_recurring=True,
                is_available=slot.get("is_available", True),
            )
            for slot in slots
        ]
        db.add_all(created)
        db.commit()
    except Exception:
        db.rollback()
        raise

    log_db_operation("replace", "availability_slots", technician_id=technician_id, rows=len(created))
    logger.info(f"Technician {technician_id} schedule replaced with {len(created)} slots")
    return created


def get_technician_availability(db: Session, technician_id: int) -> List[AvailabilitySlot]:
    return db.query(AvailabilitySlot).filter(
        AvailabilitySlot.technician_id == technician_id,
        AvailabilitySlot.is_recurring.is_(True),
    ).order_by(AvailabilitySlot.day_of_week, AvailabilitySlot.start_time).all()


def add_time_off(
    db: Session,
    technician_id: int,
    start_date: date,
    end_date: date,
    reason: Optional[str] = None,
) -> TimeOff:
    _require_technician(db, technician_id)
    if end_date < start_date:
        raise ValueError("end_date must not be before start_date")

    time_off = TimeOff(
        technician_id=technician_id,
        start_date=start_date,
        end_date=end_date,
        reason=reason,
    )
    db.add(time_off)
    db.commit()
    db.refresh(time_off)
    logger.info(f"Technician {technician_id} off {start_date} to {end_date}")
    return time_off


def remove_time_off(db: Session, time_off_id: int, technician_id: int) -> None:
    time_off = db.get(TimeOff, time_off_id)
    if time_off is None:
        raise NotFound(f"Time off {time_off_id} not found")
    if time_off.technician_id != technician_id:
        raise Unauthorized("Time off does not belong to this technician")
    db.delete(time_off)
    db.commit()
    log_db_operation("delete", "time_offs", time_off_id=time_off_id, technician_id=technician_id)


def get_technician_time_offs(db: Session, technician_id: int, today: Optional[date] = None) -> List[TimeOff]:
    """Current and upcoming time off, earliest first."""
    today = today or now_local().date()
    return db.query(TimeOff).filter(
        TimeOff.technician_id == technician_id,
        TimeOff.end_date >= today,
    ).order_by(TimeOff.start_date).all()
