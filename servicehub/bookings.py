"""
Booking lifecycle.

    PENDING -> CONFIRMED -> IN_PROGRESS -> COMPLETED
    PENDING | CONFIRMED | IN_PROGRESS -> CANCELLED

A CONFIRMED booking may also be completed directly. COMPLETED and CANCELLED
are terminal. NO_SHOW is reserved; nothing moves a booking into it yet.

Every mutation commits the booking change first. Gamification events and
notifications run afterwards; a failure in either is logged and never undoes
the booking change.
"""
from datetime import date, datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from .availability import check_availability
from .calendar_utils import now_local, parse_time, scheduled_datetime
from .config import DEFAULT_BOOKING_DURATION, QUICK_RESPONSE_WINDOW_MINUTES, ON_TIME_GRACE_MINUTES
from .errors import NotFound, Unauthorized, InvalidTransition, SlotUnavailable
from .gamification import award_points_for_event
from .models import Booking, BookingStatus, Technician, User
from . import notifications
from .logging_config import get_logger, log_state_change, log_error

logger = get_logger("bookings")

ALLOWED_TRANSITIONS = {
    BookingStatus.PENDING: {BookingStatus.CONFIRMED, BookingStatus.CANCELLED},
    BookingStatus.CONFIRMED: {BookingStatus.IN_PROGRESS, BookingStatus.COMPLETED, BookingStatus.CANCELLED},
    BookingStatus.IN_PROGRESS: {BookingStatus.COMPLETED, BookingStatus.CANCELLED},
    BookingStatus.COMPLETED: set(),
    BookingStatus.CANCELLED: set(),
    BookingStatus.NO_SHOW: set(),
}

CANCELLER_ROLES = ("customer", "technician", "admin")


def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, set())


def _ensure_transition(booking: Booking, target: BookingStatus) -> None:
    if not can_transition(booking.status, target):
        raise InvalidTransition(
            f"Booking {booking.id} cannot move from {booking.status.value} to {target.value}"
        )


def active_slot_key(scheduled_date: date, scheduled_time: str) -> str:
    return f"{scheduled_date.isoformat()}T{scheduled_time}"


def _with_parties(query):
    return query.options(
        joinedload(Booking.customer),
        joinedload(Booking.technician).joinedload(Technician.user),
    )


def _load_for_update(db: Session, booking_id: int) -> Booking:
    booking = _with_parties(db.query(Booking)).filter(Booking.id == booking_id).with_for_update(of=Booking).first()
    if booking is None:
        raise NotFound(f"Booking {booking_id} not found")
    return booking


def _require_technician_owner(booking: Booking, technician_user_id: int) -> None:
    if booking.technician.user_id != technician_user_id:
        raise Unauthorized("Only the assigned technician can change this booking")


def _party(user: User) -> dict:
    return {"id": user.id, "name": user.name, "email": user.email, "phone": user.phone}


def booking_payload(booking: Booking) -> dict:
    """Booking with customer and technician display fields, as sent to notifiers."""
    return {
        "id": booking.id,
        "status": booking.status.value,
        "scheduled_date": booking.scheduled_date.isoformat(),
        "scheduled_time": booking.scheduled_time,
        "service_type": booking.service_type,
        "description": booking.description,
        "address": booking.address,
        "city": booking.city,
        "phone": booking.phone,
        "estimated_duration": booking.estimated_duration,
        "total_price": booking.total_price,
        "cancelled_by": booking.cancelled_by,
        "cancel_reason": booking.cancel_reason,
        "created_at": booking.created_at,
        "confirmed_at": booking.confirmed_at,
        "completed_at": booking.completed_at,
        "customer": _party(booking.customer),
        "technician": {
            **_party(booking.technician.user),
            "id": booking.technician.id,
        },
    }


def emit_event(db: Session, user_id: int, event_type: str, booking_id: int) -> Optional[dict]:
    try:
        return award_points_for_event(db, user_id, event_type, source_id=booking_id)
    except Exception as e:
        db.rollback()
        log_error("Gamification event failed", e, booking_id=booking_id, user_id=user_id, event=event_type)
        return None


def _notify(notifier, kind: str, booking: Booking, **extra) -> None:
    if notifier is None:
        return
    try:
        notifier.notify(kind, {"booking": booking_payload(booking), **extra})
    except Exception as e:
        log_error("Notification failed", e, booking_id=booking.id, event=kind)


def create_booking(
    db: Session,
    customer_id: int,
    technician_id: int,
    scheduled_date: date,
    scheduled_time: str,
    service_type: str,
    address: str,
    city: str,
    phone: str,
    description: Optional[str] = None,
    estimated_duration: int = DEFAULT_BOOKING_DURATION,
    notifier=None,
    now: Optional[datetime] = None,
) -> Booking:
    """
    Book a technician for a customer.

    The slot must pass check_availability(). A customer's very first booking
    earns FIRST_BOOKING points.

    Raises:
        NotFound: unknown customer or technician
        SlotUnavailable: slot closed, on time off, or already taken
        ValueError: scheduled_time is not zero-padded "HH:MM"
    """
    if db.get(User, customer_id) is None:
        raise NotFound(f"Customer {customer_id} not found")
    if db.get(Technician, technician_id) is None:
        raise NotFound(f"Technician {technician_id} not found")
    parse_time(scheduled_time)

    if not check_availability(db, technician_id, scheduled_date, scheduled_time, estimated_duration):
        raise SlotUnavailable(
            f"Technician {technician_id} is not available on {scheduled_date} at {scheduled_time}"
        )

    booking = Booking(
        customer_id=customer_id,
        technician_id=technician_id,
        scheduled_date=scheduled_date,
        scheduled_time=scheduled_time,
        active_slot=active_slot_key(scheduled_date, scheduled_time),
        service_type=service_type,
        description=description,
        address=address,
        city=city,
        phone=phone,
        estimated_duration=estimated_duration,
        status=BookingStatus.PENDING,
        created_at=now_local(now),
    )
    db.add(booking)
    try:
        db.commit()
    except IntegrityError:
        # Lost the race for the slot to a concurrent booking
        db.rollback()
        raise SlotUnavailable(
            f"Technician {technician_id} is not available on {scheduled_date} at {scheduled_time}"
        ) from None

    booking = get_booking_by_id(db, booking.id)
    logger.info(
        f"Created booking for technician {technician_id} on {scheduled_date} {scheduled_time}",
        extra={"booking_id": booking.id, "user_id": customer_id},
    )

    customer_bookings = db.query(Booking).filter(Booking.customer_id == customer_id).count()
    if customer_bookings == 1:
        emit_event(db, customer_id, "FIRST_BOOKING", booking.id)

    _notify(notifier, notifications.BOOKING_CREATED_CUSTOMER, booking)
    _notify(notifier, notifications.BOOKING_CREATED_TECHNICIAN, booking)
    return booking


def confirm_booking(
    db: Session,
    booking_id: int,
    technician_user_id: int,
    notifier=None,
    now: Optional[datetime] = None,
) -> Booking:
    """Technician accepts a pending booking. Confirming within the hour earns QUICK_RESPONSE."""
    booking = _load_for_update(db, booking_id)
    _require_technician_owner(booking, technician_user_id)
    _ensure_transition(booking, BookingStatus.CONFIRMED)

    now = now_local(now)
    previous = booking.status
    booking.status = BookingStatus.CONFIRMED
    booking.confirmed_at = now
    db.commit()
    log_state_change(booking.id, previous.value, booking.status.value)

    if now - booking.created_at <= timedelta(minutes=QUICK_RESPONSE_WINDOW_MINUTES):
        emit_event(db, technician_user_id, "QUICK_RESPONSE", booking.id)

    _notify(notifier, notifications.BOOKING_CONFIRMED, booking)
    return booking


def start_booking(db: Session, booking_id: int, technician_user_id: int) -> Booking:
    booking = _load_for_update(db, booking_id)
    _require_technician_owner(booking, technician_user_id)
    _ensure_transition(booking, BookingStatus.IN_PROGRESS)

    previous = booking.status
    booking.status = BookingStatus.IN_PROGRESS
    db.commit()
    log_state_change(booking.id, previous.value, booking.status.value)
    return booking


def complete_booking(
    db: Session,
    booking_id: int,
    technician_user_id: int,
    total_price: Optional[float] = None,
    notifier=None,
    now: Optional[datetime] = None,
) -> Booking:
    """
    Close a confirmed or in-progress booking.

    Credits the technician's completed-job counter in the same commit, then
    awards BOOKING_COMPLETED to the customer, JOB_COMPLETED to the technician,
    and ON_TIME_ARRIVAL when completed no later than the grace period after
    the scheduled start.
    """
    booking = _load_for_update(db, booking_id)
    _require_technician_owner(booking, technician_user_id)
    _ensure_transition(booking, BookingStatus.COMPLETED)

    now = now_local(now)
    previous = booking.status
    booking.status = BookingStatus.COMPLETED
    booking.completed_at = now
    booking.total_price = total_price
    db.query(Technician).filter(Technician.id == booking.technician_id).update(
        {Technician.total_jobs_completed: Technician.total_jobs_completed + 1},
        synchronize_session=False,
    )
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    log_state_change(booking.id, previous.value, booking.status.value, total_price=total_price)

    emit_event(db, booking.customer_id, "BOOKING_COMPLETED", booking.id)
    emit_event(db, technician_user_id, "JOB_COMPLETED", booking.id)

    started = scheduled_datetime(booking.scheduled_date, booking.scheduled_time)
    if now - started <= timedelta(minutes=ON_TIME_GRACE_MINUTES):
        emit_event(db, technician_user_id, "ON_TIME_ARRIVAL", booking.id)

    _notify(notifier, notifications.BOOKING_COMPLETED, booking)
    return booking


def cancel_booking(
    db: Session,
    booking_id: int,
    cancelled_by: str,
    canceller_user_id: Optional[int],
    reason: Optional[str] = None,
    notifier=None,
) -> Booking:
    """
    Cancel a booking that has not finished.

    Customers may cancel their own bookings and technicians bookings assigned
    to them; admin cancellations are trusted and not ownership-checked.
    The freed slot becomes bookable again.
    """
    if cancelled_by not in CANCELLER_ROLES:
        raise ValueError(f"cancelled_by must be one of {', '.join(CANCELLER_ROLES)}")

    booking = _load_for_update(db, booking_id)
    if cancelled_by == "customer" and booking.customer_id != canceller_user_id:
        raise Unauthorized("Only the booking's customer can cancel it")
    if cancelled_by == "technician" and booking.technician.user_id != canceller_user_id:
        raise Unauthorized("Only the assigned technician can cancel this booking")
    _ensure_transition(booking, BookingStatus.CANCELLED)

    previous = booking.status
    booking.status = BookingStatus.CANCELLED
    booking.active_slot = None
    booking.cancelled_by = cancelled_by
    booking.cancel_reason = reason
    db.commit()
    log_state_change(booking.id, previous.value, booking.status.value, cancelled_by=cancelled_by)

    _notify(notifier, notifications.BOOKING_CANCELLED, booking, cancelled_by=cancelled_by, reason=reason)
    return booking


def get_booking_by_id(db: Session, booking_id: int) -> Optional[Booking]:
    return _with_parties(db.query(Booking)).filter(Booking.id == booking_id).first()


def _apply_filters(query, status=None, start_date=None, end_date=None):
    if status is not None:
        query = query.filter(Booking.status == BookingStatus(status))
    if start_date is not None:
        query = query.filter(Booking.scheduled_date >= start_date)
    if end_date is not None:
        query = query.filter(Booking.scheduled_date <= end_date)
    return query


def get_customer_bookings(
    db: Session,
    customer_id: int,
    status: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> List[Booking]:
    query = _with_parties(db.query(Booking)).filter(Booking.customer_id == customer_id)
    query = _apply_filters(query, status, start_date, end_date)
    return query.order_by(Booking.scheduled_date.desc(), Booking.scheduled_time.desc()).all()


def get_technician_bookings(
    db: Session,
    technician_id: int,
    status: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> List[Booking]:
    query = _with_parties(db.query(Booking)).filter(Booking.technician_id == technician_id)
    query = _apply_filters(query, status, start_date, end_date)
    return query.order_by(Booking.scheduled_date.desc(), Booking.scheduled_time.desc()).all()


def get_all_bookings(
    db: Session,
    status: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    limit: int = 50,
    offset: int = 0,
) -> Tuple[List[Booking], int]:
    query = _apply_filters(db.query(Booking), status, start_date, end_date)
    total = query.count()
    bookings = (
        _with_parties(query)
        .order_by(Booking.created_at.desc(), Booking.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return bookings, total
