"""
Booking API routes.

Bookings, technician availability and reviews. Errors from the core are
translated to HTTP responses by the handlers registered in main.
"""
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from .calendar_utils import TIME_PATTERN
from .config import DEFAULT_BOOKING_DURATION, get_base_url_from_request
from .db import get_db
from .notifications import Notifier
from . import availability, bookings, reviews
from .logging_config import get_logger

logger = get_logger("booking_routes")

router = APIRouter()


def get_notifier(request: Request) -> Notifier:
    """Notifier whose links point at the host the request came in on."""
    return Notifier(base_url=get_base_url_from_request(request))


class CreateBookingRequest(BaseModel):
    customer_id: int
    technician_id: int
    scheduled_date: date
    scheduled_time: str = Field(pattern=TIME_PATTERN)
    service_type: str
    address: str
    city: str
    phone: str
    description: Optional[str] = None
    estimated_duration: int = Field(default=DEFAULT_BOOKING_DURATION, gt=0)


class TechnicianActionRequest(BaseModel):
    technician_user_id: int


class CompleteBookingRequest(TechnicianActionRequest):
    total_price: Optional[float] = Field(default=None, ge=0)


class CancelBookingRequest(BaseModel):
    cancelled_by: str
    user_id: Optional[int] = None
    reason: Optional[str] = None


class ReviewRequest(BaseModel):
    author_id: int
    rating: int = Field(ge=1, le=5)
    comment: Optional[str] = None


class SlotRequest(BaseModel):
    day_of_week: int = Field(ge=0, le=6)
    start_time: str = Field(pattern=TIME_PATTERN)
    end_time: str = Field(pattern=TIME_PATTERN)
    is_available: bool = True


class AvailabilityRequest(BaseModel):
    slots: List[SlotRequest]


class TimeOffRequest(BaseModel):
    start_date: date
    end_date: date
    reason: Optional[str] = None


def _slot(slot) -> dict:
    return {
        "id": slot.id,
        "day_of_week": slot.day_of_week,
        "start_time": slot.start_time,
        "end_time": slot.end_time,
        "is_available": slot.is_available,
        "is_recurring": slot.is_recurring,
    }


def _time_off(time_off) -> dict:
    return {
        "id": time_off.id,
        "start_date": time_off.start_date,
        "end_date": time_off.end_date,
        "reason": time_off.reason,
    }


# ---------------------------------------------------------------------------
# Bookings
# ---------------------------------------------------------------------------

@router.post("", status_code=201)
def create_booking(
    body: CreateBookingRequest,
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    booking = bookings.create_booking(db, notifier=notifier, **body.model_dump())
    return bookings.booking_payload(booking)


@router.get("")
def list_bookings(
    status: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
):
    """Admin listing across all customers and technicians."""
    found, total = bookings.get_all_bookings(db, status, start_date, end_date, limit, offset)
    return {"bookings": [bookings.booking_payload(b) for b in found], "total": total}


@router.get("/customer/{customer_id}")
def customer_bookings(
    customer_id: int,
    status: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: Session = Depends(get_db),
):
    found = bookings.get_customer_bookings(db, customer_id, status, start_date, end_date)
    return [bookings.booking_payload(b) for b in found]


@router.get("/technician/{technician_id}")
def technician_bookings(
    technician_id: int,
    status: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: Session = Depends(get_db),
):
    found = bookings.get_technician_bookings(db, technician_id, status, start_date, end_date)
    return [bookings.booking_payload(b) for b in found]


@router.get("/{booking_id}")
def get_booking(booking_id: int, db: Session = Depends(get_db)):
    booking = bookings.get_booking_by_id(db, booking_id)
    if booking is None:
        raise HTTPException(status_code=404, detail=f"Booking {booking_id} not found")
    return bookings.booking_payload(booking)


@router.post("/{booking_id}/confirm")
def confirm_booking(
    booking_id: int,
    body: TechnicianActionRequest,
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    booking = bookings.confirm_booking(db, booking_id, body.technician_user_id, notifier=notifier)
    return bookings.booking_payload(booking)


@router.post("/{booking_id}/start")
def start_booking(booking_id: int, body: TechnicianActionRequest, db: Session = Depends(get_db)):
    booking = bookings.start_booking(db, booking_id, body.technician_user_id)
    return bookings.booking_payload(booking)


@router.post("/{booking_id}/complete")
def complete_booking(
    booking_id: int,
    body: CompleteBookingRequest,
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    booking = bookings.complete_booking(
        db, booking_id, body.technician_user_id, total_price=body.total_price, notifier=notifier
    )
    return bookings.booking_payload(booking)


@router.post("/{booking_id}/cancel")
def cancel_booking(
    booking_id: int,
    body: CancelBookingRequest,
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    booking = bookings.cancel_booking(
        db, booking_id, body.cancelled_by, body.user_id, reason=body.reason, notifier=notifier
    )
    return bookings.booking_payload(booking)


@router.post("/{booking_id}/review", status_code=201)
def review_booking(booking_id: int, body: ReviewRequest, db: Session = Depends(get_db)):
    review = reviews.submit_review(db, body.author_id, booking_id, body.rating, body.comment)
    return {
        "id": review.id,
        "booking_id": review.booking_id,
        "technician_id": review.technician_id,
        "rating": review.rating,
        "comment": review.comment,
        "created_at": review.created_at,
    }


# ---------------------------------------------------------------------------
# Technician availability
# ---------------------------------------------------------------------------

@router.get("/technicians/{technician_id}/availability")
def get_availability(technician_id: int, db: Session = Depends(get_db)):
    return [_slot(s) for s in availability.get_technician_availability(db, technician_id)]


@router.put("/technicians/{technician_id}/availability")
def set_availability(technician_id: int, body: AvailabilityRequest, db: Session = Depends(get_db)):
    created = availability.set_availability(db, technician_id, [s.model_dump() for s in body.slots])
    return [_slot(s) for s in created]


@router.get("/technicians/{technician_id}/slots")
def available_slots(technician_id: int, day: date, db: Session = Depends(get_db)):
    return {
        "technician_id": technician_id,
        "date": day,
        "slots": availability.get_available_slots(db, technician_id, day),
    }


@router.get("/technicians/{technician_id}/time-off")
def list_time_off(technician_id: int, db: Session = Depends(get_db)):
    return [_time_off(t) for t in availability.get_technician_time_offs(db, technician_id)]


@router.post("/technicians/{technician_id}/time-off", status_code=201)
def add_time_off(technician_id: int, body: TimeOffRequest, db: Session = Depends(get_db)):
    time_off = availability.add_time_off(db, technician_id, body.start_date, body.end_date, body.reason)
    return _time_off(time_off)


@router.delete("/technicians/{technician_id}/time-off/{time_off_id}", status_code=204)
def remove_time_off(technician_id: int, time_off_id: int, db: Session = Depends(get_db)):
    availability.remove_time_off(db, time_off_id, technician_id)
