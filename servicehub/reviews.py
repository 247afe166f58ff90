from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .errors import NotFound, Unauthorized, InvalidTransition
from .models import Booking, BookingStatus, Review, Technician
from .bookings import emit_event
from .logging_config import get_logger

logger = get_logger("reviews")


def submit_review(
    db: Session,
    author_id: int,
    booking_id: int,
    rating: int,
    comment: Optional[str] = None,
) -> Review:
    """
    Review a completed booking and refresh the technician's cached rating.

    Awards REVIEW_SUBMITTED to the author and, for a 5-star review,
    FIVE_STAR_REVIEW to the technician.
    """
    if not 1 <= rating <= 5:
        raise ValueError(f"rating must be between 1 and 5, got {rating}")

    booking = db.get(Booking, booking_id)
    if booking is None:
        raise NotFound(f"Booking {booking_id} not found")
    if booking.customer_id != author_id:
        raise Unauthorized("Only the booking's customer can review it")
    if booking.status != BookingStatus.COMPLETED:
        raise InvalidTransition("Only completed bookings can be reviewed")
    if booking.review is not None:
        raise InvalidTransition(f"Booking {booking_id} has already been reviewed")

    technician = (
        db.query(Technician)
        .filter(Technician.id == booking.technician_id)
        .with_for_update()
        .one()
    )
    review = Review(
        booking_id=booking_id,
        author_id=author_id,
        technician_id=technician.id,
        rating=rating,
        comment=comment,
    )
    db.add(review)

    count = technician.total_reviews or 0
    technician.rating = round(((technician.rating or 0.0) * count + rating) / (count + 1), 2)
    technician.total_reviews = count + 1

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise InvalidTransition(f"Booking {booking_id} has already been reviewed") from None

    logger.info(
        f"{rating}-star review for technician {technician.id}",
        extra={"booking_id": booking_id, "user_id": author_id},
    )

    emit_event(db, author_id, "REVIEW_SUBMITTED", booking_id)
    if rating == 5:
        emit_event(db, technician.user_id, "FIVE_STAR_REVIEW", booking_id)

    db.refresh(review)
    return review
