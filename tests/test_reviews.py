"""Tests for servicehub.reviews."""
import pytest

from servicehub import bookings
from servicehub.errors import InvalidTransition, NotFound, Unauthorized
from servicehub.models import PointTransaction, Technician
from servicehub.reviews import submit_review
from servicehub.calendar_utils import scheduled_datetime
from conftest import MONDAY, BOOKED_AT


@pytest.fixture
def complete(db, technician):
    def _complete(booking):
        bookings.confirm_booking(db, booking.id, technician.user_id, now=BOOKED_AT)
        bookings.complete_booking(db, booking.id, technician.user_id,
                                  now=scheduled_datetime(MONDAY, booking.scheduled_time))
        return booking

    return _complete


def sources(db, user_id):
    return [t.source for t in db.query(PointTransaction).filter(PointTransaction.user_id == user_id)]


class TestSubmitReview:
    def test_five_star_review(self, db, customer, technician, make_booking, complete):
        booking = complete(make_booking(customer, technician))
        review = submit_review(db, customer.id, booking.id, 5, "Excelente servicio")

        assert review.rating == 5
        assert review.technician_id == technician.id
        assert "REVIEW_SUBMITTED" in sources(db, customer.id)
        assert "FIVE_STAR_REVIEW" in sources(db, technician.user_id)

    def test_lower_rating_no_technician_bonus(self, db, customer, technician, make_booking, complete):
        booking = complete(make_booking(customer, technician))
        submit_review(db, customer.id, booking.id, 4)
        assert "FIVE_STAR_REVIEW" not in sources(db, technician.user_id)

    def test_running_average(self, db, customer, technician, make_booking, complete):
        first = complete(make_booking(customer, technician, time="09:00"))
        second = complete(make_booking(customer, technician, time="10:00"))
        submit_review(db, customer.id, first.id, 5)
        submit_review(db, customer.id, second.id, 2)

        refreshed = db.get(Technician, technician.id)
        assert refreshed.total_reviews == 2
        assert refreshed.rating == 3.5

    def test_first_review_achievement(self, db, customer, technician, make_booking, complete):
        booking = complete(make_booking(customer, technician))
        submit_review(db, customer.id, booking.id, 3)
        descriptions = [t.description for t in db.query(PointTransaction).filter(
            PointTransaction.user_id == customer.id)]
        assert "Logro desbloqueado: Voz Escuchada" in descriptions

    def test_only_once(self, db, customer, technician, make_booking, complete):
        booking = complete(make_booking(customer, technician))
        submit_review(db, customer.id, booking.id, 5)
        with pytest.raises(InvalidTransition):
            submit_review(db, customer.id, booking.id, 4)

    def test_booking_must_be_completed(self, db, customer, technician, make_booking):
        booking = make_booking(customer, technician)
        with pytest.raises(InvalidTransition):
            submit_review(db, customer.id, booking.id, 5)

    def test_only_customer_reviews(self, db, customer, make_user, technician, make_booking, complete):
        booking = complete(make_booking(customer, technician))
        with pytest.raises(Unauthorized):
            submit_review(db, make_user().id, booking.id, 5)

    @pytest.mark.parametrize("rating", [0, 6])
    def test_rating_range(self, db, customer, rating):
        with pytest.raises(ValueError):
            submit_review(db, customer.id, 1, rating)

    def test_missing_booking(self, db, customer):
        with pytest.raises(NotFound):
            submit_review(db, customer.id, 999, 5)
