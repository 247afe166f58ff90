"""Tests for servicehub.availability: default schedule, configured windows, time off."""
from datetime import date, timedelta

import pytest

from servicehub.availability import (
    check_availability, get_available_slots, set_availability,
    get_technician_availability, add_time_off, remove_time_off, get_technician_time_offs,
)
from servicehub.errors import NotFound, Unauthorized
from servicehub.bookings import cancel_booking
from conftest import SUNDAY, MONDAY, TUESDAY

DEFAULT_DAY_SLOTS = [f"{h:02d}:00" for h in range(8, 18)]


class TestDefaultSchedule:
    """Technicians without any availability rows work Mon-Sat 08:00-18:00."""

    @pytest.mark.parametrize("offset", range(7))
    @pytest.mark.parametrize("time, in_hours", [
        ("07:59", False), ("08:00", True), ("12:30", True), ("17:59", True), ("18:00", False),
    ])
    def test_check_availability(self, db, technician, offset, time, in_hours):
        day = SUNDAY + timedelta(days=offset)
        expected = in_hours and day != SUNDAY
        assert check_availability(db, technician.id, day, time) is expected

    def test_weekday_slots(self, db, technician):
        assert get_available_slots(db, technician.id, MONDAY) == DEFAULT_DAY_SLOTS

    def test_sunday_closed(self, db, technician):
        assert get_available_slots(db, technician.id, SUNDAY) == []


class TestConfiguredSchedule:
    def test_day_without_rows_is_closed(self, db, make_technician):
        """Any configured row disables the implicit default for every day."""
        technician = make_technician(slots=[(1, "08:00", "12:00")])
        assert check_availability(db, technician.id, TUESDAY, "10:00") is False
        assert get_available_slots(db, technician.id, TUESDAY) == []

    @pytest.mark.parametrize("time, expected", [
        ("07:00", False), ("08:00", True), ("12:00", True), ("12:01", False),
    ])
    def test_window_bounds_inclusive(self, db, make_technician, time, expected):
        technician = make_technician(slots=[(1, "08:00", "12:00")])
        assert check_availability(db, technician.id, MONDAY, time) is expected

    def test_slots_follow_window_start_order(self, db, make_technician):
        technician = make_technician(slots=[(1, "14:00", "16:00"), (1, "08:00", "10:00")])
        assert get_available_slots(db, technician.id, MONDAY) == ["08:00", "09:00", "14:00", "15:00"]

    def test_unavailable_window_ignored(self, db, technician):
        set_availability(db, technician.id, [
            {"day_of_week": 1, "start_time": "08:00", "end_time": "10:00", "is_available": False},
            {"day_of_week": 1, "start_time": "13:00", "end_time": "14:00"},
        ])
        assert get_available_slots(db, technician.id, MONDAY) == ["13:00"]
        assert check_availability(db, technician.id, MONDAY, "09:00") is False


class TestBookedSlots:
    def test_booked_time_excluded(self, db, customer, technician, make_booking):
        make_booking(customer, technician, time="10:00")
        assert "10:00" not in get_available_slots(db, technician.id, MONDAY)
        assert check_availability(db, technician.id, MONDAY, "10:00") is False
        assert check_availability(db, technician.id, MONDAY, "11:00") is True

    def test_cancelled_booking_frees_slot(self, db, customer, technician, make_booking):
        booking = make_booking(customer, technician, time="10:00")
        cancel_booking(db, booking.id, "customer", customer.id)
        assert "10:00" in get_available_slots(db, technician.id, MONDAY)
        assert check_availability(db, technician.id, MONDAY, "10:00") is True


class TestTimeOff:
    def test_time_off_blocks_day(self, db, technician):
        add_time_off(db, technician.id, MONDAY, TUESDAY, "Vacaciones")
        assert get_available_slots(db, technician.id, MONDAY) == []
        assert get_available_slots(db, technician.id, TUESDAY) == []
        assert check_availability(db, technician.id, TUESDAY, "10:00") is False
        assert check_availability(db, technician.id, TUESDAY + timedelta(days=1), "10:00") is True

    def test_end_before_start_rejected(self, db, technician):
        with pytest.raises(ValueError):
            add_time_off(db, technician.id, TUESDAY, MONDAY)

    def test_remove_requires_owner(self, db, technician, make_technician):
        other = make_technician()
        time_off = add_time_off(db, technician.id, MONDAY, MONDAY)
        with pytest.raises(Unauthorized):
            remove_time_off(db, time_off.id, other.id)
        remove_time_off(db, time_off.id, technician.id)
        assert get_technician_time_offs(db, technician.id, today=SUNDAY) == []

    def test_remove_unknown_is_not_found(self, db, technician):
        with pytest.raises(NotFound):
            remove_time_off(db, 999, technician.id)

    def test_lists_current_and_upcoming(self, db, technician):
        add_time_off(db, technician.id, date(2025, 5, 1), date(2025, 5, 2))
        upcoming = add_time_off(db, technician.id, TUESDAY, TUESDAY)
        current = add_time_off(db, technician.id, SUNDAY, MONDAY)
        found = get_technician_time_offs(db, technician.id, today=MONDAY)
        assert [t.id for t in found] == [current.id, upcoming.id]


class TestSetAvailability:
    def test_replaces_schedule(self, db, make_technician):
        technician = make_technician(slots=[(1, "08:00", "12:00"), (2, "08:00", "12:00")])
        set_availability(db, technician.id, [{"day_of_week": 3, "start_time": "09:00", "end_time": "11:00"}])
        rows = get_technician_availability(db, technician.id)
        assert [(r.day_of_week, r.start_time, r.end_time) for r in rows] == [(3, "09:00", "11:00")]

    @pytest.mark.parametrize("slot", [
        {"day_of_week": 7, "start_time": "08:00", "end_time": "10:00"},
        {"day_of_week": 1, "start_time": "10:00", "end_time": "10:00"},
        {"day_of_week": 1, "start_time": "10:00", "end_time": "9:99"},
        {"day_of_week": 1, "start_time": "8:00", "end_time": "17:00"},
    ])
    def test_invalid_slot_rejected(self, db, technician, slot):
        with pytest.raises(ValueError):
            set_availability(db, technician.id, [slot])

    def test_unknown_technician(self, db):
        with pytest.raises(NotFound):
            set_availability(db, 999, [])

    def test_unpadded_time_keeps_previous_schedule(self, db, make_technician):
        technician = make_technician(slots=[(1, "09:00", "12:00")])
        with pytest.raises(ValueError):
            set_availability(db, technician.id, [{"day_of_week": 1, "start_time": "8:00", "end_time": "17:00"}])
        rows = get_technician_availability(db, technician.id)
        assert [(r.start_time, r.end_time) for r in rows] == [("09:00", "12:00")]

    def test_listed_slots_are_bookable(self, db, technician):
        set_availability(db, technician.id, [{"day_of_week": 1, "start_time": "08:00", "end_time": "17:00"}])
        slots = get_available_slots(db, technician.id, MONDAY)
        assert slots[0] == "08:00"
        assert all(check_availability(db, technician.id, MONDAY, slot) for slot in slots)
