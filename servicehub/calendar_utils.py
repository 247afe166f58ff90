"""Date and time helpers shared by availability, bookings and leaderboards.

Times of day are "HH:MM" wall-clock strings without timezone. Day-of-week
numbering starts at 0 = Sunday.
"""
import re
from datetime import date, datetime, time, timedelta
from typing import List, Optional, Tuple

_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"

TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


def now_local(now: Optional[datetime] = None) -> datetime:
    return now if now is not None else datetime.now()


def day_of_week(day: date) -> int:
    """0 = Sunday ... 6 = Saturday."""
    return (day.weekday() + 1) % 7


def parse_time(value: str) -> Tuple[int, int]:
    """Split zero-padded "HH:MM" into (hour, minute). Raises ValueError on anything else.

    Stored times are compared as strings, so "8:00" is rejected rather than
    accepted in a form that sorts after "10:00".
    """
    if not isinstance(value, str) or not re.fullmatch(TIME_PATTERN, value):
        raise ValueError(f"Invalid time {value!r}, expected HH:MM")
    hours, minutes = value.split(":")
    return int(hours), int(minutes)


def format_hour(hour: int) -> str:
    return f"{hour:02d}:00"


def hourly_slots(start_time: str, end_time: str) -> List[str]:
    """Whole-hour start times in [start hour, end hour). Minutes are ignored."""
    start_hour = parse_time(start_time)[0]
    end_hour = parse_time(end_time)[0]
    return [format_hour(hour) for hour in range(start_hour, end_hour)]


def scheduled_datetime(day: date, at: str) -> datetime:
    hour, minute = parse_time(at)
    return datetime.combine(day, time(hour, minute))


def week_start(now: Optional[datetime] = None) -> datetime:
    """Most recent Sunday at 00:00 (today if today is Sunday)."""
    current = now_local(now)
    sunday = current.date() - timedelta(days=day_of_week(current.date()))
    return datetime.combine(sunday, time.min)


def month_start(now: Optional[datetime] = None) -> datetime:
    current = now_local(now)
    return datetime(current.year, current.month, 1)


def encode_timestamp(moment: Optional[datetime] = None) -> str:
    """Epoch milliseconds in upper-case base 36."""
    millis = int(now_local(moment).timestamp() * 1000)
    if millis <= 0:
        return "0"
    digits = []
    while millis:
        millis, remainder = divmod(millis, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))
