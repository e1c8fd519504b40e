"""
Wall-clock and calendar-date helpers.

Times are local "HH:MM" strings, dates are "YYYY-MM-DD" strings with no
timezone. Dates are parsed into datetime.date so day/week/month offsets
never shift across a UTC boundary.
"""
from datetime import date, timedelta


def parse_time(value: str) -> tuple[int, int]:
    """Parse HH:MM into (hour, minute). Raises ValueError on malformed input."""
    try:
        hh, mm = value.split(":")
        hour, minute = int(hh), int(mm)
    except (ValueError, AttributeError):
        raise ValueError(f"Invalid time '{value}', expected HH:MM")
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"Invalid time '{value}', expected HH:MM")
    return hour, minute


def to_minutes(value: str) -> int:
    hour, minute = parse_time(value)
    return hour * 60 + minute


def from_minutes(minutes: int) -> str:
    """Format minutes from midnight as HH:MM, wrapping past midnight."""
    hour = (minutes // 60) % 24
    minute = minutes % 60
    return f"{hour:02d}:{minute:02d}"


def parse_date(value) -> date:
    """Accept a date or a YYYY-MM-DD string and return a date-only value."""
    if isinstance(value, date):
        return date(value.year, value.month, value.day)
    try:
        year, month, day = map(int, value.split("-"))
        return date(year, month, day)
    except (ValueError, AttributeError, TypeError):
        raise ValueError(f"Invalid date '{value}', expected YYYY-MM-DD")


def format_date(value: date) -> str:
    return value.strftime("%Y-%m-%d")


def add_days(value: str, delta: int) -> str:
    return format_date(parse_date(value) + timedelta(days=delta))
