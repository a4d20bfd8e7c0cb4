"""Time-of-day arithmetic shared by the availability engine and the calendar.

Times are compared as decimal hours since midnight (``14:30`` is ``14.5``) and
dates are plain year/month/day values that are never shifted by a timezone.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta

from .errors import ParseError

_TIME_RE = re.compile(
    r"^\s*(?P<hour>\d{1,2}):(?P<minute>\d{2})(?::(?P<second>\d{2}))?\s*(?P<marker>[A-Za-z.]+)?\s*$"
)
_MARKERS = {"am": "AM", "a.m.": "AM", "pm": "PM", "p.m.": "PM"}

TimeLike = str | time


def parse_time(value: TimeLike) -> time:
    """Parse a 12-hour (``2:30 PM``) or 24-hour (``14:30``) label into a time."""
    if isinstance(value, datetime):
        return value.time().replace(second=0, microsecond=0)
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)
    if not isinstance(value, str):
        raise ParseError(value, "time label must be a string")

    match = _TIME_RE.match(value)
    if match is None:
        raise ParseError(value, "expected HH:MM optionally followed by AM/PM")

    hour = int(match.group("hour"))
    minute = int(match.group("minute"))
    marker_text = match.group("marker")

    if minute > 59:
        raise ParseError(value, "minute must be within 0-59")

    if marker_text is None:
        if hour > 23:
            raise ParseError(value, "hour must be within 0-23")
        return time(hour, minute)

    marker = _MARKERS.get(marker_text.lower())
    if marker is None:
        raise ParseError(value, "unrecognized am/pm marker")
    if not 1 <= hour <= 12:
        raise ParseError(value, "hour must be within 1-12 for 12-hour labels")

    if marker == "PM" and hour != 12:
        hour += 12
    if marker == "AM" and hour == 12:
        hour = 0
    return time(hour, minute)


def to_decimal_hours(value: TimeLike) -> float:
    parsed = parse_time(value)
    return parsed.hour + parsed.minute / 60


def duration(start: TimeLike, end: TimeLike) -> float:
    """Hours between two labels; zero or negative when ``end`` is not after ``start``."""
    return to_decimal_hours(end) - to_decimal_hours(start)


def parse_date(value: str | date) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError as error:
        raise ParseError(value, "expected an ISO date YYYY-MM-DD", field="date") from error


def day_index_of(value: str | date) -> int:
    """Column index of a date in a Sunday-first week (Sunday is 0)."""
    return (parse_date(value).weekday() + 1) % 7


def week_start(value: str | date) -> date:
    target = parse_date(value)
    return target - timedelta(days=day_index_of(target))


def format_12_hour(value: TimeLike) -> str:
    parsed = parse_time(value)
    marker = "PM" if parsed.hour >= 12 else "AM"
    hour = parsed.hour % 12 or 12
    return f"{hour}:{parsed.minute:02d} {marker}"


def format_24_hour(value: TimeLike) -> str:
    return parse_time(value).strftime("%H:%M")


def week_options(base_week: date, span: int = 3) -> list[dict[str, object]]:
    """Week picker choices centred on ``base_week``.

    Returns ``2 * span + 1`` entries with offsets ``-span..span`` and labels such
    as ``"November 17 - November 23, 2025"``.
    """
    anchor = week_start(base_week)
    options: list[dict[str, object]] = []
    for offset in range(-span, span + 1):
        first = anchor + timedelta(weeks=offset)
        last = first + timedelta(days=6)
        label = f"{first:%B} {first.day} - {last:%B} {last.day}, {last.year}"
        options.append({"label": label, "offset": offset, "week_start": first.isoformat()})
    return options
