"""Working-day calendar helpers.

All calendar decisions are taken on the UTC date of a timestamp. Naive
datetimes are assumed to already be UTC.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone


def to_utc_date(value: date | datetime) -> date:
    """Return the UTC calendar date of *value*."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    return value


def is_weekend(value: date | datetime) -> bool:
    # Monday is 0, Saturday 5, Sunday 6
    return to_utc_date(value).weekday() >= 5


def is_working_day(value: date | datetime) -> bool:
    return not is_weekend(value)


def working_days_between(start: date | datetime, end: date | datetime) -> int:
    """Count working days between two dates, both endpoints included.

    The argument order does not matter. For the same day the result is 1 on
    a working day and 0 on a weekend.
    """
    first = to_utc_date(start)
    last = to_utc_date(end)
    if first > last:
        first, last = last, first

    count = 0
    current = first
    while current <= last:
        if is_working_day(current):
            count += 1
        current += timedelta(days=1)
    return count


def iso_week(value: date | datetime) -> tuple[int, int]:
    """Return ``(week_year, week)`` following ISO-8601 numbering."""
    iso = to_utc_date(value).isocalendar()
    return iso[0], iso[1]


def parse_timestamp(text: str) -> datetime:
    """Parse an ISO-8601 timestamp into an aware UTC datetime.

    Accepts a trailing ``Z``, explicit offsets and date-only strings. Raises
    ``ValueError`` for anything else.
    """
    parsed = datetime.fromisoformat(text.strip().replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_date_bound(text: str, end: bool = False) -> datetime:
    """Parse a filter bound; a date-only end bound covers the whole day."""
    stripped = text.strip()
    if end and len(stripped) == 10:
        day = date.fromisoformat(stripped)
        return datetime.combine(day, time.max, tzinfo=timezone.utc)
    return parse_timestamp(stripped)
