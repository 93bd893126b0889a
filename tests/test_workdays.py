"""Tests for the working-day calendar helpers."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from release_stats.workdays import (
    is_weekend,
    is_working_day,
    iso_week,
    parse_date_bound,
    parse_timestamp,
    to_utc_date,
    working_days_between,
)


def test_weekend_detection():
    assert is_weekend(date(2023, 7, 8))  # Saturday
    assert is_weekend(date(2023, 7, 9))  # Sunday
    assert not is_weekend(date(2023, 7, 10))
    assert is_working_day(date(2023, 7, 7))


def test_weekday_uses_utc_date():
    # 23:30 on Friday at -05:00 is already Saturday in UTC
    friday_evening = datetime(2023, 7, 7, 23, 30, tzinfo=timezone(timedelta(hours=-5)))
    assert to_utc_date(friday_evening) == date(2023, 7, 8)
    assert is_weekend(friday_evening)


def test_working_days_between_inclusive():
    assert working_days_between(date(2023, 7, 3), date(2023, 7, 5)) == 3
    assert working_days_between(date(2023, 7, 5), date(2023, 7, 8)) == 3
    assert working_days_between(date(2023, 7, 8), date(2023, 7, 10)) == 1


def test_working_days_between_is_symmetric():
    assert working_days_between(date(2023, 7, 10), date(2023, 7, 3)) == 6
    assert working_days_between(date(2023, 7, 3), date(2023, 7, 10)) == 6


def test_working_days_between_same_day():
    assert working_days_between(date(2023, 7, 3), date(2023, 7, 3)) == 1
    assert working_days_between(date(2023, 7, 8), date(2023, 7, 8)) == 0


def test_iso_week_crosses_year_boundary():
    assert iso_week(date(2021, 1, 1)) == (2020, 53)
    assert iso_week(date(2024, 12, 30)) == (2025, 1)
    assert iso_week(date(2023, 7, 10)) == (2023, 28)


def test_parse_timestamp_variants():
    assert parse_timestamp("2023-07-03T12:00:00Z") == datetime(
        2023, 7, 3, 12, tzinfo=timezone.utc
    )
    assert parse_timestamp("2023-07-03T14:00:00+02:00") == datetime(
        2023, 7, 3, 12, tzinfo=timezone.utc
    )
    assert parse_timestamp("2023-07-03").tzinfo is timezone.utc


def test_parse_timestamp_rejects_garbage():
    with pytest.raises(ValueError):
        parse_timestamp("yesterday")


def test_parse_date_bound_end_covers_whole_day():
    end = parse_date_bound("2023-07-03", end=True)
    assert end.date() == date(2023, 7, 3)
    assert end > datetime(2023, 7, 3, 23, 59, 59, tzinfo=timezone.utc)
    start = parse_date_bound("2023-07-03")
    assert start == datetime(2023, 7, 3, tzinfo=timezone.utc)
