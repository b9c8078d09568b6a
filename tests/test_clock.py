"""BusinessClock tests — business dates, weeks and hour arithmetic in
America/New_York regardless of the instant's original timezone."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

from backend.common.clock import BUSINESS_TZ, BusinessClock


def test_business_date_uses_new_york_not_utc():
    """03:00 UTC on the 20th is still the 19th in New York."""
    instant = datetime(2026, 10, 20, 3, 0, tzinfo=timezone.utc)
    assert instant.date() == date(2026, 10, 20)
    assert BusinessClock.business_date(instant) == date(2026, 10, 19)


def test_business_date_ignores_caller_offset():
    """The same instant expressed in IST maps to the same business date."""
    ist = timezone(timedelta(hours=5, minutes=30))
    utc_instant = datetime(2026, 10, 20, 13, 0, tzinfo=timezone.utc)
    assert BusinessClock.business_date(utc_instant.astimezone(ist)) == date(2026, 10, 20)


def test_naive_datetimes_are_treated_as_utc():
    naive = datetime(2026, 10, 20, 3, 0)
    assert BusinessClock.to_utc(naive).tzinfo is timezone.utc
    assert BusinessClock.business_date(naive) == date(2026, 10, 19)


def test_is_weekend():
    assert BusinessClock.is_weekend(datetime(2026, 10, 24, 15, 0, tzinfo=timezone.utc))  # Sat
    assert BusinessClock.is_weekend(datetime(2026, 10, 25, 15, 0, tzinfo=timezone.utc))  # Sun
    assert not BusinessClock.is_weekend(datetime(2026, 10, 23, 15, 0, tzinfo=timezone.utc))


def test_weekend_boundary_follows_business_timezone():
    """Saturday 02:00 UTC is still Friday evening in New York."""
    assert not BusinessClock.is_weekend(datetime(2026, 10, 24, 2, 0, tzinfo=timezone.utc))


def test_week_bounds_monday_to_sunday():
    assert BusinessClock.week_bounds(date(2026, 10, 22)) == (date(2026, 10, 19), date(2026, 10, 25))
    assert BusinessClock.week_bounds(date(2026, 10, 19)) == (date(2026, 10, 19), date(2026, 10, 25))
    assert BusinessClock.week_bounds(date(2026, 10, 25)) == (date(2026, 10, 19), date(2026, 10, 25))


def test_start_and_end_of_day_are_local():
    instant = datetime(2026, 10, 20, 13, 0, tzinfo=timezone.utc)
    start = BusinessClock.start_of_day(instant)
    end = BusinessClock.end_of_day(instant)
    assert start.tzinfo == BUSINESS_TZ
    assert (start.hour, start.minute) == (0, 0)
    assert end.date() == start.date() == date(2026, 10, 20)


def test_start_of_week_is_monday_midnight():
    start = BusinessClock.start_of_week(datetime(2026, 10, 22, 18, 0, tzinfo=timezone.utc))
    assert start.date() == date(2026, 10, 19)
    assert start.hour == 0


def test_day_bounds_cover_dst_change():
    """1 Nov 2026 has 25 hours in New York."""
    start, end = BusinessClock.day_bounds_utc(date(2026, 11, 1))
    assert round((end - start).total_seconds() / 3600) == 25


def test_days_in_span_is_inclusive():
    days = BusinessClock.days_in_span(date(2026, 10, 19), date(2026, 10, 21))
    assert days == [date(2026, 10, 19), date(2026, 10, 20), date(2026, 10, 21)]
    assert BusinessClock.days_in_span(date(2026, 10, 21), date(2026, 10, 19)) == []


def test_hours_between_rounds_and_floors():
    start = datetime(2026, 10, 20, 13, 0, tzinfo=timezone.utc)
    assert BusinessClock.hours_between(start, start + timedelta(hours=8, minutes=30)) == 8.5
    assert BusinessClock.hours_between(start, start + timedelta(minutes=20)) == 0.33
    assert BusinessClock.hours_between(start, start - timedelta(hours=1)) == 0.0


def test_hours_between_mixes_naive_and_aware():
    aware = datetime(2026, 10, 20, 13, 0, tzinfo=timezone.utc)
    naive = datetime(2026, 10, 20, 21, 0)
    assert BusinessClock.hours_between(aware, naive) == 8.0
