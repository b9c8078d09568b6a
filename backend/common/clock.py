"""BusinessClock — day and week boundaries in the single business timezone.

Every "today" / "this week" decision in the portal goes through here so
that a request from any caller locale sees the same business day.
Instants are persisted in UTC; naive datetimes coming back from storage
are treated as UTC.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from backend.common.constants import TIMEZONE

BUSINESS_TZ = ZoneInfo(TIMEZONE)


class BusinessClock:
    """Stateless helpers anchored to ``TIMEZONE``."""

    @staticmethod
    def now() -> datetime:
        return datetime.now(timezone.utc)

    @staticmethod
    def ensure_aware(instant: datetime) -> datetime:
        if instant.tzinfo is None:
            return instant.replace(tzinfo=timezone.utc)
        return instant

    @staticmethod
    def to_utc(instant: datetime) -> datetime:
        return BusinessClock.ensure_aware(instant).astimezone(timezone.utc)

    @staticmethod
    def to_local(instant: datetime) -> datetime:
        return BusinessClock.ensure_aware(instant).astimezone(BUSINESS_TZ)

    @staticmethod
    def business_date(instant: Optional[datetime] = None) -> date:
        """Calendar date of *instant* as observed in the business timezone."""
        return BusinessClock.to_local(instant or BusinessClock.now()).date()

    @staticmethod
    def start_of_day(instant: datetime) -> datetime:
        """00:00 local of the business day containing *instant*."""
        day = BusinessClock.business_date(instant)
        return datetime.combine(day, time.min, tzinfo=BUSINESS_TZ)

    @staticmethod
    def end_of_day(instant: datetime) -> datetime:
        """Last microsecond of the business day containing *instant*."""
        day = BusinessClock.business_date(instant)
        return datetime.combine(day, time.max, tzinfo=BUSINESS_TZ)

    @staticmethod
    def start_of_week(instant: datetime) -> datetime:
        """00:00 local of the Monday of the ISO week containing *instant*."""
        day = BusinessClock.business_date(instant)
        monday = day - timedelta(days=day.weekday())
        return datetime.combine(monday, time.min, tzinfo=BUSINESS_TZ)

    @staticmethod
    def is_weekend(instant: datetime) -> bool:
        return BusinessClock.business_date(instant).weekday() >= 5

    # ── date-only helpers ───────────────────────────────────────────

    @staticmethod
    def week_bounds(day: date) -> tuple[date, date]:
        """(Monday, Sunday) of the ISO week containing *day*."""
        monday = day - timedelta(days=day.weekday())
        return monday, monday + timedelta(days=6)

    @staticmethod
    def day_bounds_utc(day: date) -> tuple[datetime, datetime]:
        """UTC instants of the start and end of a business date."""
        start = datetime.combine(day, time.min, tzinfo=BUSINESS_TZ)
        end = datetime.combine(day, time.max, tzinfo=BUSINESS_TZ)
        return start.astimezone(timezone.utc), end.astimezone(timezone.utc)

    @staticmethod
    def days_in_span(start: date, end: date) -> list[date]:
        """Every calendar date from *start* to *end*, inclusive."""
        days: list[date] = []
        current = start
        while current <= end:
            days.append(current)
            current += timedelta(days=1)
        return days

    @staticmethod
    def hours_between(start: datetime, end: datetime) -> float:
        """Elapsed hours, rounded to 2 dp and floored at 0."""
        seconds = (
            BusinessClock.ensure_aware(end) - BusinessClock.ensure_aware(start)
        ).total_seconds()
        hours = round(seconds / 3600, 2)
        if hours != hours or hours < 0:  # NaN or clock skew
            return 0.0
        return hours
