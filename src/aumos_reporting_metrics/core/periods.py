"""Calendar periods, display granularities, and date-range presets.

Metric values are stored per calendar month, keyed by the first day of the
month. Display periods are generated on demand at any granularity; weeks
start on Monday. Everything here is a pure function of its arguments.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum


class Granularity(str, Enum):
    """Bucket size used to display a metric series."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"


# ---------------------------------------------------------------------------
# Month helpers
# ---------------------------------------------------------------------------


def month_start(value: date) -> date:
    """Return the canonical monthly key (first of the month) for a date."""
    return value.replace(day=1)


def add_months(value: date, months: int) -> date:
    """Shift a date's month by ``months`` and return the first of that month."""
    index = value.year * 12 + (value.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def months_between(first: date, last: date) -> int:
    """Number of whole months from ``first``'s month to ``last``'s month."""
    return (last.year - first.year) * 12 + (last.month - first.month)


def month_range(first: date, last: date) -> list[date]:
    """Dense, ordered monthly keys from ``first``'s month to ``last``'s month inclusive."""
    start = month_start(first)
    return [add_months(start, offset) for offset in range(months_between(start, last) + 1)]


# ---------------------------------------------------------------------------
# Periods
# ---------------------------------------------------------------------------


def bucket_start(value: date, granularity: Granularity) -> date:
    """Return the first day of the calendar bucket containing ``value``."""
    if granularity is Granularity.DAY:
        return value
    if granularity is Granularity.WEEK:
        return value - timedelta(days=value.weekday())
    if granularity is Granularity.MONTH:
        return month_start(value)
    if granularity is Granularity.QUARTER:
        return date(value.year, 3 * ((value.month - 1) // 3) + 1, 1)
    return date(value.year, 1, 1)


def _next_bucket(start: date, granularity: Granularity) -> date:
    if granularity is Granularity.DAY:
        return start + timedelta(days=1)
    if granularity is Granularity.WEEK:
        return start + timedelta(days=7)
    if granularity is Granularity.MONTH:
        return add_months(start, 1)
    if granularity is Granularity.QUARTER:
        return add_months(start, 3)
    return date(start.year + 1, 1, 1)


@dataclass(frozen=True)
class Period:
    """A calendar bucket identified by its start date and granularity.

    Attributes:
        start: First day of the bucket.
        end: Last day of the bucket (inclusive).
        granularity: Bucket size.
    """

    start: date
    end: date
    granularity: Granularity

    @property
    def label(self) -> str:
        """Short display label, e.g. ``Mar 2025`` or ``Q1 2025``."""
        start = self.start
        if self.granularity is Granularity.DAY:
            return f"{start:%b} {start.day}, {start.year}"
        if self.granularity is Granularity.WEEK:
            iso_year, iso_week, _ = start.isocalendar()
            return f"W{iso_week} {iso_year}"
        if self.granularity is Granularity.MONTH:
            return f"{start:%b %Y}"
        if self.granularity is Granularity.QUARTER:
            return f"Q{(start.month - 1) // 3 + 1} {start.year}"
        return str(start.year)


def period_for(value: date, granularity: Granularity) -> Period:
    """Return the Period of ``granularity`` that contains ``value``."""
    start = bucket_start(value, granularity)
    return Period(start=start, end=_next_bucket(start, granularity) - timedelta(days=1), granularity=granularity)


def generate_periods(date_from: date, date_to: date, granularity: Granularity) -> list[Period]:
    """Generate the dense, ordered periods covering ``[date_from, date_to]``.

    The first period is the bucket containing ``date_from``; the last is the
    bucket containing ``date_to``.

    Raises:
        ValueError: If ``date_from`` is after ``date_to``.
    """
    if date_from > date_to:
        raise ValueError(f"date_from {date_from} is after date_to {date_to}")

    periods: list[Period] = []
    start = bucket_start(date_from, granularity)
    while start <= date_to:
        following = _next_bucket(start, granularity)
        periods.append(Period(start=start, end=following - timedelta(days=1), granularity=granularity))
        start = following
    return periods


def months_covered(periods: list[Period]) -> list[date]:
    """Monthly keys spanned by a list of periods, first to last inclusive."""
    if not periods:
        return []
    return month_range(periods[0].start, periods[-1].end)


def trailing_months(today: date, count: int) -> list[date]:
    """The ``count`` monthly keys ending with ``today``'s month, oldest first."""
    current = month_start(today)
    return [add_months(current, -offset) for offset in range(count - 1, -1, -1)]


# ---------------------------------------------------------------------------
# Date range presets
# ---------------------------------------------------------------------------


class DateRangePreset(str, Enum):
    """Named date ranges offered by the reporting date picker."""

    TODAY = "today"
    YESTERDAY = "yesterday"
    THIS_WEEK = "this-week"
    LAST_7_DAYS = "last-7-days"
    LAST_WEEK = "last-week"
    LAST_28_DAYS = "last-28-days"
    LAST_30_DAYS = "last-30-days"
    THIS_MONTH = "this-month"
    LAST_MONTH = "last-month"
    LAST_90_DAYS = "last-90-days"
    THIS_QUARTER = "this-quarter"
    THIS_YEAR = "this-year"
    LAST_CALENDAR_YEAR = "last-calendar-year"


def resolve_date_range(preset: DateRangePreset, today: date) -> tuple[date, date]:
    """Resolve a preset to an inclusive ``(from, to)`` range relative to ``today``."""
    if preset is DateRangePreset.TODAY:
        return today, today
    if preset is DateRangePreset.YESTERDAY:
        yesterday = today - timedelta(days=1)
        return yesterday, yesterday
    if preset is DateRangePreset.THIS_WEEK:
        return bucket_start(today, Granularity.WEEK), today
    if preset is DateRangePreset.LAST_7_DAYS:
        return today - timedelta(days=6), today
    if preset is DateRangePreset.LAST_WEEK:
        last_week_end = bucket_start(today, Granularity.WEEK) - timedelta(days=1)
        return bucket_start(last_week_end, Granularity.WEEK), last_week_end
    if preset is DateRangePreset.LAST_28_DAYS:
        return today - timedelta(days=27), today
    if preset is DateRangePreset.LAST_30_DAYS:
        return today - timedelta(days=29), today
    if preset is DateRangePreset.THIS_MONTH:
        return month_start(today), today
    if preset is DateRangePreset.LAST_MONTH:
        this_month = month_start(today)
        return add_months(this_month, -1), this_month - timedelta(days=1)
    if preset is DateRangePreset.LAST_90_DAYS:
        return today - timedelta(days=89), today
    if preset is DateRangePreset.THIS_QUARTER:
        return bucket_start(today, Granularity.QUARTER), today
    if preset is DateRangePreset.THIS_YEAR:
        return date(today.year, 1, 1), today
    return date(today.year - 1, 1, 1), date(today.year - 1, 12, 31)
