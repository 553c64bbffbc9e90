"""Re-bucket a monthly series into display periods.

Day, week and month periods read the monthly key equal to the period start,
so day and week views only show a value on the first day of a month.
Quarter and year periods sum the months of the calendar bucket containing
their start, skipping missing months, and are None only when every month
in the bucket is None.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import date

from aumos_reporting_metrics.core.periods import Granularity, Period, add_months, bucket_start

_MONTHS_PER_BUCKET: dict[Granularity, int] = {
    Granularity.QUARTER: 3,
    Granularity.YEAR: 12,
}


def sum_present(values: Sequence[float | None]) -> float | None:
    """Sum the non-None values; None when none are present."""
    present = [value for value in values if value is not None]
    if not present:
        return None
    return sum(present)


def aggregate_period(series: Mapping[date, float | None], period: Period) -> float | None:
    """Value of one display period from a monthly series."""
    months = _MONTHS_PER_BUCKET.get(period.granularity)
    if months is None:
        return series.get(period.start)

    first_month = bucket_start(period.start, period.granularity)
    return sum_present([series.get(add_months(first_month, offset)) for offset in range(months)])


def aggregate_series(
    series: Mapping[date, float | None],
    periods: Sequence[Period],
) -> list[tuple[Period, float | None]]:
    """Aggregate a monthly series over each period, preserving period order."""
    return [(period, aggregate_period(series, period)) for period in periods]
