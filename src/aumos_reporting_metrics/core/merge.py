"""Override merge: stored values take precedence over live-computed values.

A stored MetricValue row for (metric, month) wins whenever it exists, whether
it came from a manual edit or a sync job and even when its value is empty.
Only months without a stored row fall back to the formula result
(calculated metrics) or to None (native metrics).
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import date
from typing import Protocol

from aumos_reporting_metrics.core.periods import month_start

MonthlySeries = dict[date, float | None]


class StoredValue(Protocol):
    """The fields of a stored metric value row the merge needs."""

    metric_id: object
    period_date: date
    value: float | None


def index_stored_values(rows: Iterable[StoredValue]) -> dict[str, MonthlySeries]:
    """Group stored rows as ``{metric_id: {month: value}}``.

    Key presence records that a row exists; the value may still be None.
    """
    indexed: dict[str, MonthlySeries] = {}
    for row in rows:
        value = None if row.value is None else float(row.value)
        indexed.setdefault(str(row.metric_id), {})[month_start(row.period_date)] = value
    return indexed


def merge_overrides(
    months: Iterable[date],
    stored: Mapping[date, float | None],
    computed: Mapping[date, float | None] | None = None,
) -> MonthlySeries:
    """Merge stored rows over computed values for each month.

    Args:
        months: Monthly keys to produce.
        stored: Stored values for one metric; a present key means a row exists.
        computed: Live formula results, or None for a native metric.

    Returns:
        ``{month: value}`` for every requested month.
    """
    merged: MonthlySeries = {}
    for month in months:
        if month in stored:
            merged[month] = stored[month]
        elif computed is not None:
            merged[month] = computed.get(month)
        else:
            merged[month] = None
    return merged
