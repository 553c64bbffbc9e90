"""Tests for re-bucketing monthly series into display periods."""

from datetime import date

from aumos_reporting_metrics.core.aggregation import aggregate_period, aggregate_series, sum_present
from aumos_reporting_metrics.core.periods import Granularity, Period, generate_periods, period_for

SERIES = {
    date(2025, 1, 1): 10.0,
    date(2025, 2, 1): None,
    date(2025, 3, 1): 5.0,
    date(2025, 9, 1): 2.0,
}


class TestAggregatePeriod:
    """Tests for aggregate_period."""

    def test_quarter_sums_present_months(self) -> None:
        assert aggregate_period(SERIES, period_for(date(2025, 2, 14), Granularity.QUARTER)) == 15.0

    def test_quarter_with_no_values_is_none(self) -> None:
        assert aggregate_period(SERIES, period_for(date(2025, 5, 1), Granularity.QUARTER)) is None

    def test_quarter_with_only_empty_rows_is_none(self) -> None:
        series = {date(2025, 4, 1): None, date(2025, 5, 1): None, date(2025, 6, 1): None}

        assert aggregate_period(series, period_for(date(2025, 4, 1), Granularity.QUARTER)) is None

    def test_quarter_starting_mid_bucket_sums_its_calendar_quarter(self) -> None:
        """A caller-built quarter starting in February still covers Jan to Mar."""
        period = Period(start=date(2025, 2, 1), end=date(2025, 4, 30), granularity=Granularity.QUARTER)

        assert aggregate_period({date(2025, 1, 1): 10.0, date(2025, 2, 1): 1.0, date(2025, 4, 1): 7.0}, period) == 11.0

    def test_year_starting_mid_year_sums_its_calendar_year(self) -> None:
        period = Period(start=date(2025, 7, 1), end=date(2026, 6, 30), granularity=Granularity.YEAR)

        assert aggregate_period({date(2025, 1, 1): 4.0, date(2026, 1, 1): 9.0}, period) == 4.0

    def test_year_sums_all_twelve_months(self) -> None:
        assert aggregate_period(SERIES, period_for(date(2025, 7, 1), Granularity.YEAR)) == 17.0

    def test_month_reads_its_own_key(self) -> None:
        assert aggregate_period(SERIES, period_for(date(2025, 3, 20), Granularity.MONTH)) == 5.0
        assert aggregate_period(SERIES, period_for(date(2025, 2, 20), Granularity.MONTH)) is None

    def test_day_only_shows_value_on_first_of_month(self) -> None:
        assert aggregate_period(SERIES, period_for(date(2025, 3, 1), Granularity.DAY)) == 5.0
        assert aggregate_period(SERIES, period_for(date(2025, 3, 2), Granularity.DAY)) is None

    def test_week_starting_on_first_of_month_shows_value(self) -> None:
        """2025-09-01 is a Monday, so that week starts on a monthly key."""
        assert aggregate_period(SERIES, period_for(date(2025, 9, 3), Granularity.WEEK)) == 2.0
        assert aggregate_period(SERIES, period_for(date(2025, 9, 10), Granularity.WEEK)) is None


class TestAggregateSeries:
    """Tests for aggregate_series."""

    def test_preserves_period_order(self) -> None:
        periods = generate_periods(date(2025, 1, 1), date(2025, 12, 31), Granularity.QUARTER)

        result = aggregate_series(SERIES, periods)

        assert [value for _, value in result] == [15.0, None, 2.0, None]
        assert [period for period, _ in result] == periods

    def test_sum_present(self) -> None:
        assert sum_present([5.0, None, 3.0]) == 8.0
        assert sum_present([None, None]) is None
        assert sum_present([0.0, None]) == 0.0
