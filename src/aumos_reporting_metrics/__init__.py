"""AumOS Reporting Metrics: metric definitions, calculated metrics and time-series aggregation."""

__version__ = "0.1.0"
