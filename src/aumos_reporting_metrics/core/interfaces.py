"""Abstract interfaces (Protocol classes) for the AumOS Reporting Metrics service.

Services depend on these interfaces, not on the SQLAlchemy repositories, so
the calculation pipeline can be exercised with in-memory test doubles.
"""

import uuid
from datetime import date
from typing import Protocol, runtime_checkable

from aumos_reporting_metrics.core.models import MetricValue, ReportingCategory, ReportingMetric, SavedChart


@runtime_checkable
class ICategoryRepository(Protocol):
    """Repository interface for reporting categories."""

    async def create(self, category: ReportingCategory) -> ReportingCategory:
        """Persist a new category."""
        ...

    async def get_for_company(self, company_id: str, category_id: uuid.UUID) -> ReportingCategory | None:
        """Retrieve a category by id within a company."""
        ...

    async def list_by_company(self, company_id: str) -> list[ReportingCategory]:
        """List all categories of a company ordered by sort_order."""
        ...


@runtime_checkable
class IMetricDefinitionRepository(Protocol):
    """Repository interface for metric definitions."""

    async def create(self, metric: ReportingMetric) -> ReportingMetric:
        """Persist a new metric definition."""
        ...

    async def get_for_company(self, company_id: str, metric_id: uuid.UUID) -> ReportingMetric | None:
        """Retrieve a metric definition by id within a company."""
        ...

    async def list_by_company(
        self,
        company_id: str,
        category_id: uuid.UUID | None = None,
    ) -> list[ReportingMetric]:
        """List metric definitions of a company, optionally for one home category."""
        ...

    async def save(self, metric: ReportingMetric) -> ReportingMetric:
        """Flush pending changes to a metric definition."""
        ...

    async def delete(self, metric: ReportingMetric) -> None:
        """Delete a metric definition (its values cascade)."""
        ...


@runtime_checkable
class IMetricValueRepository(Protocol):
    """Repository interface for stored monthly metric values."""

    async def get_values(
        self,
        metric_ids: set[uuid.UUID],
        period_start: date | None = None,
        period_end: date | None = None,
    ) -> list[MetricValue]:
        """Return stored rows for the metrics within an optional inclusive month range."""
        ...

    async def upsert_value(
        self,
        metric_id: uuid.UUID,
        period_date: date,
        value: float | None,
        is_manual_override: bool,
        updated_by: str | None = None,
    ) -> MetricValue:
        """Insert or update the single row keyed by (metric_id, period_date)."""
        ...

    async def delete_for_metric(self, metric_id: uuid.UUID) -> int:
        """Delete every stored value of a metric, returning the row count."""
        ...


@runtime_checkable
class ISavedChartRepository(Protocol):
    """Repository interface for saved KPI charts."""

    async def create(self, chart: SavedChart) -> SavedChart:
        """Persist a new saved chart."""
        ...

    async def get_for_company(self, company_id: str, chart_id: uuid.UUID) -> SavedChart | None:
        """Retrieve a saved chart by id within a company."""
        ...

    async def list_by_company(self, company_id: str) -> list[SavedChart]:
        """List saved charts of a company, newest first."""
        ...

    async def delete(self, chart: SavedChart) -> None:
        """Delete a saved chart."""
        ...
