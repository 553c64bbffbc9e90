"""SQLAlchemy repositories for the AumOS Reporting Metrics service.

All repositories extend BaseRepository and implement the interfaces defined
in core/interfaces.py. Every company-owned query filters on company_id.
"""

import uuid
from datetime import date

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from aumos_reporting_metrics.core.models import MetricValue, ReportingCategory, ReportingMetric, SavedChart
from aumos_reporting_metrics.core.periods import month_start
from aumos_reporting_metrics.database import BaseRepository
from aumos_reporting_metrics.observability import get_logger

logger = get_logger(__name__)


class CategoryRepository(BaseRepository[ReportingCategory]):
    """Repository for rep_categories."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize with an async database session."""
        super().__init__(session, ReportingCategory)

    async def get_for_company(self, company_id: str, category_id: uuid.UUID) -> ReportingCategory | None:
        """Return a category if it belongs to the company."""
        query = select(ReportingCategory).where(
            ReportingCategory.company_id == company_id,
            ReportingCategory.id == category_id,
        )
        result = await self._session.execute(query)
        return result.scalars().first()

    async def list_by_company(self, company_id: str) -> list[ReportingCategory]:
        """List a company's categories ordered by sort_order, then name."""
        query = (
            select(ReportingCategory)
            .where(ReportingCategory.company_id == company_id)
            .order_by(ReportingCategory.sort_order.asc(), ReportingCategory.name.asc())
        )
        result = await self._session.execute(query)
        return list(result.scalars().all())


class MetricDefinitionRepository(BaseRepository[ReportingMetric]):
    """Repository for rep_metrics: native and calculated metric definitions."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize with an async database session."""
        super().__init__(session, ReportingMetric)

    async def get_for_company(self, company_id: str, metric_id: uuid.UUID) -> ReportingMetric | None:
        """Return a metric definition if it belongs to the company."""
        query = select(ReportingMetric).where(
            ReportingMetric.company_id == company_id,
            ReportingMetric.id == metric_id,
        )
        result = await self._session.execute(query)
        return result.scalars().first()

    async def list_by_company(
        self,
        company_id: str,
        category_id: uuid.UUID | None = None,
    ) -> list[ReportingMetric]:
        """List metric definitions for a company.

        Args:
            company_id: Company filter.
            category_id: Optional home-category filter.

        Returns:
            Definitions ordered by sort_order, then created_at.
        """
        query = (
            select(ReportingMetric)
            .where(ReportingMetric.company_id == company_id)
            .order_by(ReportingMetric.sort_order.asc(), ReportingMetric.created_at.asc())
        )
        if category_id is not None:
            query = query.where(ReportingMetric.category_id == category_id)

        result = await self._session.execute(query)
        return list(result.scalars().all())

    async def save(self, metric: ReportingMetric) -> ReportingMetric:
        """Flush pending attribute changes and reload server-side columns."""
        await self._session.flush()
        await self._session.refresh(metric)
        return metric


class MetricValueRepository(BaseRepository[MetricValue]):
    """Repository for rep_metric_values: one row per (metric, month)."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize with an async database session."""
        super().__init__(session, MetricValue)

    async def get_values(
        self,
        metric_ids: set[uuid.UUID],
        period_start: date | None = None,
        period_end: date | None = None,
    ) -> list[MetricValue]:
        """Return stored values for a set of metrics.

        Args:
            metric_ids: Metrics to load; an empty set returns no rows.
            period_start: Optional inclusive lower bound (monthly key).
            period_end: Optional inclusive upper bound (monthly key).

        Returns:
            Rows ordered by metric_id, then period_date ascending.
        """
        if not metric_ids:
            return []

        query = (
            select(MetricValue)
            .where(MetricValue.metric_id.in_(metric_ids))
            .order_by(MetricValue.metric_id.asc(), MetricValue.period_date.asc())
        )
        if period_start is not None:
            query = query.where(MetricValue.period_date >= month_start(period_start))
        if period_end is not None:
            query = query.where(MetricValue.period_date <= period_end)

        result = await self._session.execute(query)
        return list(result.scalars().all())

    async def upsert_value(
        self,
        metric_id: uuid.UUID,
        period_date: date,
        value: float | None,
        is_manual_override: bool,
        updated_by: str | None = None,
    ) -> MetricValue:
        """Insert or update the row keyed by (metric_id, first of month).

        Concurrent writers on the same key serialize on the unique constraint;
        the last write wins.

        Returns:
            The stored row after the write.
        """
        statement = (
            insert(MetricValue)
            .values(
                id=uuid.uuid4(),
                metric_id=metric_id,
                period_date=month_start(period_date),
                value=value,
                is_manual_override=is_manual_override,
                updated_by=updated_by,
            )
            .on_conflict_do_update(
                constraint="uq_rep_metric_values_metric_period",
                set_={
                    "value": value,
                    "is_manual_override": is_manual_override,
                    "updated_by": updated_by,
                    "updated_at": func.now(),
                },
            )
            .returning(MetricValue)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(statement)
        row = result.scalars().one()
        logger.debug(
            "metric_value_upserted",
            metric_id=str(metric_id),
            period_date=row.period_date.isoformat(),
            is_manual_override=is_manual_override,
        )
        return row

    async def delete_for_metric(self, metric_id: uuid.UUID) -> int:
        """Delete all stored values of one metric."""
        result = await self._session.execute(delete(MetricValue).where(MetricValue.metric_id == metric_id))
        return int(result.rowcount or 0)


class SavedChartRepository(BaseRepository[SavedChart]):
    """Repository for rep_saved_charts."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize with an async database session."""
        super().__init__(session, SavedChart)

    async def get_for_company(self, company_id: str, chart_id: uuid.UUID) -> SavedChart | None:
        """Return a saved chart if it belongs to the company."""
        query = select(SavedChart).where(SavedChart.company_id == company_id, SavedChart.id == chart_id)
        result = await self._session.execute(query)
        return result.scalars().first()

    async def list_by_company(self, company_id: str) -> list[SavedChart]:
        """List a company's saved charts, newest first."""
        query = select(SavedChart).where(SavedChart.company_id == company_id).order_by(SavedChart.created_at.desc())
        result = await self._session.execute(query)
        return list(result.scalars().all())
