"""Business logic services for the AumOS Reporting Metrics service.

All services depend on repository interfaces (not concrete implementations)
and receive dependencies via constructor injection. No framework code
(FastAPI, SQLAlchemy) belongs here.

Key invariants:
- MetricSeriesService: recomputes calculated metrics on every read; two reads
  over unchanged storage return identical series.
- MetricDefinitionService: formula presence always agrees with is_calculated,
  and no saved formula closes a dependency cycle.
- MetricValueService: every write targets the (metric, first-of-month) key.
- CategoryService: the default category tree is created at most once per company.
- SavedChartService: a chart holds between 1 and max_chart_metrics metrics.
"""

import math
import uuid
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from aumos_reporting_metrics.core.aggregation import aggregate_series
from aumos_reporting_metrics.core.evaluator import (
    FormulaEvaluator,
    build_horizon,
    check_for_cycles,
    dependency_closure,
)
from aumos_reporting_metrics.core.formulas import Formula, formula_to_storage, operand_ids, parse_formula
from aumos_reporting_metrics.core.interfaces import (
    ICategoryRepository,
    IMetricDefinitionRepository,
    IMetricValueRepository,
    ISavedChartRepository,
)
from aumos_reporting_metrics.core.merge import MonthlySeries, index_stored_values
from aumos_reporting_metrics.core.models import MetricValue, ReportingCategory, ReportingMetric, SavedChart
from aumos_reporting_metrics.core.periods import (
    DateRangePreset,
    Granularity,
    Period,
    generate_periods,
    month_start,
    months_covered,
    resolve_date_range,
)
from aumos_reporting_metrics.errors import (
    ConflictError,
    ErrorCode,
    FormulaValidationError,
    NotFoundError,
    ReportingError,
)
from aumos_reporting_metrics.observability import get_logger
from aumos_reporting_metrics.settings import Settings

logger = get_logger(__name__)

INTEGRATION_TYPES: frozenset[str] = frozenset(
    {
        "google_analytics",
        "google_search_console",
        "hubspot",
        "google_ads",
        "linkedin_ads",
        "meta_ads",
        "manual",
    }
)

# (name, slug, children as (name, slug))
DEFAULT_CATEGORY_TREE: tuple[tuple[str, str, tuple[tuple[str, str], ...]], ...] = (
    (
        "Marketing Performance",
        "marketing-performance",
        (
            ("Organic Performance", "organic-performance"),
            ("Paid Performance", "paid-performance"),
            ("Social Performance", "social-performance"),
        ),
    ),
    (
        "Sales Performance",
        "sales-performance",
        (
            ("Activity", "sales-activity"),
            ("Outcome", "sales-outcome"),
        ),
    ),
)

_UPDATABLE_METRIC_FIELDS = frozenset(
    {
        "name",
        "source",
        "category_id",
        "integration_type",
        "integration_field",
        "visible_in_categories",
        "sort_order",
    }
)


@dataclass(frozen=True)
class SeriesPoint:
    """One display period of a metric series."""

    period: Period
    value: float | None


@dataclass
class SeriesTable:
    """Series for several metrics over the same display periods."""

    granularity: Granularity
    periods: list[Period]
    date_from: date
    date_to: date
    series: dict[uuid.UUID, list[SeriesPoint]] = field(default_factory=dict)


@dataclass
class CategoryMetrics:
    """Metrics shown in a category view.

    Attributes:
        category: The category being viewed.
        home_metrics: Metrics whose home category this is (editable).
        shared_metrics: Metrics from other categories shared into this one (read-only).
        children: For a parent category, each child with its home metrics (overview).
    """

    category: ReportingCategory
    home_metrics: list[ReportingMetric]
    shared_metrics: list[ReportingMetric]
    children: list[tuple[ReportingCategory, list[ReportingMetric]]] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def formula_map(definitions: Iterable[ReportingMetric]) -> dict[str, Formula | None]:
    """Parse the stored formula of every definition, keyed by metric id string.

    Native metrics map to None. A stored formula that no longer parses is
    logged and treated as absent, so the metric shows only its stored values.
    """
    formulas: dict[str, Formula | None] = {}
    for definition in definitions:
        metric_key = str(definition.id)
        if not definition.is_calculated or definition.calculation_formula is None:
            formulas[metric_key] = None
            continue
        try:
            formulas[metric_key] = parse_formula(definition.calculation_formula)
        except FormulaValidationError as exc:
            logger.warning(
                "stored_formula_invalid",
                metric_id=metric_key,
                error=exc.message,
            )
            formulas[metric_key] = None
    return formulas


def to_metric_uuids(metric_ids: Iterable[str]) -> set[uuid.UUID]:
    """Convert metric id strings to UUIDs, dropping any that are not UUIDs."""
    converted: set[uuid.UUID] = set()
    for metric_id in metric_ids:
        try:
            converted.add(uuid.UUID(metric_id))
        except ValueError:
            continue
    return converted


async def load_stored_series(
    value_repo: IMetricValueRepository,
    metric_ids: Iterable[str],
    period_end: date,
) -> dict[str, MonthlySeries]:
    """Load every stored value of the given metrics up to ``period_end``.

    No lower bound is applied: temporal formulas need the full history.
    """
    rows = await value_repo.get_values(to_metric_uuids(metric_ids), None, period_end)
    return index_stored_values(rows)


# ---------------------------------------------------------------------------
# MetricSeriesService
# ---------------------------------------------------------------------------


class MetricSeriesService:
    """Compute display series for native and calculated metrics.

    Every call loads a fresh snapshot of definitions and stored values, runs
    the formula evaluator over a monthly horizon, merges stored overrides and
    re-buckets the result into the requested display periods.
    """

    def __init__(
        self,
        definition_repo: IMetricDefinitionRepository,
        value_repo: IMetricValueRepository,
        settings: Settings,
    ) -> None:
        """Initialize MetricSeriesService with required dependencies."""
        self._definition_repo = definition_repo
        self._value_repo = value_repo
        self._settings = settings

    async def compute_series(
        self,
        company_id: str,
        metric_id: uuid.UUID,
        periods: Sequence[Period],
        granularity: Granularity,
    ) -> list[SeriesPoint]:
        """Compute one metric's values for each display period.

        Args:
            company_id: Owning company.
            metric_id: Native or calculated metric to compute.
            periods: Ordered display periods (see periods.generate_periods).
            granularity: Granularity the periods were generated at.

        Returns:
            One SeriesPoint per period, in period order.

        Raises:
            NotFoundError: If the metric does not belong to the company.
            FormulaCycleError: If the metric's formula depends on itself.
            ReportingError: If the periods do not match the granularity or
                span more months than the configured limit.
        """
        merged = await self._resolve_many(company_id, [metric_id], periods, granularity)
        return self._to_points(merged[str(metric_id)], periods)

    async def compute_table(
        self,
        company_id: str,
        metric_ids: Sequence[uuid.UUID],
        date_from: date,
        date_to: date,
        granularity: Granularity,
    ) -> SeriesTable:
        """Compute several metrics over the same periods (table and chart views).

        All metrics share one snapshot and one evaluator, so an operand used by
        several calculated metrics is resolved once.
        """
        try:
            periods = generate_periods(date_from, date_to, granularity)
        except ValueError as exc:
            raise ReportingError(str(exc), error_code=ErrorCode.INVALID_REQUEST) from exc

        merged = await self._resolve_many(company_id, metric_ids, periods, granularity)
        table = SeriesTable(granularity=granularity, periods=periods, date_from=date_from, date_to=date_to)
        for metric_id in metric_ids:
            table.series[metric_id] = self._to_points(merged[str(metric_id)], periods)
        return table

    async def _resolve_many(
        self,
        company_id: str,
        metric_ids: Sequence[uuid.UUID],
        periods: Sequence[Period],
        granularity: Granularity,
    ) -> dict[str, MonthlySeries]:
        if any(period.granularity is not granularity for period in periods):
            raise ReportingError(
                f"All periods must have granularity '{granularity.value}'",
                error_code=ErrorCode.INVALID_REQUEST,
            )
        display_months = months_covered(list(periods))
        if len(display_months) > self._settings.max_series_months:
            raise ReportingError(
                f"Requested range spans {len(display_months)} months; "
                f"the limit is {self._settings.max_series_months}",
                error_code=ErrorCode.INVALID_REQUEST,
                details={"months": len(display_months), "limit": self._settings.max_series_months},
            )

        definitions = await self._definition_repo.list_by_company(company_id)
        known_ids = {str(definition.id) for definition in definitions}
        for metric_id in metric_ids:
            if str(metric_id) not in known_ids:
                raise NotFoundError("Metric", metric_id)

        if not display_months:
            return {str(metric_id): {} for metric_id in metric_ids}

        formulas = formula_map(definitions)
        roots = [str(metric_id) for metric_id in metric_ids]
        needed = dependency_closure(formulas, roots) & known_ids
        stored = await load_stored_series(self._value_repo, needed, display_months[-1])
        horizon = build_horizon(display_months, stored)

        evaluator = FormulaEvaluator(formulas, stored, horizon)
        merged = {root: evaluator.resolve(root) for root in roots}

        logger.info(
            "metric_series_computed",
            company_id=company_id,
            metric_count=len(roots),
            dependency_count=len(needed),
            granularity=granularity.value,
            period_count=len(periods),
            horizon_months=len(horizon),
        )
        return merged

    @staticmethod
    def _to_points(series: MonthlySeries, periods: Sequence[Period]) -> list[SeriesPoint]:
        return [SeriesPoint(period=period, value=value) for period, value in aggregate_series(series, periods)]


# ---------------------------------------------------------------------------
# MetricDefinitionService
# ---------------------------------------------------------------------------


class MetricDefinitionService:
    """Create, modify and delete native and calculated metric definitions."""

    def __init__(
        self,
        category_repo: ICategoryRepository,
        definition_repo: IMetricDefinitionRepository,
        value_repo: IMetricValueRepository,
    ) -> None:
        """Initialize MetricDefinitionService with required dependencies."""
        self._category_repo = category_repo
        self._definition_repo = definition_repo
        self._value_repo = value_repo

    async def list_metrics(self, company_id: str, category_id: uuid.UUID | None = None) -> list[ReportingMetric]:
        """List metric definitions, optionally for one home category."""
        return await self._definition_repo.list_by_company(company_id, category_id)

    async def get_metric(self, company_id: str, metric_id: uuid.UUID) -> ReportingMetric:
        """Return a metric definition.

        Raises:
            NotFoundError: If the metric does not belong to the company.
        """
        metric = await self._definition_repo.get_for_company(company_id, metric_id)
        if metric is None:
            raise NotFoundError("Metric", metric_id)
        return metric

    async def create_metric(
        self,
        company_id: str,
        category_id: uuid.UUID,
        name: str,
        source: str | None = None,
        integration_type: str | None = None,
        integration_field: str | None = None,
        visible_in_categories: list[uuid.UUID] | None = None,
        sort_order: int = 0,
        created_by: str | None = None,
    ) -> ReportingMetric:
        """Add a native metric to a category.

        Raises:
            NotFoundError: If the home category or a shared category does not exist.
            ReportingError: If the integration type is unknown.
        """
        await self._require_category(company_id, category_id)
        visible = await self._validate_visibility(company_id, visible_in_categories or [])
        _validate_integration_type(integration_type)

        metric = ReportingMetric(
            company_id=company_id,
            category_id=category_id,
            name=name,
            source=source,
            integration_type=integration_type,
            integration_field=integration_field,
            is_calculated=False,
            calculation_formula=None,
            visible_in_categories=visible,
            sort_order=sort_order,
            created_by=created_by,
        )
        persisted = await self._definition_repo.create(metric)

        logger.info(
            "metric_created",
            company_id=company_id,
            metric_id=str(persisted.id),
            category_id=str(category_id),
            integration_type=integration_type,
        )
        return persisted

    async def create_calculated_metric(
        self,
        company_id: str,
        category_id: uuid.UUID,
        name: str,
        formula: Formula,
        source: str | None = None,
        visible_in_categories: list[uuid.UUID] | None = None,
        sort_order: int = 0,
        created_by: str | None = None,
    ) -> ReportingMetric:
        """Add a calculated metric whose values are derived from ``formula``.

        Raises:
            NotFoundError: If the home category or a shared category does not exist.
            FormulaValidationError: If an operand is not a metric of the company.
            FormulaCycleError: If the formula would make the metric depend on itself.
        """
        await self._require_category(company_id, category_id)
        visible = await self._validate_visibility(company_id, visible_in_categories or [])

        metric_id = uuid.uuid4()
        definitions = await self._definition_repo.list_by_company(company_id)
        formulas = formula_map(definitions)
        _validate_operands(formula, formulas)
        formulas[str(metric_id)] = formula
        check_for_cycles(formulas, str(metric_id))

        metric = ReportingMetric(
            id=metric_id,
            company_id=company_id,
            category_id=category_id,
            name=name,
            source=source,
            integration_type=None,
            integration_field=None,
            is_calculated=True,
            calculation_formula=formula_to_storage(formula),
            visible_in_categories=visible,
            sort_order=sort_order,
            created_by=created_by,
        )
        persisted = await self._definition_repo.create(metric)

        logger.info(
            "calculated_metric_created",
            company_id=company_id,
            metric_id=str(persisted.id),
            formula_type=formula.type,
            operands=operand_ids(formula),
        )
        return persisted

    async def update_metric(
        self,
        company_id: str,
        metric_id: uuid.UUID,
        updates: dict[str, Any],
    ) -> ReportingMetric:
        """Rename, move, rewire or reorder a metric.

        Args:
            company_id: Owning company.
            metric_id: Metric to update.
            updates: Field values to set; only name, source, category_id,
                integration_type, integration_field, visible_in_categories and
                sort_order may be changed here.

        Raises:
            NotFoundError: If the metric or a referenced category does not exist.
            ReportingError: If an unknown field or integration type is supplied.
        """
        unknown = set(updates) - _UPDATABLE_METRIC_FIELDS
        if unknown:
            raise ReportingError(
                "Fields cannot be updated: " + ", ".join(sorted(unknown)),
                error_code=ErrorCode.INVALID_REQUEST,
                details={"fields": sorted(unknown)},
            )

        metric = await self.get_metric(company_id, metric_id)
        if "category_id" in updates:
            await self._require_category(company_id, updates["category_id"])
        if "visible_in_categories" in updates:
            updates = {
                **updates,
                "visible_in_categories": await self._validate_visibility(
                    company_id, updates["visible_in_categories"] or []
                ),
            }
        if "integration_type" in updates:
            if metric.is_calculated and updates["integration_type"] is not None:
                raise ConflictError("Calculated metrics cannot be bound to an integration")
            _validate_integration_type(updates["integration_type"])

        for attribute, value in updates.items():
            setattr(metric, attribute, value)
        persisted = await self._definition_repo.save(metric)

        logger.info(
            "metric_updated",
            company_id=company_id,
            metric_id=str(metric_id),
            fields=sorted(updates),
        )
        return persisted

    async def update_formula(
        self,
        company_id: str,
        metric_id: uuid.UUID,
        formula: Formula,
    ) -> ReportingMetric:
        """Replace a calculated metric's formula.

        Stored values are not recomputed; calculated series are derived on read.

        Raises:
            NotFoundError: If the metric does not belong to the company.
            ConflictError: If the metric is a native metric.
            FormulaValidationError: If an operand is not a metric of the company.
            FormulaCycleError: If the new formula closes a dependency cycle.
        """
        metric = await self.get_metric(company_id, metric_id)
        if not metric.is_calculated:
            raise ConflictError(
                "Only calculated metrics have a formula",
                details={"metric_id": str(metric_id)},
            )

        formulas = formula_map(await self._definition_repo.list_by_company(company_id))
        _validate_operands(formula, formulas)
        formulas[str(metric_id)] = formula
        check_for_cycles(formulas, str(metric_id))

        metric.calculation_formula = formula_to_storage(formula)
        persisted = await self._definition_repo.save(metric)

        logger.info(
            "metric_formula_updated",
            company_id=company_id,
            metric_id=str(metric_id),
            formula_type=formula.type,
        )
        return persisted

    async def delete_metric(self, company_id: str, metric_id: uuid.UUID) -> None:
        """Delete a metric together with all its stored values.

        Calculated metrics that referenced it keep their formula; the missing
        operand evaluates to None.
        """
        metric = await self.get_metric(company_id, metric_id)
        formulas = formula_map(await self._definition_repo.list_by_company(company_id))
        dependents = sorted(
            metric_key
            for metric_key, formula in formulas.items()
            if formula is not None and str(metric_id) in operand_ids(formula)
        )

        removed_values = await self._value_repo.delete_for_metric(metric_id)
        await self._definition_repo.delete(metric)

        logger.info(
            "metric_deleted",
            company_id=company_id,
            metric_id=str(metric_id),
            removed_values=removed_values,
            dependents=dependents,
        )

    async def _require_category(self, company_id: str, category_id: uuid.UUID) -> ReportingCategory:
        category = await self._category_repo.get_for_company(company_id, category_id)
        if category is None:
            raise NotFoundError("Category", category_id)
        return category

    async def _validate_visibility(self, company_id: str, category_ids: Iterable[uuid.UUID | str]) -> list[str]:
        visible: list[str] = []
        for category_id in category_ids:
            category = await self._require_category(company_id, uuid.UUID(str(category_id)))
            if str(category.id) not in visible:
                visible.append(str(category.id))
        return visible


def _validate_operands(formula: Formula, formulas: dict[str, Formula | None]) -> None:
    missing = [metric_id for metric_id in operand_ids(formula) if metric_id not in formulas]
    if missing:
        raise FormulaValidationError(
            "Formula references unknown metrics",
            details={"metric_ids": missing},
        )


def _validate_integration_type(integration_type: str | None) -> None:
    if integration_type is not None and integration_type not in INTEGRATION_TYPES:
        raise ReportingError(
            f"Unknown integration type '{integration_type}'",
            error_code=ErrorCode.INVALID_REQUEST,
            details={"allowed": sorted(INTEGRATION_TYPES)},
        )


# ---------------------------------------------------------------------------
# MetricValueService
# ---------------------------------------------------------------------------


class MetricValueService:
    """Write monthly metric values (manual edits and sync imports)."""

    def __init__(
        self,
        definition_repo: IMetricDefinitionRepository,
        value_repo: IMetricValueRepository,
    ) -> None:
        """Initialize MetricValueService with required dependencies."""
        self._definition_repo = definition_repo
        self._value_repo = value_repo

    async def upsert_value(
        self,
        company_id: str,
        metric_id: uuid.UUID,
        period_date: date,
        value: float | None,
        is_manual_override: bool = True,
        updated_by: str | None = None,
    ) -> MetricValue:
        """Set a metric's value for the month containing ``period_date``.

        Writing None keeps the row: an empty stored value still overrides a
        calculated result for that month.

        Raises:
            NotFoundError: If the metric does not belong to the company.
            ReportingError: If the value is NaN or infinite.
        """
        if value is not None and not math.isfinite(value):
            raise ReportingError("Metric values must be finite numbers", error_code=ErrorCode.INVALID_REQUEST)

        metric = await self._definition_repo.get_for_company(company_id, metric_id)
        if metric is None:
            raise NotFoundError("Metric", metric_id)

        month = month_start(period_date)
        row = await self._value_repo.upsert_value(
            metric_id=metric_id,
            period_date=month,
            value=value,
            is_manual_override=is_manual_override,
            updated_by=updated_by,
        )

        logger.info(
            "metric_value_saved",
            company_id=company_id,
            metric_id=str(metric_id),
            period_date=month.isoformat(),
            is_manual_override=is_manual_override,
            is_calculated=metric.is_calculated,
        )
        return row


# ---------------------------------------------------------------------------
# CategoryService
# ---------------------------------------------------------------------------


class CategoryService:
    """Reporting categories and the metrics each category view shows."""

    def __init__(
        self,
        category_repo: ICategoryRepository,
        definition_repo: IMetricDefinitionRepository,
    ) -> None:
        """Initialize CategoryService with required dependencies."""
        self._category_repo = category_repo
        self._definition_repo = definition_repo

    async def list_categories(self, company_id: str) -> list[ReportingCategory]:
        """List all categories of a company."""
        return await self._category_repo.list_by_company(company_id)

    async def initialize_defaults(self, company_id: str) -> list[ReportingCategory]:
        """Create the default category tree unless the company already has categories.

        Returns:
            The company's categories after initialization.
        """
        existing = await self._category_repo.list_by_company(company_id)
        if existing:
            logger.info("default_categories_skipped", company_id=company_id, existing=len(existing))
            return existing

        created: list[ReportingCategory] = []
        for parent_order, (parent_name, parent_slug, children) in enumerate(DEFAULT_CATEGORY_TREE):
            parent = await self._category_repo.create(
                ReportingCategory(
                    company_id=company_id,
                    name=parent_name,
                    slug=parent_slug,
                    parent_id=None,
                    sort_order=parent_order,
                )
            )
            created.append(parent)
            for child_order, (child_name, child_slug) in enumerate(children):
                created.append(
                    await self._category_repo.create(
                        ReportingCategory(
                            company_id=company_id,
                            name=child_name,
                            slug=child_slug,
                            parent_id=parent.id,
                            sort_order=child_order,
                        )
                    )
                )

        logger.info("default_categories_created", company_id=company_id, created=len(created))
        return created

    async def category_metrics(self, company_id: str, category_id: uuid.UUID) -> CategoryMetrics:
        """Metrics shown in a category: home, shared in, and (for parents) per child.

        Raises:
            NotFoundError: If the category does not belong to the company.
        """
        category = await self._category_repo.get_for_company(company_id, category_id)
        if category is None:
            raise NotFoundError("Category", category_id)

        categories = await self._category_repo.list_by_company(company_id)
        metrics = await self._definition_repo.list_by_company(company_id)
        category_key = str(category_id)

        home = [metric for metric in metrics if metric.category_id == category_id]
        shared = [
            metric
            for metric in metrics
            if metric.category_id != category_id and category_key in (metric.visible_in_categories or [])
        ]
        children = [
            (child, [metric for metric in metrics if metric.category_id == child.id])
            for child in categories
            if child.parent_id == category_id
        ]
        return CategoryMetrics(category=category, home_metrics=home, shared_metrics=shared, children=children)


# ---------------------------------------------------------------------------
# SavedChartService
# ---------------------------------------------------------------------------


class SavedChartService:
    """Saved KPI charts and their series."""

    def __init__(
        self,
        chart_repo: ISavedChartRepository,
        definition_repo: IMetricDefinitionRepository,
        series_service: MetricSeriesService,
        settings: Settings,
    ) -> None:
        """Initialize SavedChartService with required dependencies."""
        self._chart_repo = chart_repo
        self._definition_repo = definition_repo
        self._series_service = series_service
        self._settings = settings

    async def create_chart(
        self,
        company_id: str,
        name: str,
        metric_ids: list[uuid.UUID],
        chart_type: str = "line",
        granularity: Granularity = Granularity.MONTH,
        date_range_preset: DateRangePreset | None = None,
        custom_start_date: date | None = None,
        custom_end_date: date | None = None,
        created_by: str | None = None,
    ) -> SavedChart:
        """Save a chart of up to ``max_chart_metrics`` metrics.

        Exactly one of ``date_range_preset`` or the custom date pair defines
        the range.

        Raises:
            ReportingError: If the metric count or date range is invalid.
            NotFoundError: If a metric does not belong to the company.
        """
        unique_ids = list(dict.fromkeys(metric_ids))
        if not 1 <= len(unique_ids) <= self._settings.max_chart_metrics:
            raise ReportingError(
                f"A chart holds between 1 and {self._settings.max_chart_metrics} metrics",
                error_code=ErrorCode.INVALID_REQUEST,
                details={"metric_count": len(unique_ids)},
            )
        _validate_chart_range(date_range_preset, custom_start_date, custom_end_date)

        known_ids = {definition.id for definition in await self._definition_repo.list_by_company(company_id)}
        for metric_id in unique_ids:
            if metric_id not in known_ids:
                raise NotFoundError("Metric", metric_id)

        chart = SavedChart(
            company_id=company_id,
            name=name,
            metric_ids=[str(metric_id) for metric_id in unique_ids],
            chart_type=chart_type,
            date_range_preset=date_range_preset.value if date_range_preset is not None else None,
            custom_start_date=custom_start_date,
            custom_end_date=custom_end_date,
            granularity=granularity.value,
            created_by=created_by,
        )
        persisted = await self._chart_repo.create(chart)

        logger.info(
            "saved_chart_created",
            company_id=company_id,
            chart_id=str(persisted.id),
            metric_count=len(unique_ids),
            granularity=granularity.value,
        )
        return persisted

    async def list_charts(self, company_id: str) -> list[SavedChart]:
        """List the company's saved charts."""
        return await self._chart_repo.list_by_company(company_id)

    async def get_chart(self, company_id: str, chart_id: uuid.UUID) -> SavedChart:
        """Return a saved chart.

        Raises:
            NotFoundError: If the chart does not belong to the company.
        """
        chart = await self._chart_repo.get_for_company(company_id, chart_id)
        if chart is None:
            raise NotFoundError("Chart", chart_id)
        return chart

    async def delete_chart(self, company_id: str, chart_id: uuid.UUID) -> None:
        """Delete a saved chart."""
        chart = await self.get_chart(company_id, chart_id)
        await self._chart_repo.delete(chart)
        logger.info("saved_chart_deleted", company_id=company_id, chart_id=str(chart_id))

    async def chart_series(
        self,
        company_id: str,
        chart_id: uuid.UUID,
        today: date | None = None,
    ) -> tuple[SavedChart, SeriesTable]:
        """Compute the series of every metric on a saved chart.

        Preset ranges resolve relative to ``today`` (defaults to the current date).
        """
        chart = await self.get_chart(company_id, chart_id)
        date_from, date_to = chart_date_range(chart, today or date.today())
        table = await self._series_service.compute_table(
            company_id=company_id,
            metric_ids=[uuid.UUID(metric_id) for metric_id in chart.metric_ids],
            date_from=date_from,
            date_to=date_to,
            granularity=Granularity(chart.granularity),
        )
        return chart, table


def resolve_requested_range(
    preset: DateRangePreset | None,
    date_from: date | None,
    date_to: date | None,
    today: date,
) -> tuple[date, date]:
    """Inclusive date range from a preset, or from explicit bounds.

    Raises:
        ReportingError: If neither a preset nor both bounds are given, or the
            bounds are reversed.
    """
    if preset is not None:
        return resolve_date_range(preset, today)
    if date_from is None or date_to is None:
        raise ReportingError(
            "Provide date_range_preset or both date_from and date_to",
            error_code=ErrorCode.INVALID_REQUEST,
        )
    if date_from > date_to:
        raise ReportingError(
            "date_from must not be after date_to",
            error_code=ErrorCode.INVALID_REQUEST,
            details={"date_from": date_from.isoformat(), "date_to": date_to.isoformat()},
        )
    return date_from, date_to


def chart_date_range(chart: SavedChart, today: date) -> tuple[date, date]:
    """Inclusive date range of a saved chart."""
    if chart.date_range_preset is not None:
        return resolve_date_range(DateRangePreset(chart.date_range_preset), today)
    if chart.custom_start_date is None or chart.custom_end_date is None:
        raise ReportingError("Chart has no date range", error_code=ErrorCode.INVALID_REQUEST)
    return chart.custom_start_date, chart.custom_end_date


def _validate_chart_range(
    preset: DateRangePreset | None,
    custom_start: date | None,
    custom_end: date | None,
) -> None:
    has_custom = custom_start is not None or custom_end is not None
    if preset is not None and has_custom:
        raise ReportingError(
            "Use either a date range preset or custom dates, not both",
            error_code=ErrorCode.INVALID_REQUEST,
        )
    if preset is None:
        if custom_start is None or custom_end is None:
            raise ReportingError(
                "A custom date range needs both a start and an end date",
                error_code=ErrorCode.INVALID_REQUEST,
            )
        if custom_start > custom_end:
            raise ReportingError(
                "Custom start date is after the end date",
                error_code=ErrorCode.INVALID_REQUEST,
            )
