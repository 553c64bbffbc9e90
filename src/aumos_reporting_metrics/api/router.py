"""FastAPI router for the AumOS Reporting Metrics API.

All routes are thin: they validate inputs, call services, and return
Pydantic response models. No business logic belongs here.

Endpoints:
  GET    /api/v1/reporting/categories                          List categories
  POST   /api/v1/reporting/categories/initialize               Create the default category tree
  GET    /api/v1/reporting/categories/{id}/metrics             Metrics shown in a category view
  GET    /api/v1/reporting/metrics                             List metric definitions
  POST   /api/v1/reporting/metrics                             Add a native metric
  POST   /api/v1/reporting/metrics/calculated                  Add a calculated metric
  PATCH  /api/v1/reporting/metrics/{id}                        Rename / rewire / share / reorder
  PUT    /api/v1/reporting/metrics/{id}/formula                Replace a calculated metric's formula
  DELETE /api/v1/reporting/metrics/{id}                        Delete a metric and its values
  PUT    /api/v1/reporting/metrics/{id}/values/{period_date}   Set one month's value
  GET    /api/v1/reporting/metrics/{id}/series                 Metric series at a granularity
  POST   /api/v1/reporting/series                              Several series over shared periods
  POST   /api/v1/reporting/formulas/preview                    Preview an unsaved formula
  GET    /api/v1/reporting/charts                              List saved charts
  POST   /api/v1/reporting/charts                              Save a chart
  GET    /api/v1/reporting/charts/{id}                         Get a saved chart
  DELETE /api/v1/reporting/charts/{id}                         Delete a saved chart
  GET    /api/v1/reporting/charts/{id}/series                  Series of every metric on a chart
"""

import uuid
from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, Header, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from aumos_reporting_metrics.adapters.repositories import (
    CategoryRepository,
    MetricDefinitionRepository,
    MetricValueRepository,
    SavedChartRepository,
)
from aumos_reporting_metrics.api.schemas import (
    CategoryMetricsResponse,
    CategoryResponse,
    ChildCategoryMetricsResponse,
    CreateCalculatedMetricRequest,
    CreateMetricRequest,
    CreateSavedChartRequest,
    FormulaPreviewRequest,
    FormulaPreviewResponse,
    MetricResponse,
    MetricSeriesResponse,
    MetricValueResponse,
    PreviewValueResponse,
    SavedChartResponse,
    SeriesPointResponse,
    SeriesTableRequest,
    SeriesTableResponse,
    UpdateFormulaRequest,
    UpdateMetricRequest,
    UpsertMetricValueRequest,
)
from aumos_reporting_metrics.core.periods import (
    DateRangePreset,
    Granularity,
    generate_periods,
    period_for,
)
from aumos_reporting_metrics.core.preview import PreviewService
from aumos_reporting_metrics.core.services import (
    CategoryService,
    MetricDefinitionService,
    MetricSeriesService,
    MetricValueService,
    SavedChartService,
    SeriesTable,
    resolve_requested_range,
)
from aumos_reporting_metrics.database import get_db_session
from aumos_reporting_metrics.settings import Settings

router = APIRouter(prefix="/reporting", tags=["reporting"])
settings = Settings()


# ---------------------------------------------------------------------------
# Dependency factories
# ---------------------------------------------------------------------------


def get_company_id(
    x_company_id: Annotated[str, Header(alias="X-Company-ID", min_length=1, max_length=255)],
) -> str:
    """Company scope of the request, taken from the X-Company-ID header."""
    return x_company_id


def _get_category_service(
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> CategoryService:
    """Build CategoryService with all required dependencies."""
    return CategoryService(
        category_repo=CategoryRepository(session),
        definition_repo=MetricDefinitionRepository(session),
    )


def _get_definition_service(
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> MetricDefinitionService:
    """Build MetricDefinitionService with all required dependencies."""
    return MetricDefinitionService(
        category_repo=CategoryRepository(session),
        definition_repo=MetricDefinitionRepository(session),
        value_repo=MetricValueRepository(session),
    )


def _get_value_service(
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> MetricValueService:
    """Build MetricValueService with all required dependencies."""
    return MetricValueService(
        definition_repo=MetricDefinitionRepository(session),
        value_repo=MetricValueRepository(session),
    )


def _get_series_service(
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> MetricSeriesService:
    """Build MetricSeriesService with all required dependencies."""
    return MetricSeriesService(
        definition_repo=MetricDefinitionRepository(session),
        value_repo=MetricValueRepository(session),
        settings=settings,
    )


def _get_preview_service(
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> PreviewService:
    """Build PreviewService with all required dependencies."""
    return PreviewService(
        definition_repo=MetricDefinitionRepository(session),
        value_repo=MetricValueRepository(session),
        settings=settings,
    )


def _get_chart_service(
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> SavedChartService:
    """Build SavedChartService with all required dependencies."""
    definition_repo = MetricDefinitionRepository(session)
    series_service = MetricSeriesService(
        definition_repo=definition_repo,
        value_repo=MetricValueRepository(session),
        settings=settings,
    )
    return SavedChartService(
        chart_repo=SavedChartRepository(session),
        definition_repo=definition_repo,
        series_service=series_service,
        settings=settings,
    )


def _table_response(table: SeriesTable) -> SeriesTableResponse:
    return SeriesTableResponse(
        granularity=table.granularity,
        date_from=table.date_from,
        date_to=table.date_to,
        series=[
            MetricSeriesResponse(
                metric_id=metric_id,
                granularity=table.granularity,
                date_from=table.date_from,
                date_to=table.date_to,
                points=[SeriesPointResponse.from_point(point.period, point.value) for point in points],
            )
            for metric_id, points in table.series.items()
        ],
    )


# ---------------------------------------------------------------------------
# Category endpoints
# ---------------------------------------------------------------------------


@router.get("/categories", response_model=list[CategoryResponse], summary="List categories")
async def list_categories(
    company_id: Annotated[str, Depends(get_company_id)],
    service: Annotated[CategoryService, Depends(_get_category_service)],
) -> list[CategoryResponse]:
    """List the company's reporting categories ordered by sort_order."""
    categories = await service.list_categories(company_id)
    return [CategoryResponse.model_validate(c) for c in categories]


@router.post(
    "/categories/initialize",
    response_model=list[CategoryResponse],
    summary="Create the default category tree",
)
async def initialize_categories(
    company_id: Annotated[str, Depends(get_company_id)],
    service: Annotated[CategoryService, Depends(_get_category_service)],
) -> list[CategoryResponse]:
    """Create Marketing Performance and Sales Performance with their children.

    Does nothing when the company already has categories.
    """
    categories = await service.initialize_defaults(company_id)
    return [CategoryResponse.model_validate(c) for c in categories]


@router.get(
    "/categories/{category_id}/metrics",
    response_model=CategoryMetricsResponse,
    summary="Metrics shown in a category",
)
async def get_category_metrics(
    category_id: uuid.UUID,
    company_id: Annotated[str, Depends(get_company_id)],
    service: Annotated[CategoryService, Depends(_get_category_service)],
) -> CategoryMetricsResponse:
    """Home metrics, metrics shared into the category, and child overviews."""
    view = await service.category_metrics(company_id, category_id)
    return CategoryMetricsResponse(
        category=CategoryResponse.model_validate(view.category),
        home_metrics=[MetricResponse.model_validate(m) for m in view.home_metrics],
        shared_metrics=[MetricResponse.model_validate(m) for m in view.shared_metrics],
        children=[
            ChildCategoryMetricsResponse(
                category=CategoryResponse.model_validate(child),
                metrics=[MetricResponse.model_validate(m) for m in metrics],
            )
            for child, metrics in view.children
        ],
    )


# ---------------------------------------------------------------------------
# Metric definition endpoints
# ---------------------------------------------------------------------------


@router.get("/metrics", response_model=list[MetricResponse], summary="List metrics")
async def list_metrics(
    company_id: Annotated[str, Depends(get_company_id)],
    service: Annotated[MetricDefinitionService, Depends(_get_definition_service)],
    category_id: Annotated[uuid.UUID | None, Query(description="Filter by home category")] = None,
) -> list[MetricResponse]:
    """List metric definitions, optionally for one home category."""
    metrics = await service.list_metrics(company_id, category_id)
    return [MetricResponse.model_validate(m) for m in metrics]


@router.post(
    "/metrics",
    response_model=MetricResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a native metric",
)
async def create_metric(
    request: CreateMetricRequest,
    company_id: Annotated[str, Depends(get_company_id)],
    service: Annotated[MetricDefinitionService, Depends(_get_definition_service)],
) -> MetricResponse:
    """Add a metric whose values are entered manually or synced from an integration."""
    metric = await service.create_metric(
        company_id=company_id,
        category_id=request.category_id,
        name=request.name,
        source=request.source,
        integration_type=request.integration_type,
        integration_field=request.integration_field,
        visible_in_categories=request.visible_in_categories,
        sort_order=request.sort_order,
        created_by=request.created_by,
    )
    return MetricResponse.model_validate(metric)


@router.post(
    "/metrics/calculated",
    response_model=MetricResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a calculated metric",
)
async def create_calculated_metric(
    request: CreateCalculatedMetricRequest,
    company_id: Annotated[str, Depends(get_company_id)],
    service: Annotated[MetricDefinitionService, Depends(_get_definition_service)],
) -> MetricResponse:
    """Add a metric derived from other metrics by a formula.

    Returns 422 when an operand is unknown or the formula closes a cycle.
    """
    metric = await service.create_calculated_metric(
        company_id=company_id,
        category_id=request.category_id,
        name=request.name,
        formula=request.formula,
        source=request.source,
        visible_in_categories=request.visible_in_categories,
        sort_order=request.sort_order,
        created_by=request.created_by,
    )
    return MetricResponse.model_validate(metric)


@router.patch("/metrics/{metric_id}", response_model=MetricResponse, summary="Update a metric")
async def update_metric(
    metric_id: uuid.UUID,
    request: UpdateMetricRequest,
    company_id: Annotated[str, Depends(get_company_id)],
    service: Annotated[MetricDefinitionService, Depends(_get_definition_service)],
) -> MetricResponse:
    """Rename, move, rewire, share or reorder a metric. Omitted fields are unchanged."""
    metric = await service.update_metric(company_id, metric_id, request.model_dump(exclude_unset=True))
    return MetricResponse.model_validate(metric)


@router.put("/metrics/{metric_id}/formula", response_model=MetricResponse, summary="Replace a formula")
async def update_formula(
    metric_id: uuid.UUID,
    request: UpdateFormulaRequest,
    company_id: Annotated[str, Depends(get_company_id)],
    service: Annotated[MetricDefinitionService, Depends(_get_definition_service)],
) -> MetricResponse:
    """Replace a calculated metric's formula; values are recomputed on the next read."""
    metric = await service.update_formula(company_id, metric_id, request.formula)
    return MetricResponse.model_validate(metric)


@router.delete(
    "/metrics/{metric_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a metric",
)
async def delete_metric(
    metric_id: uuid.UUID,
    company_id: Annotated[str, Depends(get_company_id)],
    service: Annotated[MetricDefinitionService, Depends(_get_definition_service)],
) -> None:
    """Delete a metric and every stored value it has."""
    await service.delete_metric(company_id, metric_id)


# ---------------------------------------------------------------------------
# Value and series endpoints
# ---------------------------------------------------------------------------


@router.put(
    "/metrics/{metric_id}/values/{period_date}",
    response_model=MetricValueResponse,
    summary="Set one month's value",
)
async def upsert_metric_value(
    metric_id: uuid.UUID,
    period_date: date,
    request: UpsertMetricValueRequest,
    company_id: Annotated[str, Depends(get_company_id)],
    service: Annotated[MetricValueService, Depends(_get_value_service)],
) -> MetricValueResponse:
    """Set the value of the month containing ``period_date`` (any day of the month)."""
    row = await service.upsert_value(
        company_id=company_id,
        metric_id=metric_id,
        period_date=period_date,
        value=request.value,
        is_manual_override=request.is_manual_override,
        updated_by=request.updated_by,
    )
    return MetricValueResponse.model_validate(row)


@router.get(
    "/metrics/{metric_id}/series",
    response_model=MetricSeriesResponse,
    summary="Metric series at a granularity",
)
async def get_metric_series(
    metric_id: uuid.UUID,
    company_id: Annotated[str, Depends(get_company_id)],
    service: Annotated[MetricSeriesService, Depends(_get_series_service)],
    granularity: Annotated[Granularity, Query()] = Granularity.MONTH,
    date_range_preset: Annotated[DateRangePreset | None, Query()] = None,
    date_from: Annotated[date | None, Query()] = None,
    date_to: Annotated[date | None, Query()] = None,
) -> MetricSeriesResponse:
    """Compute a metric's values for each period of the requested range.

    Calculated metrics are evaluated on read; stored values override them.
    """
    range_from, range_to = resolve_requested_range(date_range_preset, date_from, date_to, date.today())
    periods = generate_periods(range_from, range_to, granularity)
    points = await service.compute_series(company_id, metric_id, periods, granularity)
    return MetricSeriesResponse(
        metric_id=metric_id,
        granularity=granularity,
        date_from=range_from,
        date_to=range_to,
        points=[SeriesPointResponse.from_point(point.period, point.value) for point in points],
    )


@router.post("/series", response_model=SeriesTableResponse, summary="Several series over shared periods")
async def get_series_table(
    request: SeriesTableRequest,
    company_id: Annotated[str, Depends(get_company_id)],
    service: Annotated[MetricSeriesService, Depends(_get_series_service)],
) -> SeriesTableResponse:
    """Compute several metrics over the same periods (table view)."""
    date_from, date_to = resolve_requested_range(
        request.date_range_preset, request.date_from, request.date_to, date.today()
    )
    table = await service.compute_table(
        company_id=company_id,
        metric_ids=list(dict.fromkeys(request.metric_ids)),
        date_from=date_from,
        date_to=date_to,
        granularity=request.granularity,
    )
    return _table_response(table)


# ---------------------------------------------------------------------------
# Formula preview endpoint
# ---------------------------------------------------------------------------


@router.post("/formulas/preview", response_model=FormulaPreviewResponse, summary="Preview a formula draft")
async def preview_formula(
    request: FormulaPreviewRequest,
    company_id: Annotated[str, Depends(get_company_id)],
    service: Annotated[PreviewService, Depends(_get_preview_service)],
) -> FormulaPreviewResponse:
    """Evaluate an unsaved formula over the trailing months.

    Incomplete drafts return empty values rather than an error.
    """
    values = await service.preview_formula(
        company_id=company_id,
        draft=request.draft,
        preview_periods=request.periods,
        metric_id=request.metric_id,
    )
    return FormulaPreviewResponse(
        complete=request.draft.is_complete(),
        generation=request.generation,
        values=[
            PreviewValueResponse(
                period_date=month,
                label=period_for(month, Granularity.MONTH).label,
                value=value,
            )
            for month, value in values.items()
        ],
    )


# ---------------------------------------------------------------------------
# Saved chart endpoints
# ---------------------------------------------------------------------------


@router.get("/charts", response_model=list[SavedChartResponse], summary="List saved charts")
async def list_charts(
    company_id: Annotated[str, Depends(get_company_id)],
    service: Annotated[SavedChartService, Depends(_get_chart_service)],
) -> list[SavedChartResponse]:
    """List the company's saved charts, newest first."""
    charts = await service.list_charts(company_id)
    return [SavedChartResponse.model_validate(c) for c in charts]


@router.post(
    "/charts",
    response_model=SavedChartResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Save a chart",
)
async def create_chart(
    request: CreateSavedChartRequest,
    company_id: Annotated[str, Depends(get_company_id)],
    service: Annotated[SavedChartService, Depends(_get_chart_service)],
) -> SavedChartResponse:
    """Save a KPI chart of up to four metrics over a preset or custom date range."""
    chart = await service.create_chart(
        company_id=company_id,
        name=request.name,
        metric_ids=request.metric_ids,
        chart_type=request.chart_type,
        granularity=request.granularity,
        date_range_preset=request.date_range_preset,
        custom_start_date=request.custom_start_date,
        custom_end_date=request.custom_end_date,
        created_by=request.created_by,
    )
    return SavedChartResponse.model_validate(chart)


@router.get("/charts/{chart_id}", response_model=SavedChartResponse, summary="Get a saved chart")
async def get_chart(
    chart_id: uuid.UUID,
    company_id: Annotated[str, Depends(get_company_id)],
    service: Annotated[SavedChartService, Depends(_get_chart_service)],
) -> SavedChartResponse:
    """Return one saved chart."""
    chart = await service.get_chart(company_id, chart_id)
    return SavedChartResponse.model_validate(chart)


@router.delete(
    "/charts/{chart_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a saved chart",
)
async def delete_chart(
    chart_id: uuid.UUID,
    company_id: Annotated[str, Depends(get_company_id)],
    service: Annotated[SavedChartService, Depends(_get_chart_service)],
) -> None:
    """Delete a saved chart. Its metrics are not affected."""
    await service.delete_chart(company_id, chart_id)


@router.get("/charts/{chart_id}/series", response_model=SeriesTableResponse, summary="Series of a saved chart")
async def get_chart_series(
    chart_id: uuid.UUID,
    company_id: Annotated[str, Depends(get_company_id)],
    service: Annotated[SavedChartService, Depends(_get_chart_service)],
) -> SeriesTableResponse:
    """Compute every metric on a saved chart over the chart's date range."""
    _, table = await service.chart_series(company_id, chart_id)
    return _table_response(table)
