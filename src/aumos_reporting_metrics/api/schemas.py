"""Pydantic request and response schemas for the AumOS Reporting Metrics API.

All API inputs and outputs are typed Pydantic models, never raw dicts.
Formulas are accepted in their stored camelCase layout or as flat
snake_case payloads (see core/formulas.py).
"""

import uuid
from datetime import date, datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, model_validator

from aumos_reporting_metrics.core.formulas import Formula, FormulaDraft
from aumos_reporting_metrics.core.periods import DateRangePreset, Granularity, Period

IntegrationType = Literal[
    "google_analytics",
    "google_search_console",
    "hubspot",
    "google_ads",
    "linkedin_ads",
    "meta_ads",
    "manual",
]


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


class CategoryResponse(BaseModel):
    """Response schema for a reporting category."""

    id: uuid.UUID
    company_id: str
    name: str
    slug: str
    parent_id: uuid.UUID | None
    sort_order: int
    created_at: datetime

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Metric definitions
# ---------------------------------------------------------------------------


class MetricResponse(BaseModel):
    """Response schema for a native or calculated metric definition."""

    id: uuid.UUID
    company_id: str
    category_id: uuid.UUID
    name: str
    source: str | None
    integration_type: str | None
    integration_field: str | None
    is_calculated: bool
    calculation_formula: dict[str, Any] | None
    visible_in_categories: list[str]
    sort_order: int
    created_by: str | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ChildCategoryMetricsResponse(BaseModel):
    """A child category and its home metrics, shown in a parent's overview."""

    category: CategoryResponse
    metrics: list[MetricResponse]


class CategoryMetricsResponse(BaseModel):
    """Everything a category view shows."""

    category: CategoryResponse
    home_metrics: list[MetricResponse]
    shared_metrics: list[MetricResponse]
    children: list[ChildCategoryMetricsResponse]


class CreateMetricRequest(BaseModel):
    """Request body for adding a native metric."""

    category_id: uuid.UUID
    name: str = Field(min_length=1, max_length=255)
    source: str | None = Field(default=None, max_length=255)
    integration_type: IntegrationType | None = None
    integration_field: str | None = Field(default=None, max_length=255)
    visible_in_categories: list[uuid.UUID] = Field(default_factory=list)
    sort_order: int = Field(default=0, ge=0)
    created_by: str | None = Field(default=None, max_length=255)


class CreateCalculatedMetricRequest(BaseModel):
    """Request body for adding a calculated metric; the formula must be complete."""

    category_id: uuid.UUID
    name: str = Field(min_length=1, max_length=255)
    formula: Formula
    source: str | None = Field(default=None, max_length=255)
    visible_in_categories: list[uuid.UUID] = Field(default_factory=list)
    sort_order: int = Field(default=0, ge=0)
    created_by: str | None = Field(default=None, max_length=255)


class UpdateMetricRequest(BaseModel):
    """Partial update of a metric definition; omitted fields are left unchanged."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    source: str | None = Field(default=None, max_length=255)
    category_id: uuid.UUID | None = None
    integration_type: IntegrationType | None = None
    integration_field: str | None = Field(default=None, max_length=255)
    visible_in_categories: list[uuid.UUID] | None = None
    sort_order: int | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _reject_null_required_fields(self) -> "UpdateMetricRequest":
        for name in ("name", "category_id", "sort_order"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


class UpdateFormulaRequest(BaseModel):
    """Request body for replacing a calculated metric's formula."""

    formula: Formula


# ---------------------------------------------------------------------------
# Metric values
# ---------------------------------------------------------------------------


class UpsertMetricValueRequest(BaseModel):
    """Request body for setting one month's value.

    ``value`` may be null: an empty stored value still overrides a
    calculated result for that month.
    """

    value: Annotated[float, Field(allow_inf_nan=False)] | None
    is_manual_override: bool = True
    updated_by: str | None = Field(default=None, max_length=255)


class MetricValueResponse(BaseModel):
    """Response schema for a stored monthly value."""

    id: uuid.UUID
    metric_id: uuid.UUID
    period_date: date
    value: float | None
    is_manual_override: bool
    updated_at: datetime
    updated_by: str | None

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Series
# ---------------------------------------------------------------------------


class SeriesPointResponse(BaseModel):
    """One display period of a metric series."""

    period_start: date
    period_end: date
    label: str
    value: float | None

    @classmethod
    def from_point(cls, period: Period, value: float | None) -> "SeriesPointResponse":
        return cls(period_start=period.start, period_end=period.end, label=period.label, value=value)


class MetricSeriesResponse(BaseModel):
    """A metric's values over the requested periods."""

    metric_id: uuid.UUID
    granularity: Granularity
    date_from: date
    date_to: date
    points: list[SeriesPointResponse]


class SeriesTableRequest(BaseModel):
    """Request body for computing several metrics over the same periods.

    Either ``date_range_preset`` or both ``date_from`` and ``date_to`` are required.
    """

    metric_ids: list[uuid.UUID] = Field(min_length=1, max_length=200)
    granularity: Granularity = Granularity.MONTH
    date_range_preset: DateRangePreset | None = None
    date_from: date | None = None
    date_to: date | None = None

    @model_validator(mode="after")
    def _check_range(self) -> "SeriesTableRequest":
        if self.date_range_preset is None and (self.date_from is None or self.date_to is None):
            raise ValueError("Provide date_range_preset or both date_from and date_to")
        if self.date_from is not None and self.date_to is not None and self.date_from > self.date_to:
            raise ValueError("date_from must not be after date_to")
        return self


class SeriesTableResponse(BaseModel):
    """Several metric series over shared periods."""

    granularity: Granularity
    date_from: date
    date_to: date
    series: list[MetricSeriesResponse]


# ---------------------------------------------------------------------------
# Formula preview
# ---------------------------------------------------------------------------


class FormulaPreviewRequest(BaseModel):
    """Request body for previewing a formula draft.

    ``generation`` is echoed back unchanged; clients apply a response only
    if its generation is newer than the last one they applied.
    """

    draft: FormulaDraft
    metric_id: uuid.UUID | None = None
    periods: list[date] | None = Field(default=None, min_length=1, max_length=24)
    generation: int | None = Field(default=None, ge=0)


class PreviewValueResponse(BaseModel):
    """A preview value for one month."""

    period_date: date
    label: str
    value: float | None


class FormulaPreviewResponse(BaseModel):
    """Preview values for a formula draft."""

    complete: bool
    generation: int | None
    values: list[PreviewValueResponse]


# ---------------------------------------------------------------------------
# Saved charts
# ---------------------------------------------------------------------------


class CreateSavedChartRequest(BaseModel):
    """Request body for saving a KPI chart."""

    name: str = Field(min_length=1, max_length=255)
    metric_ids: list[uuid.UUID] = Field(min_length=1)
    chart_type: Literal["line", "bar"] = "line"
    granularity: Granularity = Granularity.MONTH
    date_range_preset: DateRangePreset | None = None
    custom_start_date: date | None = None
    custom_end_date: date | None = None
    created_by: str | None = Field(default=None, max_length=255)


class SavedChartResponse(BaseModel):
    """Response schema for a saved chart."""

    id: uuid.UUID
    company_id: str
    name: str
    metric_ids: list[str]
    chart_type: str
    granularity: str
    date_range_preset: str | None
    custom_start_date: date | None
    custom_end_date: date | None
    created_by: str | None
    created_at: datetime

    model_config = {"from_attributes": True}
