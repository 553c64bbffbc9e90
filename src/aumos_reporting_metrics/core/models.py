"""SQLAlchemy ORM models for the AumOS Reporting Metrics service.

All tables use the `rep_` prefix. Company-owned tables extend
CompanyScopedModel, which supplies id (UUID), company_id, created_at and
updated_at columns.

Domain model:
  ReportingCategory  : Grouping of metrics (optionally nested one level) for a company
  ReportingMetric    : A native or calculated metric definition
  MetricValue        : One stored value per (metric, month); manual or synced
  SavedChart         : A saved KPI chart (metrics, date range, granularity)
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from aumos_reporting_metrics.database import Base, CompanyScopedModel


class ReportingCategory(CompanyScopedModel):
    """A reporting view that groups metrics, e.g. "Paid Performance".

    Parent categories render an overview of their children's metrics.

    Table: rep_categories
    """

    __tablename__ = "rep_categories"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="URL-safe identifier, unique per company",
    )
    parent_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("rep_categories.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (UniqueConstraint("company_id", "slug", name="uq_rep_categories_company_slug"),)


class ReportingMetric(CompanyScopedModel):
    """Definition of a native or calculated metric.

    A native metric gets its values from manual entry or an integration sync.
    A calculated metric carries a formula (JSON, see core/formulas.py) and is
    computed on read; it only has stored values where a user overrode a month.

    Table: rep_metrics
    """

    __tablename__ = "rep_metrics"

    category_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("rep_categories.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Home category (exactly one)",
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    source: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="Free-text source label shown under the metric name",
    )
    integration_type: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
        comment="google_analytics | google_search_console | hubspot | google_ads | linkedin_ads | meta_ads | manual",
    )
    integration_field: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="Provider field the sync job writes into this metric",
    )
    is_calculated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    calculation_formula: Mapped[dict[str, Any] | None] = mapped_column(
        JSONB,
        nullable=True,
        comment="Formula JSON; present iff is_calculated",
    )
    visible_in_categories: Mapped[list[str]] = mapped_column(
        JSONB,
        nullable=False,
        default=list,
        comment="Category ids where this metric is also shown read-only",
    )
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "(is_calculated AND calculation_formula IS NOT NULL) "
            "OR (NOT is_calculated AND calculation_formula IS NULL)",
            name="ck_rep_metrics_formula_matches_flag",
        ),
        Index("ix_rep_metrics_company_category", "company_id", "category_id"),
    )


class MetricValue(Base):
    """A stored value of one metric for one calendar month.

    ``period_date`` is always the first day of the month. At most one row
    exists per (metric_id, period_date); writers upsert on that key.

    Table: rep_metric_values
    """

    __tablename__ = "rep_metric_values"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    metric_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("rep_metrics.id", ondelete="CASCADE"),
        nullable=False,
    )
    period_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        comment="First day of the month this value belongs to",
    )
    value: Mapped[float | None] = mapped_column(Float, nullable=True)
    is_manual_override: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="True for user edits, False for values written by sync jobs or imports",
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
    updated_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    __table_args__ = (
        UniqueConstraint("metric_id", "period_date", name="uq_rep_metric_values_metric_period"),
        CheckConstraint("EXTRACT(DAY FROM period_date) = 1", name="ck_rep_metric_values_first_of_month"),
        Index("ix_rep_metric_values_period", "period_date"),
    )


class SavedChart(CompanyScopedModel):
    """A saved KPI chart: up to four metrics over a date range at a granularity.

    Either ``date_range_preset`` or the custom start/end pair defines the range.

    Table: rep_saved_charts
    """

    __tablename__ = "rep_saved_charts"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    metric_ids: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)
    chart_type: Mapped[str] = mapped_column(String(20), nullable=False, default="line", comment="line | bar")
    date_range_preset: Mapped[str | None] = mapped_column(String(50), nullable=True)
    custom_start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    custom_end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    granularity: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="month",
        comment="day | week | month | quarter | year",
    )
    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
