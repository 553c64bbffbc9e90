"""Create initial rep_ schema tables.

Revision ID: 001_rep_initial
Revises:
Create Date: 2026-10-19
"""

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB, UUID

revision = "001_rep_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create all rep_ tables."""

    # rep_categories
    op.create_table(
        "rep_categories",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("company_id", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(255), nullable=False),
        sa.Column(
            "parent_id",
            UUID(as_uuid=True),
            sa.ForeignKey("rep_categories.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("sort_order", sa.Integer, nullable=False, server_default="0"),
        sa.UniqueConstraint("company_id", "slug", name="uq_rep_categories_company_slug"),
    )
    op.create_index("ix_rep_categories_company_id", "rep_categories", ["company_id"])
    op.create_index("ix_rep_categories_parent_id", "rep_categories", ["parent_id"])

    # rep_metrics
    op.create_table(
        "rep_metrics",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("company_id", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column(
            "category_id",
            UUID(as_uuid=True),
            sa.ForeignKey("rep_categories.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("source", sa.String(255), nullable=True),
        sa.Column("integration_type", sa.String(50), nullable=True),
        sa.Column("integration_field", sa.String(255), nullable=True),
        sa.Column("is_calculated", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("calculation_formula", JSONB, nullable=True),
        sa.Column("visible_in_categories", JSONB, nullable=False, server_default="[]"),
        sa.Column("sort_order", sa.Integer, nullable=False, server_default="0"),
        sa.Column("created_by", sa.String(255), nullable=True),
        sa.CheckConstraint(
            "(is_calculated AND calculation_formula IS NOT NULL) "
            "OR (NOT is_calculated AND calculation_formula IS NULL)",
            name="ck_rep_metrics_formula_matches_flag",
        ),
    )
    op.create_index("ix_rep_metrics_company_id", "rep_metrics", ["company_id"])
    op.create_index("ix_rep_metrics_category_id", "rep_metrics", ["category_id"])
    op.create_index("ix_rep_metrics_company_category", "rep_metrics", ["company_id", "category_id"])

    # rep_metric_values
    op.create_table(
        "rep_metric_values",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column(
            "metric_id",
            UUID(as_uuid=True),
            sa.ForeignKey("rep_metrics.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("period_date", sa.Date, nullable=False),
        sa.Column("value", sa.Float, nullable=True),
        sa.Column("is_manual_override", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_by", sa.String(255), nullable=True),
        sa.UniqueConstraint("metric_id", "period_date", name="uq_rep_metric_values_metric_period"),
        sa.CheckConstraint("EXTRACT(DAY FROM period_date) = 1", name="ck_rep_metric_values_first_of_month"),
    )
    op.create_index("ix_rep_metric_values_period", "rep_metric_values", ["period_date"])

    # rep_saved_charts
    op.create_table(
        "rep_saved_charts",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("company_id", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("metric_ids", JSONB, nullable=False, server_default="[]"),
        sa.Column("chart_type", sa.String(20), nullable=False, server_default="line"),
        sa.Column("date_range_preset", sa.String(50), nullable=True),
        sa.Column("custom_start_date", sa.Date, nullable=True),
        sa.Column("custom_end_date", sa.Date, nullable=True),
        sa.Column("granularity", sa.String(20), nullable=False, server_default="month"),
        sa.Column("created_by", sa.String(255), nullable=True),
    )
    op.create_index("ix_rep_saved_charts_company_id", "rep_saved_charts", ["company_id"])


def downgrade() -> None:
    """Drop all rep_ tables."""
    op.drop_table("rep_saved_charts")
    op.drop_table("rep_metric_values")
    op.drop_table("rep_metrics")
    op.drop_table("rep_categories")
