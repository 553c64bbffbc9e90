"""API endpoint tests for AumOS Reporting Metrics.

Service factories are overridden with services over the in-memory
repositories from conftest, so no database is needed.
"""

import uuid
from collections.abc import Callable, Iterator
from datetime import date

import pytest
from fastapi.testclient import TestClient

from aumos_reporting_metrics.api import router as router_module
from aumos_reporting_metrics.core.formulas import CumulativeFormula, SumFormula
from aumos_reporting_metrics.core.models import ReportingCategory, ReportingMetric
from aumos_reporting_metrics.core.preview import PreviewService
from aumos_reporting_metrics.core.services import (
    CategoryService,
    MetricDefinitionService,
    MetricSeriesService,
    MetricValueService,
    SavedChartService,
)
from aumos_reporting_metrics.main import app
from aumos_reporting_metrics.settings import Settings


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def headers(company_id: str) -> dict[str, str]:
    """Company scope header for test requests."""
    return {"X-Company-ID": company_id}


@pytest.fixture
def client(  # type: ignore[no-untyped-def]
    category_repo,
    definition_repo,
    value_repo,
    chart_repo,
    settings: Settings,
) -> Iterator[TestClient]:
    """TestClient whose services run over the in-memory repositories."""
    series_service = MetricSeriesService(definition_repo=definition_repo, value_repo=value_repo, settings=settings)
    overrides = {
        router_module._get_category_service: lambda: CategoryService(
            category_repo=category_repo, definition_repo=definition_repo
        ),
        router_module._get_definition_service: lambda: MetricDefinitionService(
            category_repo=category_repo, definition_repo=definition_repo, value_repo=value_repo
        ),
        router_module._get_value_service: lambda: MetricValueService(
            definition_repo=definition_repo, value_repo=value_repo
        ),
        router_module._get_series_service: lambda: series_service,
        router_module._get_preview_service: lambda: PreviewService(
            definition_repo=definition_repo, value_repo=value_repo, settings=settings
        ),
        router_module._get_chart_service: lambda: SavedChartService(
            chart_repo=chart_repo,
            definition_repo=definition_repo,
            series_service=series_service,
            settings=settings,
        ),
    }
    app.dependency_overrides.update(overrides)
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Service-level endpoints
# ---------------------------------------------------------------------------


class TestHealth:
    def test_health(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_company_header_is_required(self, client: TestClient) -> None:
        """Requests without X-Company-ID are rejected before reaching a service."""
        response = client.get("/api/v1/reporting/categories")

        assert response.status_code == 422


# ---------------------------------------------------------------------------
# Category endpoint tests
# ---------------------------------------------------------------------------


class TestCategoryEndpoints:
    """Tests for /api/v1/reporting/categories endpoints."""

    def test_initialize_creates_default_tree(self, client: TestClient, headers: dict[str, str]) -> None:
        response = client.post("/api/v1/reporting/categories/initialize", headers=headers)

        assert response.status_code == 200
        slugs = {category["slug"] for category in response.json()}
        assert slugs == {
            "marketing-performance",
            "organic-performance",
            "paid-performance",
            "social-performance",
            "sales-performance",
            "sales-activity",
            "sales-outcome",
        }

    def test_category_metrics_view(
        self,
        client: TestClient,
        headers: dict[str, str],
        category: ReportingCategory,
        add_metric: Callable[..., ReportingMetric],
    ) -> None:
        metric = add_metric("Ad Spend")

        response = client.get(f"/api/v1/reporting/categories/{category.id}/metrics", headers=headers)

        assert response.status_code == 200
        body = response.json()
        assert body["category"]["slug"] == "paid-performance"
        assert [m["id"] for m in body["home_metrics"]] == [str(metric.id)]
        assert body["shared_metrics"] == []

    def test_unknown_category_is_404(self, client: TestClient, headers: dict[str, str]) -> None:
        response = client.get(f"/api/v1/reporting/categories/{uuid.uuid4()}/metrics", headers=headers)

        assert response.status_code == 404
        assert response.json()["error_code"] == "NOT_FOUND"


# ---------------------------------------------------------------------------
# Metric endpoint tests
# ---------------------------------------------------------------------------


class TestMetricEndpoints:
    """Tests for /api/v1/reporting/metrics endpoints."""

    def test_create_native_metric(
        self,
        client: TestClient,
        headers: dict[str, str],
        category: ReportingCategory,
    ) -> None:
        response = client.post(
            "/api/v1/reporting/metrics",
            headers=headers,
            json={"category_id": str(category.id), "name": "Sessions", "integration_type": "google_analytics"},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["is_calculated"] is False
        assert body["calculation_formula"] is None

    def test_create_metric_rejects_unknown_integration(
        self,
        client: TestClient,
        headers: dict[str, str],
        category: ReportingCategory,
    ) -> None:
        response = client.post(
            "/api/v1/reporting/metrics",
            headers=headers,
            json={"category_id": str(category.id), "name": "Sessions", "integration_type": "myspace"},
        )

        assert response.status_code == 422

    def test_create_calculated_metric_from_stored_layout(
        self,
        client: TestClient,
        headers: dict[str, str],
        category: ReportingCategory,
        add_metric: Callable[..., ReportingMetric],
    ) -> None:
        clicks = add_metric("Clicks")
        impressions = add_metric("Impressions")

        response = client.post(
            "/api/v1/reporting/metrics/calculated",
            headers=headers,
            json={
                "category_id": str(category.id),
                "name": "CTR",
                "formula": {
                    "type": "division",
                    "operands": {"numerator": str(clicks.id), "denominator": str(impressions.id)},
                    "multiplyBy100": True,
                    "format": "percentage",
                    "decimalPlaces": 1,
                },
            },
        )

        assert response.status_code == 201
        body = response.json()
        assert body["is_calculated"] is True
        assert body["calculation_formula"]["operands"] == {
            "numerator": str(clicks.id),
            "denominator": str(impressions.id),
        }

    def test_sum_with_one_operand_is_rejected(
        self,
        client: TestClient,
        headers: dict[str, str],
        category: ReportingCategory,
        add_metric: Callable[..., ReportingMetric],
    ) -> None:
        only = add_metric("Leads")

        response = client.post(
            "/api/v1/reporting/metrics/calculated",
            headers=headers,
            json={
                "category_id": str(category.id),
                "name": "Total",
                "formula": {"type": "sum", "operands": {"metricIds": [str(only.id)]}},
            },
        )

        assert response.status_code == 422

    def test_unknown_operand_is_rejected(
        self,
        client: TestClient,
        headers: dict[str, str],
        category: ReportingCategory,
    ) -> None:
        response = client.post(
            "/api/v1/reporting/metrics/calculated",
            headers=headers,
            json={
                "category_id": str(category.id),
                "name": "Running",
                "formula": {"type": "cumulative", "sourceMetricId": str(uuid.uuid4())},
            },
        )

        assert response.status_code == 422
        assert response.json()["error_code"] == "INVALID_FORMULA"

    def test_formula_update_closing_a_cycle_is_rejected(
        self,
        client: TestClient,
        headers: dict[str, str],
        add_metric: Callable[..., ReportingMetric],
    ) -> None:
        leads = add_metric("Leads")
        running = add_metric("Running", formula=CumulativeFormula(source_metric_id=str(leads.id)))
        total = add_metric("Total", formula=SumFormula(metric_ids=[str(running.id), str(leads.id)]))

        response = client.put(
            f"/api/v1/reporting/metrics/{running.id}/formula",
            headers=headers,
            json={"formula": {"type": "cumulative", "sourceMetricId": str(total.id)}},
        )

        assert response.status_code == 422
        body = response.json()
        assert body["error_code"] == "FORMULA_CYCLE"
        assert body["details"]["chain"] == [str(running.id), str(total.id), str(running.id)]

    def test_patch_rejects_null_name(
        self,
        client: TestClient,
        headers: dict[str, str],
        add_metric: Callable[..., ReportingMetric],
    ) -> None:
        metric = add_metric("Sessions")

        response = client.patch(f"/api/v1/reporting/metrics/{metric.id}", headers=headers, json={"name": None})

        assert response.status_code == 422

    def test_patch_renames_metric(
        self,
        client: TestClient,
        headers: dict[str, str],
        add_metric: Callable[..., ReportingMetric],
    ) -> None:
        metric = add_metric("Sessions")

        response = client.patch(f"/api/v1/reporting/metrics/{metric.id}", headers=headers, json={"name": "Visits"})

        assert response.status_code == 200
        assert response.json()["name"] == "Visits"

    def test_delete_metric(
        self,
        client: TestClient,
        headers: dict[str, str],
        add_metric: Callable[..., ReportingMetric],
        definition_repo,  # type: ignore[no-untyped-def]
    ) -> None:
        metric = add_metric("Sessions")

        response = client.delete(f"/api/v1/reporting/metrics/{metric.id}", headers=headers)

        assert response.status_code == 204
        assert metric.id not in definition_repo.rows

    def test_metric_of_another_company_is_404(
        self,
        client: TestClient,
        add_metric: Callable[..., ReportingMetric],
    ) -> None:
        metric = add_metric("Sessions")

        response = client.delete(f"/api/v1/reporting/metrics/{metric.id}", headers={"X-Company-ID": "someone-else"})

        assert response.status_code == 404


# ---------------------------------------------------------------------------
# Value and series endpoint tests
# ---------------------------------------------------------------------------


class TestValueAndSeriesEndpoints:
    """Tests for value writes and series reads."""

    def test_put_value_normalizes_to_month_start(
        self,
        client: TestClient,
        headers: dict[str, str],
        add_metric: Callable[..., ReportingMetric],
    ) -> None:
        metric = add_metric("Sessions")

        response = client.put(
            f"/api/v1/reporting/metrics/{metric.id}/values/2025-02-17",
            headers=headers,
            json={"value": 1200.5},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["period_date"] == "2025-02-01"
        assert body["value"] == 1200.5
        assert body["is_manual_override"] is True

    def test_put_null_value_is_accepted(
        self,
        client: TestClient,
        headers: dict[str, str],
        add_metric: Callable[..., ReportingMetric],
    ) -> None:
        metric = add_metric("Sessions")

        response = client.put(
            f"/api/v1/reporting/metrics/{metric.id}/values/2025-02-01",
            headers=headers,
            json={"value": None},
        )

        assert response.status_code == 200
        assert response.json()["value"] is None

    def test_metric_series(
        self,
        client: TestClient,
        headers: dict[str, str],
        add_metric: Callable[..., ReportingMetric],
        value_repo,  # type: ignore[no-untyped-def]
    ) -> None:
        leads = add_metric("Leads")
        running = add_metric("Running", formula=CumulativeFormula(source_metric_id=str(leads.id)))
        value_repo.seed(leads.id, date(2024, 12, 1), 10)
        value_repo.seed(leads.id, date(2025, 2, 1), 5)

        response = client.get(
            f"/api/v1/reporting/metrics/{running.id}/series",
            headers=headers,
            params={"granularity": "month", "date_from": "2025-01-01", "date_to": "2025-03-31"},
        )

        assert response.status_code == 200
        points = response.json()["points"]
        assert [p["label"] for p in points] == ["Jan 2025", "Feb 2025", "Mar 2025"]
        assert [p["value"] for p in points] == [10.0, 15.0, 15.0]

    def test_metric_series_needs_a_range(
        self,
        client: TestClient,
        headers: dict[str, str],
        add_metric: Callable[..., ReportingMetric],
    ) -> None:
        metric = add_metric("Sessions")

        response = client.get(f"/api/v1/reporting/metrics/{metric.id}/series", headers=headers)

        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_REQUEST"

    def test_series_table(
        self,
        client: TestClient,
        headers: dict[str, str],
        add_metric: Callable[..., ReportingMetric],
        value_repo,  # type: ignore[no-untyped-def]
    ) -> None:
        a = add_metric("A")
        b = add_metric("B")
        value_repo.seed(a.id, date(2025, 1, 1), 1)
        value_repo.seed(b.id, date(2025, 3, 1), 2)

        response = client.post(
            "/api/v1/reporting/series",
            headers=headers,
            json={
                "metric_ids": [str(a.id), str(b.id)],
                "granularity": "quarter",
                "date_from": "2025-01-01",
                "date_to": "2025-03-31",
            },
        )

        assert response.status_code == 200
        series = response.json()["series"]
        assert [s["metric_id"] for s in series] == [str(a.id), str(b.id)]
        assert [s["points"][0]["value"] for s in series] == [1.0, 2.0]
        assert series[0]["points"][0]["label"] == "Q1 2025"

    def test_series_table_rejects_reversed_range(self, client: TestClient, headers: dict[str, str]) -> None:
        response = client.post(
            "/api/v1/reporting/series",
            headers=headers,
            json={"metric_ids": [str(uuid.uuid4())], "date_from": "2025-03-01", "date_to": "2025-01-01"},
        )

        assert response.status_code == 422


# ---------------------------------------------------------------------------
# Formula preview endpoint tests
# ---------------------------------------------------------------------------


class TestFormulaPreviewEndpoint:
    """Tests for POST /api/v1/reporting/formulas/preview."""

    def test_incomplete_draft_returns_empty_values(self, client: TestClient, headers: dict[str, str]) -> None:
        response = client.post(
            "/api/v1/reporting/formulas/preview",
            headers=headers,
            json={
                "draft": {"type": "division", "numerator": str(uuid.uuid4())},
                "periods": ["2025-01-01", "2025-02-01", "2025-03-01"],
                "generation": 7,
            },
        )

        assert response.status_code == 200
        body = response.json()
        assert body["complete"] is False
        assert body["generation"] == 7
        assert [v["label"] for v in body["values"]] == ["Jan 2025", "Feb 2025", "Mar 2025"]
        assert all(v["value"] is None for v in body["values"])

    def test_complete_draft_is_evaluated(
        self,
        client: TestClient,
        headers: dict[str, str],
        add_metric: Callable[..., ReportingMetric],
        value_repo,  # type: ignore[no-untyped-def]
    ) -> None:
        revenue = add_metric("Revenue")
        spend = add_metric("Spend")
        value_repo.seed(revenue.id, date(2025, 1, 1), 300)
        value_repo.seed(spend.id, date(2025, 1, 1), 120)

        response = client.post(
            "/api/v1/reporting/formulas/preview",
            headers=headers,
            json={
                "draft": {
                    "type": "division",
                    "operands": {"numerator": str(revenue.id), "denominator": str(spend.id)},
                    "decimalPlaces": 1,
                },
                "periods": ["2025-01-20", "2025-02-01"],
            },
        )

        assert response.status_code == 200
        body = response.json()
        assert body["complete"] is True
        assert body["generation"] is None
        assert [(v["period_date"], v["value"]) for v in body["values"]] == [
            ("2025-01-01", 2.5),
            ("2025-02-01", None),
        ]


# ---------------------------------------------------------------------------
# Saved chart endpoint tests
# ---------------------------------------------------------------------------


class TestChartEndpoints:
    """Tests for /api/v1/reporting/charts endpoints."""

    def test_chart_lifecycle(
        self,
        client: TestClient,
        headers: dict[str, str],
        add_metric: Callable[..., ReportingMetric],
        value_repo,  # type: ignore[no-untyped-def]
    ) -> None:
        metric = add_metric("Sessions")
        value_repo.seed(metric.id, date(2025, 1, 1), 42)

        created = client.post(
            "/api/v1/reporting/charts",
            headers=headers,
            json={
                "name": "Traffic",
                "metric_ids": [str(metric.id)],
                "chart_type": "bar",
                "custom_start_date": "2025-01-01",
                "custom_end_date": "2025-02-28",
            },
        )
        assert created.status_code == 201
        chart_id = created.json()["id"]

        series = client.get(f"/api/v1/reporting/charts/{chart_id}/series", headers=headers)
        assert series.status_code == 200
        assert [p["value"] for p in series.json()["series"][0]["points"]] == [42.0, None]

        deleted = client.delete(f"/api/v1/reporting/charts/{chart_id}", headers=headers)
        assert deleted.status_code == 204
        assert client.get("/api/v1/reporting/charts", headers=headers).json() == []

    def test_chart_with_too_many_metrics_is_rejected(
        self,
        client: TestClient,
        headers: dict[str, str],
        add_metric: Callable[..., ReportingMetric],
    ) -> None:
        metric_ids = [str(add_metric(f"Metric {i}").id) for i in range(5)]

        response = client.post(
            "/api/v1/reporting/charts",
            headers=headers,
            json={"name": "Busy", "metric_ids": metric_ids, "date_range_preset": "last-month"},
        )

        assert response.status_code == 400
        assert response.json()["details"] == {"metric_count": 5}

    def test_unknown_chart_is_404(self, client: TestClient, headers: dict[str, str]) -> None:
        response = client.get(f"/api/v1/reporting/charts/{uuid.uuid4()}", headers=headers)

        assert response.status_code == 404
        assert response.json()["error_code"] == "NOT_FOUND"
