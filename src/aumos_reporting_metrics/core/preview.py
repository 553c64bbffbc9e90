"""Live preview of unsaved formula drafts.

The formula builder asks for a preview on every edit. A draft is evaluated
against the persisted operand series exactly like a saved calculated metric,
but nothing is written.

Overlapping previews are ordered by generation. HTTP clients get their
``generation`` echoed back and apply the rule themselves; PreviewGate
applies the same rule for in-process async callers that await
``preview_formula`` directly, such as a worker that drives a builder session.
"""

from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable, Sequence
from datetime import date
from typing import TypeVar

from aumos_reporting_metrics.core.evaluator import FormulaEvaluator, build_horizon, dependency_closure
from aumos_reporting_metrics.core.formulas import FormulaDraft
from aumos_reporting_metrics.core.interfaces import IMetricDefinitionRepository, IMetricValueRepository
from aumos_reporting_metrics.core.periods import month_start, trailing_months
from aumos_reporting_metrics.core.services import formula_map, load_stored_series
from aumos_reporting_metrics.errors import NotFoundError
from aumos_reporting_metrics.observability import get_logger
from aumos_reporting_metrics.settings import Settings

logger = get_logger(__name__)

T = TypeVar("T")

# Placeholder id for a draft that does not belong to a saved metric yet.
_DRAFT_METRIC_ID = "__draft__"


class PreviewGate:
    """Orders overlapping preview requests by generation number.

    ``issue`` hands out strictly increasing generations. A response may be
    applied only if its generation is newer than the last one applied, so a
    slow response for an older draft never replaces a newer result.
    """

    def __init__(self) -> None:
        self._issued = 0
        self._applied = 0

    @property
    def latest_applied(self) -> int:
        """Generation of the last accepted response (0 before any)."""
        return self._applied

    def issue(self) -> int:
        """Return the next generation number."""
        self._issued += 1
        return self._issued

    def try_apply(self, generation: int) -> bool:
        """Accept ``generation`` if it is newer than the last applied one."""
        if generation <= self._applied:
            return False
        self._applied = generation
        return True

    async def run(self, compute: Callable[[], Awaitable[T]]) -> T | None:
        """Issue a generation, await ``compute`` and return its result if still current.

        Returns None when a newer preview was applied while this one ran.
        """
        generation = self.issue()
        result = await compute()
        if not self.try_apply(generation):
            logger.debug("formula_preview_superseded", generation=generation, latest=self._applied)
            return None
        return result


class PreviewService:
    """Evaluate formula drafts over a short trailing window of months."""

    def __init__(
        self,
        definition_repo: IMetricDefinitionRepository,
        value_repo: IMetricValueRepository,
        settings: Settings,
    ) -> None:
        """Initialize PreviewService with required dependencies."""
        self._definition_repo = definition_repo
        self._value_repo = value_repo
        self._settings = settings

    def default_periods(self, today: date | None = None) -> list[date]:
        """The trailing ``preview_months`` months including the current one."""
        return trailing_months(today or date.today(), self._settings.preview_months)

    async def preview_formula(
        self,
        company_id: str,
        draft: FormulaDraft,
        preview_periods: Sequence[date] | None = None,
        metric_id: uuid.UUID | None = None,
    ) -> dict[date, float | None]:
        """Evaluate a draft formula without saving it.

        Args:
            company_id: Owning company of the operand metrics.
            draft: The formula being edited; operands may still be missing.
            preview_periods: Months to show (any day within the month); defaults
                to the trailing ``preview_months`` months.
            metric_id: The calculated metric being edited, if any. The draft
                replaces its formula and its stored overrides still apply.

        Returns:
            ``{month: value}`` for each preview month, oldest first. Every value
            is None while the draft is incomplete.

        Raises:
            NotFoundError: If ``metric_id`` does not belong to the company.
            FormulaCycleError: If the draft makes a metric depend on itself.
        """
        months = sorted({month_start(period) for period in (preview_periods or self.default_periods())})
        formula = draft.to_formula()
        if formula is None:
            logger.debug("formula_preview_incomplete", company_id=company_id, formula_type=draft.type)
            return {month: None for month in months}
        if not months:
            return {}

        definitions = await self._definition_repo.list_by_company(company_id)
        formulas = formula_map(definitions)
        known_ids = set(formulas)

        if metric_id is not None:
            target = str(metric_id)
            if target not in known_ids:
                raise NotFoundError("Metric", metric_id)
        else:
            target = _DRAFT_METRIC_ID
        formulas[target] = formula

        needed = dependency_closure(formulas, [target]) & known_ids
        stored = await load_stored_series(self._value_repo, needed, months[-1])
        horizon = build_horizon(months, stored)

        series = FormulaEvaluator(formulas, stored, horizon).resolve(target)

        logger.info(
            "formula_previewed",
            company_id=company_id,
            formula_type=formula.type,
            metric_id=str(metric_id) if metric_id is not None else None,
            months=len(months),
        )
        return {month: series.get(month) for month in months}
