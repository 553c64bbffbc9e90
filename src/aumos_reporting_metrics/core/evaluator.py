"""Formula evaluator for calculated metrics.

The evaluator works over a dense monthly *horizon*: every month from the
earliest stored value of any loaded metric to the last month a caller needs.
Temporal formulas (cumulative, year to date, rolling average, percentage
change) read history before the display window from the same horizon.

Operands that are themselves calculated metrics are resolved first, in
post-order over an explicit stack, so chain length is not bounded by the
interpreter stack. An operand's value at a month is its merged value: a stored row wins,
otherwise its own live result. Metric ids on the current resolution chain are
tracked; meeting one again raises FormulaCycleError.

Key invariants:
  - Missing data yields None, never an exception.
  - No value leaving the evaluator is NaN or infinite.
  - Results are rounded to the formula's decimal_places (half away from zero).
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Iterator, Mapping, Sequence
from datetime import date
from decimal import ROUND_HALF_UP, Context, Decimal
from typing import Callable, assert_never

from aumos_reporting_metrics.core.aggregation import sum_present
from aumos_reporting_metrics.core.formulas import (
    CumulativeFormula,
    DifferenceFormula,
    DivisionFormula,
    Formula,
    MultiplicationFormula,
    PercentageChangeFormula,
    RollingAverageFormula,
    SumFormula,
    YearToDateFormula,
    operand_ids,
)
from aumos_reporting_metrics.core.merge import MonthlySeries, merge_overrides
from aumos_reporting_metrics.core.periods import add_months, month_range
from aumos_reporting_metrics.errors import FormulaCycleError

# Wide enough for any finite float plus ten decimal places.
_ROUNDING_CONTEXT = Context(prec=340, rounding=ROUND_HALF_UP)


# ---------------------------------------------------------------------------
# Numeric helpers
# ---------------------------------------------------------------------------


def round_value(value: float | None, decimal_places: int) -> float | None:
    """Round to ``decimal_places``; None and non-finite values become None."""
    if value is None or not math.isfinite(value):
        return None
    exponent = Decimal(1).scaleb(-decimal_places)
    return float(Decimal(repr(value)).quantize(exponent, context=_ROUNDING_CONTEXT))


def _divide(numerator: float | None, denominator: float | None, multiply_by_100: bool) -> float | None:
    if numerator is None or denominator is None or denominator == 0:
        return None
    result = numerator / denominator
    return result * 100 if multiply_by_100 else result


def _pairwise(
    left: MonthlySeries,
    right: MonthlySeries,
    months: Sequence[date],
    operation: Callable[[float, float], float],
) -> MonthlySeries:
    result: MonthlySeries = {}
    for month in months:
        a, b = left.get(month), right.get(month)
        result[month] = None if a is None or b is None else operation(a, b)
    return result


def _running_total(source: MonthlySeries, months: Sequence[date], reset_yearly: bool) -> MonthlySeries:
    """Running sum from the source's first value; None before it, gaps count as 0."""
    result: MonthlySeries = {}
    started = False
    total = 0.0
    for month in months:
        if reset_yearly and month.month == 1:
            total = 0.0
        value = source.get(month)
        if value is not None:
            started = True
        if not started:
            result[month] = None
            continue
        total += value or 0.0
        result[month] = total
    return result


def _rolling_average(source: MonthlySeries, months: Sequence[date], window: int) -> MonthlySeries:
    result: MonthlySeries = {}
    for index, month in enumerate(months):
        window_values = [source.get(window_month) for window_month in months[max(0, index - window + 1) : index + 1]]
        present = [value for value in window_values if value is not None]
        result[month] = sum(present) / len(present) if present else None
    return result


def _percentage_change(source: MonthlySeries, months: Sequence[date]) -> MonthlySeries:
    result: MonthlySeries = {}
    for month in months:
        current = source.get(month)
        previous = source.get(add_months(month, -1))
        if current is None or previous is None or previous == 0:
            result[month] = None
        else:
            result[month] = (current - previous) / abs(previous) * 100
    return result


# ---------------------------------------------------------------------------
# Horizon and dependency graph
# ---------------------------------------------------------------------------


def build_horizon(
    display_months: Sequence[date],
    stored: Mapping[str, Mapping[date, float | None]],
) -> list[date]:
    """Monthly horizon covering all stored history and the display window.

    The horizon is never trimmed: running totals must see every stored month,
    however old, to stay the same whatever window is displayed.

    Args:
        display_months: Ordered monthly keys the caller will read.
        stored: Stored values per metric (only their months matter).

    Returns:
        Dense ordered monthly keys. Empty when ``display_months`` is empty.
    """
    if not display_months:
        return []
    first = display_months[0]
    last = display_months[-1]
    for series in stored.values():
        if series:
            first = min(first, min(series))
    return month_range(first, last)


def dependency_closure(formulas: Mapping[str, Formula | None], roots: Iterable[str]) -> set[str]:
    """All metric ids reachable from ``roots`` through formula operands (roots included)."""
    seen: set[str] = set()
    pending = list(roots)
    while pending:
        metric_id = pending.pop()
        if metric_id in seen:
            continue
        seen.add(metric_id)
        formula = formulas.get(metric_id)
        if formula is not None:
            pending.extend(operand_ids(formula))
    return seen


def check_for_cycles(formulas: Mapping[str, Formula | None], metric_id: str) -> None:
    """Raise FormulaCycleError if ``metric_id`` reaches a metric already on its chain.

    Walks operands iteratively so arbitrarily deep dependency chains are safe.
    """
    done: set[str] = set()
    chain: list[str] = []
    on_chain: set[str] = set()
    stack: list[tuple[str, Iterator[str] | None]] = [(metric_id, None)]

    while stack:
        current, children = stack[-1]
        if children is None:
            if current in on_chain:
                raise FormulaCycleError(chain[chain.index(current) :] + [current])
            formula = formulas.get(current)
            children = iter(operand_ids(formula)) if formula is not None else iter(())
            stack[-1] = (current, children)
            chain.append(current)
            on_chain.add(current)

        child = next(children, None)
        if child is None:
            stack.pop()
            chain.pop()
            on_chain.discard(current)
            done.add(current)
        elif child not in done:
            stack.append((child, None))


# ---------------------------------------------------------------------------
# Evaluator
# ---------------------------------------------------------------------------


class FormulaEvaluator:
    """Computes merged monthly series for native and calculated metrics.

    One evaluator serves one request: it reads a fixed snapshot of formulas
    and stored values, memoizes each resolved metric, and holds no other
    state. Two evaluators built from the same inputs return equal results.

    Args:
        formulas: Formula per metric id; None (or absent) marks a native metric.
        stored: Stored values per metric id; key presence means a row exists.
        horizon: Dense ordered monthly keys to evaluate over.
    """

    def __init__(
        self,
        formulas: Mapping[str, Formula | None],
        stored: Mapping[str, Mapping[date, float | None]],
        horizon: Sequence[date],
    ) -> None:
        self._formulas = dict(formulas)
        self._stored = stored
        self._horizon = list(horizon)
        self._resolved: dict[str, MonthlySeries] = {}
        self._chain: list[str] = []

    @property
    def horizon(self) -> list[date]:
        """The monthly keys this evaluator covers."""
        return list(self._horizon)

    def resolve(self, metric_id: str) -> MonthlySeries:
        """Return a metric's merged series: stored rows first, then live results.

        Operands are resolved in post-order with an explicit stack, so a
        metric can sit at the end of an arbitrarily long chain of calculated
        metrics.

        Raises:
            FormulaCycleError: If the metric depends on itself, directly or not.
        """
        cached = self._resolved.get(metric_id)
        if cached is not None:
            return cached

        base = len(self._chain)
        stack: list[Iterator[str]] = []
        try:
            stack.append(self._enter(metric_id))
            while stack:
                operand = next(stack[-1], None)
                if operand is None:
                    stack.pop()
                    self._finish(self._chain[-1])
                elif operand not in self._resolved:
                    stack.append(self._enter(operand))
        finally:
            del self._chain[base:]
        return self._resolved[metric_id]

    def _enter(self, metric_id: str) -> Iterator[str]:
        if metric_id in self._chain:
            raise FormulaCycleError(self._chain[self._chain.index(metric_id) :] + [metric_id])
        self._chain.append(metric_id)
        formula = self._formulas.get(metric_id)
        return iter(operand_ids(formula)) if formula is not None else iter(())

    def _finish(self, metric_id: str) -> None:
        # Every operand is already memoized, so evaluate() only reads the cache.
        formula = self._formulas.get(metric_id)
        computed = self.evaluate(formula) if formula is not None else None
        self._chain.pop()
        self._resolved[metric_id] = merge_overrides(self._horizon, self._stored.get(metric_id, {}), computed)

    def evaluate(self, formula: Formula) -> MonthlySeries:
        """Live result of a formula over the horizon, before any override.

        Operands are resolved through ``resolve``, so they carry their own
        overrides and trigger cycle detection.
        """
        months = self._horizon
        raw: MonthlySeries
        match formula:
            case DivisionFormula():
                numerator = self.resolve(formula.numerator)
                denominator = self.resolve(formula.denominator)
                raw = {
                    month: _divide(numerator.get(month), denominator.get(month), formula.multiply_by_100)
                    for month in months
                }
            case MultiplicationFormula():
                raw = _pairwise(
                    self.resolve(formula.numerator), self.resolve(formula.denominator), months, lambda a, b: a * b
                )
            case DifferenceFormula():
                raw = _pairwise(
                    self.resolve(formula.numerator), self.resolve(formula.denominator), months, lambda a, b: a - b
                )
            case SumFormula():
                operands = [self.resolve(metric_id) for metric_id in formula.metric_ids]
                raw = {month: sum_present([series.get(month) for series in operands]) for month in months}
            case CumulativeFormula():
                raw = _running_total(self.resolve(formula.source_metric_id), months, reset_yearly=False)
            case YearToDateFormula():
                raw = _running_total(self.resolve(formula.source_metric_id), months, reset_yearly=True)
            case RollingAverageFormula():
                raw = _rolling_average(self.resolve(formula.source_metric_id), months, formula.window_size)
            case PercentageChangeFormula():
                raw = _percentage_change(self.resolve(formula.source_metric_id), months)
            case _:
                assert_never(formula)

        return {month: round_value(value, formula.decimal_places) for month, value in raw.items()}
