"""Calculated-metric formulas as a closed, discriminated union.

Eight variants, each a frozen pydantic model tagged by ``type``:

  division, multiplication, difference: two operands (numerator, denominator)
  sum: two or more operands
  cumulative, year_to_date, percentage_change: one source metric
  rolling_average: one source metric plus a window size

Every variant carries its own display metadata (``format`` and
``decimal_places``). The persisted JSON shape keeps the camelCase layout
already stored in ``rep_metrics.calculation_formula``::

    {"type": "division", "operands": {"numerator": "...", "denominator": "..."},
     "multiplyBy100": true, "format": "percentage", "decimalPlaces": 1}

Both the stored layout and flat snake_case payloads are accepted on input.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Annotated, Any, Literal, Union, assert_never

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, model_validator

from aumos_reporting_metrics.errors import FormulaValidationError

FormulaType = Literal[
    "division",
    "multiplication",
    "difference",
    "sum",
    "cumulative",
    "year_to_date",
    "percentage_change",
    "rolling_average",
]


class OutputFormat(str, Enum):
    """How a calculated value is displayed."""

    NUMBER = "number"
    PERCENTAGE = "percentage"
    CURRENCY = "currency"


def _flatten_operands(data: Any) -> Any:
    """Lift the stored ``operands`` object to top-level fields."""
    if not isinstance(data, dict) or not isinstance(data.get("operands"), dict):
        return data
    flattened = {key: value for key, value in data.items() if key != "operands"}
    for key, value in data["operands"].items():
        flattened.setdefault(key, value)
    return flattened


class _FormulaBase(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    format: OutputFormat = OutputFormat.NUMBER
    decimal_places: int = Field(default=2, ge=0, le=10, alias="decimalPlaces")

    @model_validator(mode="before")
    @classmethod
    def _accept_stored_layout(cls, data: Any) -> Any:
        return _flatten_operands(data)


class DivisionFormula(_FormulaBase):
    """numerator / denominator, optionally scaled to a percentage."""

    type: Literal["division"] = "division"
    numerator: str = Field(min_length=1)
    denominator: str = Field(min_length=1)
    multiply_by_100: bool = Field(default=False, alias="multiplyBy100")


class MultiplicationFormula(_FormulaBase):
    type: Literal["multiplication"] = "multiplication"
    numerator: str = Field(min_length=1)
    denominator: str = Field(min_length=1)


class DifferenceFormula(_FormulaBase):
    type: Literal["difference"] = "difference"
    numerator: str = Field(min_length=1)
    denominator: str = Field(min_length=1)


class SumFormula(_FormulaBase):
    """Sum of two or more metrics; missing operands count as zero."""

    type: Literal["sum"] = "sum"
    metric_ids: list[str] = Field(min_length=2, alias="metricIds")


class CumulativeFormula(_FormulaBase):
    type: Literal["cumulative"] = "cumulative"
    source_metric_id: str = Field(min_length=1, alias="sourceMetricId")


class YearToDateFormula(_FormulaBase):
    type: Literal["year_to_date"] = "year_to_date"
    source_metric_id: str = Field(min_length=1, alias="sourceMetricId")


class PercentageChangeFormula(_FormulaBase):
    type: Literal["percentage_change"] = "percentage_change"
    source_metric_id: str = Field(min_length=1, alias="sourceMetricId")


class RollingAverageFormula(_FormulaBase):
    """Mean of the non-missing values in a trailing window of months."""

    type: Literal["rolling_average"] = "rolling_average"
    source_metric_id: str = Field(min_length=1, alias="sourceMetricId")
    window_size: int = Field(ge=2, le=120, alias="rollingPeriods")


Formula = Annotated[
    Union[
        DivisionFormula,
        MultiplicationFormula,
        DifferenceFormula,
        SumFormula,
        CumulativeFormula,
        YearToDateFormula,
        PercentageChangeFormula,
        RollingAverageFormula,
    ],
    Field(discriminator="type"),
]

_FORMULA_ADAPTER: TypeAdapter[Formula] = TypeAdapter(Formula)


def parse_formula(raw: str | dict[str, Any]) -> Formula:
    """Parse a stored or submitted formula.

    Args:
        raw: JSON text or an already-decoded mapping.

    Returns:
        The typed Formula variant.

    Raises:
        FormulaValidationError: If the payload is not a complete, valid formula.
    """
    try:
        data = json.loads(raw) if isinstance(raw, str) else raw
        return _FORMULA_ADAPTER.validate_python(data)
    except json.JSONDecodeError as exc:
        raise FormulaValidationError("Formula is not valid JSON", details={"error": str(exc)}) from exc
    except ValidationError as exc:
        raise FormulaValidationError(
            "Formula is incomplete or invalid",
            details={"errors": exc.errors(include_url=False, include_context=False)},
        ) from exc


def operand_ids(formula: Formula) -> list[str]:
    """Return the metric ids a formula reads, in declaration order."""
    match formula:
        case DivisionFormula() | MultiplicationFormula() | DifferenceFormula():
            return [formula.numerator, formula.denominator]
        case SumFormula():
            return list(formula.metric_ids)
        case CumulativeFormula() | YearToDateFormula() | PercentageChangeFormula() | RollingAverageFormula():
            return [formula.source_metric_id]
        case _:
            assert_never(formula)


def formula_to_storage(formula: Formula) -> dict[str, Any]:
    """Serialize a formula to the persisted camelCase layout."""
    data: dict[str, Any] = {
        "type": formula.type,
        "format": formula.format.value,
        "decimalPlaces": formula.decimal_places,
    }
    match formula:
        case DivisionFormula():
            data["operands"] = {"numerator": formula.numerator, "denominator": formula.denominator}
            data["multiplyBy100"] = formula.multiply_by_100
        case MultiplicationFormula() | DifferenceFormula():
            data["operands"] = {"numerator": formula.numerator, "denominator": formula.denominator}
        case SumFormula():
            data["operands"] = {"metricIds": list(formula.metric_ids)}
        case CumulativeFormula() | YearToDateFormula() | PercentageChangeFormula():
            data["sourceMetricId"] = formula.source_metric_id
        case RollingAverageFormula():
            data["sourceMetricId"] = formula.source_metric_id
            data["rollingPeriods"] = formula.window_size
        case _:
            assert_never(formula)
    return data


class FormulaDraft(BaseModel):
    """A formula still being edited; any operand may be missing.

    The formula builder sends one of these on every selection change. A draft
    that cannot be evaluated yet is not an error: ``to_formula`` returns None
    and the preview shows empty values.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: FormulaType
    numerator: str | None = None
    denominator: str | None = None
    metric_ids: list[str] = Field(default_factory=list, alias="metricIds")
    source_metric_id: str | None = Field(default=None, alias="sourceMetricId")
    window_size: int | None = Field(default=None, alias="rollingPeriods")
    multiply_by_100: bool = Field(default=False, alias="multiplyBy100")
    format: OutputFormat = OutputFormat.NUMBER
    decimal_places: int = Field(default=2, ge=0, le=10, alias="decimalPlaces")

    @model_validator(mode="before")
    @classmethod
    def _accept_stored_layout(cls, data: Any) -> Any:
        return _flatten_operands(data)

    def is_complete(self) -> bool:
        """Whether every operand the draft's type needs has been chosen."""
        return self.to_formula() is not None

    def to_formula(self) -> Formula | None:
        """Build the complete Formula, or None while operands are missing."""
        display = {"format": self.format, "decimal_places": self.decimal_places}
        if self.type in ("division", "multiplication", "difference"):
            if not self.numerator or not self.denominator:
                return None
            operands: dict[str, Any] = {"numerator": self.numerator, "denominator": self.denominator}
            if self.type == "division":
                operands["multiply_by_100"] = self.multiply_by_100
        elif self.type == "sum":
            chosen = [metric_id for metric_id in self.metric_ids if metric_id]
            if len(chosen) < 2:
                return None
            operands = {"metric_ids": chosen}
        elif self.type == "rolling_average":
            if not self.source_metric_id or self.window_size is None or self.window_size < 2:
                return None
            operands = {"source_metric_id": self.source_metric_id, "window_size": self.window_size}
        else:
            if not self.source_metric_id:
                return None
            operands = {"source_metric_id": self.source_metric_id}

        try:
            return _FORMULA_ADAPTER.validate_python({"type": self.type, **operands, **display})
        except ValidationError:
            return None
