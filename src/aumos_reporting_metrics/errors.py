"""Error types raised by the reporting metrics service.

Services raise these; ``main.py`` translates them into HTTP responses.
Missing metric data is never an error (it is represented as ``None``).
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Stable machine-readable error codes returned to API clients."""

    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    INVALID_FORMULA = "INVALID_FORMULA"
    FORMULA_CYCLE = "FORMULA_CYCLE"
    INVALID_REQUEST = "INVALID_REQUEST"


class ReportingError(Exception):
    """Base class for all service errors.

    Attributes:
        message: Human-readable description.
        error_code: Machine-readable code.
        details: Optional structured context for the caller.
    """

    status_code: int = 400

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INVALID_REQUEST,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}


class NotFoundError(ReportingError):
    """A referenced resource does not exist in the caller's company scope."""

    status_code = 404

    def __init__(self, resource: str, resource_id: Any) -> None:
        super().__init__(
            message=f"{resource} {resource_id} not found",
            error_code=ErrorCode.NOT_FOUND,
            details={"resource": resource, "id": str(resource_id)},
        )


class ConflictError(ReportingError):
    """The request conflicts with existing state."""

    status_code = 409

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message=message, error_code=ErrorCode.CONFLICT, details=details)


class FormulaValidationError(ReportingError):
    """A formula is malformed or references metrics outside the company."""

    status_code = 422

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message=message, error_code=ErrorCode.INVALID_FORMULA, details=details)


class FormulaCycleError(ReportingError):
    """A calculated metric transitively depends on itself.

    Attributes:
        chain: Metric ids in resolution order, ending with the revisited id.
    """

    status_code = 422

    def __init__(self, chain: list[str]) -> None:
        self.chain = list(chain)
        super().__init__(
            message="Formula cycle detected: " + " -> ".join(self.chain),
            error_code=ErrorCode.FORMULA_CYCLE,
            details={"chain": self.chain},
        )
