"""Error taxonomy for the correlation domain.

Validation failures are expected outcomes: the pure validators return them as
``FieldError`` values and the service layer wraps them into ``ValidationError``
only at the boundary where a caller needs an exception.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence
    from uuid import UUID


class ValidationErrorKind(StrEnum):
    MISSING_FIELD = "missing_field"
    OUT_OF_RANGE = "out_of_range"
    STRUCTURALLY_INCOMPLETE = "structurally_incomplete"
    INVALID_EXPRESSION = "invalid_expression"
    INVALID_VALUE = "invalid_value"


@dataclass(frozen=True, slots=True, kw_only=True)
class FieldError:
    """One problem attributed to one input field."""

    field: str
    kind: ValidationErrorKind
    message: str


class CorrelationError(Exception):
    """Base class for all correlation domain errors."""


class ValidationError(CorrelationError):
    """Malformed input, reported with field attribution."""

    def __init__(self, errors: Sequence[FieldError], message: str | None = None) -> None:
        self.errors: tuple[FieldError, ...] = tuple(errors)
        summary = "; ".join(f"{error.field}: {error.message}" for error in self.errors)
        super().__init__(message or summary or "validation failed")

    @property
    def fields(self) -> tuple[str, ...]:
        return tuple(error.field for error in self.errors)

    @classmethod
    def single(
        cls,
        field: str,
        message: str,
        kind: ValidationErrorKind = ValidationErrorKind.INVALID_VALUE,
    ) -> ValidationError:
        return cls((FieldError(field=field, kind=kind, message=message),))


class RuleValidationError(ValidationError):
    """A rule create/update payload failed validation."""


class ThresholdValidationError(ValidationError):
    """A threshold configuration payload failed validation."""


class ConflictError(CorrelationError):
    """A concurrent writer already changed the target."""


class CaseAlreadyResolved(ConflictError):  # noqa: N818
    def __init__(self, case_id: UUID, status: str | None = None) -> None:
        self.case_id = case_id
        self.status = status
        detail = f" (status={status})" if status else ""
        super().__init__(f"Case {case_id} is already resolved{detail}")


class NotFoundError(CorrelationError):
    """Referenced object does not exist."""

    kind: str = "object"

    def __init__(self, identifier: object) -> None:
        self.identifier = identifier
        super().__init__(f"{self.kind.capitalize()} {identifier} not found")


class RuleNotFound(NotFoundError):  # noqa: N818
    kind = "rule"


class CaseNotFound(NotFoundError):  # noqa: N818
    kind = "case"


class JobNotFound(NotFoundError):  # noqa: N818
    kind = "job"


class AuditEventNotFound(NotFoundError):  # noqa: N818
    kind = "audit event"


class ExpressionCompileError(CorrelationError):
    """A match expression is malformed or uses a forbidden construct."""

    def __init__(self, message: str, *, offset: int | None = None) -> None:
        self.message = message
        self.offset = offset
        location = f" at offset {offset}" if offset is not None else ""
        super().__init__(f"{message}{location}")


class ExpressionEvaluationError(CorrelationError):
    """Evaluating a compiled expression against a record pair failed.

    Never escapes the matching layer; evaluators turn it into a zero score.
    """
