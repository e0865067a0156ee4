"""Pure validation for rule and threshold input.

Nothing here raises for bad input or touches storage: every problem becomes a
``FieldError`` and the caller decides how to surface the collected list.
"""

from __future__ import annotations

import dataclasses
import math
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from correlator.config.engine import DEFAULT_BATCH_SIZE, MAX_BATCH_SIZE
from correlator.domain.errors import (
    ExpressionCompileError,
    FieldError,
    RuleValidationError,
    ThresholdValidationError,
    ValidationErrorKind,
)
from correlator.domain.expressions import compile_expression
from correlator.domain.model.base import new_id, utcnow
from correlator.domain.model.enums import FuzzyAlgorithm, MatchType
from correlator.domain.model.rules import (
    DEFAULT_PRIORITY,
    DEFAULT_TIER,
    MAX_ATTRIBUTE_LENGTH,
    MAX_NAME_LENGTH,
    CorrelationRule,
)
from correlator.domain.model.thresholds import ThresholdConfig

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import datetime
    from uuid import UUID

    from correlator.domain.model.scope import Scope

Kind = ValidationErrorKind


@dataclass(frozen=True, slots=True, kw_only=True)
class RuleDraft:
    """Raw, possibly incomplete rule fields as received from a caller.

    ``attribute`` is the single-attribute spelling used by tenant-wide rules.
    """

    id: UUID | None = None
    scope: Scope | None = None
    name: str | None = None
    source_attribute: str | None = None
    target_attribute: str | None = None
    attribute: str | None = None
    match_type: str | None = None
    algorithm: str | None = None
    expression: str | None = None
    threshold: float | None = None
    weight: float | None = None
    tier: int | None = None
    is_definitive: bool | None = None
    normalize: bool | None = None
    priority: int | None = None
    is_active: bool | None = None
    created_at: datetime | None = None

    @classmethod
    def from_rule(cls, rule: CorrelationRule) -> RuleDraft:
        return cls(
            id=rule.id,
            scope=rule.scope,
            name=rule.name,
            source_attribute=rule.source_attribute,
            target_attribute=rule.target_attribute,
            match_type=rule.match_type.value,
            algorithm=rule.algorithm.value if rule.algorithm else None,
            expression=rule.expression,
            threshold=rule.threshold,
            weight=rule.weight,
            tier=rule.tier,
            is_definitive=rule.is_definitive,
            normalize=rule.normalize,
            priority=rule.priority,
            is_active=rule.is_active,
            created_at=rule.created_at,
        )


@dataclass(frozen=True, slots=True)
class RuleValidation:
    rule: CorrelationRule | None
    errors: tuple[FieldError, ...] = ()

    @property
    def ok(self) -> bool:
        return self.rule is not None and not self.errors

    def unwrap(self) -> CorrelationRule:
        if self.rule is None or self.errors:
            raise RuleValidationError(self.errors)
        return self.rule


@dataclass(frozen=True, slots=True, kw_only=True)
class ThresholdDraft:
    auto_confirm_threshold: float | None = None
    manual_review_threshold: float | None = None
    tuning_mode: bool = False
    include_deactivated: bool = False
    batch_size: int | None = DEFAULT_BATCH_SIZE


@dataclass(frozen=True, slots=True)
class ThresholdValidation:
    config: ThresholdConfig | None
    errors: tuple[FieldError, ...] = ()

    @property
    def ok(self) -> bool:
        return self.config is not None and not self.errors

    def unwrap(self) -> ThresholdConfig:
        if self.config is None or self.errors:
            raise ThresholdValidationError(self.errors)
        return self.config


class _Collector:
    def __init__(self) -> None:
        self.errors: list[FieldError] = []

    def add(self, field: str, kind: ValidationErrorKind, message: str) -> None:
        self.errors.append(FieldError(field=field, kind=kind, message=message))

    def text(self, field: str, value: str | None, *, max_length: int) -> str | None:
        if value is None or not value.strip():
            self.add(field, Kind.MISSING_FIELD, f"{field} is required")
            return None
        if len(value) > max_length:
            self.add(field, Kind.OUT_OF_RANGE, f"{field} must be at most {max_length} characters")
            return None
        return value.strip()

    def number(
        self,
        field: str,
        value: object,
        *,
        minimum: float,
        maximum: float | None = None,
        integer: bool = False,
    ) -> Any:
        if value is None:
            self.add(field, Kind.MISSING_FIELD, f"{field} is required")
            return None
        if isinstance(value, bool) or not isinstance(value, int | float):
            self.add(field, Kind.INVALID_VALUE, f"{field} must be a number")
            return None
        if integer and (isinstance(value, float) and not value.is_integer()):
            self.add(field, Kind.INVALID_VALUE, f"{field} must be an integer")
            return None
        if isinstance(value, float) and not math.isfinite(value):
            self.add(field, Kind.INVALID_VALUE, f"{field} must be finite")
            return None
        if value < minimum or (maximum is not None and value > maximum):
            bound = f"between {minimum} and {maximum}" if maximum is not None else f">= {minimum}"
            self.add(field, Kind.OUT_OF_RANGE, f"{field} must be {bound}")
            return None
        return int(value) if integer else float(value)

    def choice[E: StrEnum](self, field: str, value: str | None, enum: type[E]) -> E | None:
        if value is None:
            return None
        try:
            return enum(value)
        except ValueError:
            allowed = ", ".join(member.value for member in enum)
            self.add(field, Kind.INVALID_VALUE, f"{field} must be one of: {allowed}")
            return None


def validate(draft: RuleDraft) -> RuleValidation:
    """Check every constraint of a rule and collect all field errors."""

    errors = _Collector()

    if draft.scope is None:
        errors.add("scope", Kind.MISSING_FIELD, "scope is required")
    name = errors.text("name", draft.name, max_length=MAX_NAME_LENGTH)

    source_attribute: str | None
    target_attribute: str | None = None
    if draft.scope is not None and draft.scope.is_tenant:
        source_attribute = errors.text(
            "attribute", draft.attribute or draft.source_attribute, max_length=MAX_ATTRIBUTE_LENGTH
        )
        if draft.target_attribute is not None:
            errors.add(
                "target_attribute",
                Kind.INVALID_VALUE,
                "tenant-wide rules compare a single attribute",
            )
    else:
        source_attribute = errors.text(
            "source_attribute", draft.source_attribute, max_length=MAX_ATTRIBUTE_LENGTH
        )
        target_attribute = errors.text(
            "target_attribute", draft.target_attribute, max_length=MAX_ATTRIBUTE_LENGTH
        )

    match_type: MatchType | None = None
    if draft.match_type is None:
        errors.add("match_type", Kind.MISSING_FIELD, "match_type is required")
    else:
        match_type = errors.choice("match_type", draft.match_type, MatchType)

    algorithm = errors.choice("algorithm", draft.algorithm, FuzzyAlgorithm)
    expression = draft.expression.strip() if draft.expression else None

    if match_type is MatchType.FUZZY and draft.algorithm is None:
        errors.add(
            "algorithm",
            Kind.STRUCTURALLY_INCOMPLETE,
            "algorithm is required when match_type is fuzzy",
        )
    if match_type is MatchType.EXPRESSION:
        if not expression:
            errors.add(
                "expression",
                Kind.STRUCTURALLY_INCOMPLETE,
                "expression is required when match_type is expression",
            )
        else:
            try:
                compile_expression(expression)
            except ExpressionCompileError as exc:
                errors.add("expression", Kind.INVALID_EXPRESSION, str(exc))

    threshold = errors.number("threshold", draft.threshold, minimum=0.0, maximum=1.0)
    weight = errors.number("weight", draft.weight, minimum=0.0)
    tier = errors.number(
        "tier", draft.tier if draft.tier is not None else DEFAULT_TIER, minimum=1, integer=True
    )
    priority = errors.number(
        "priority",
        draft.priority if draft.priority is not None else DEFAULT_PRIORITY,
        minimum=0,
        integer=True,
    )

    if errors.errors:
        return RuleValidation(None, tuple(errors.errors))

    assert draft.scope is not None
    assert name is not None
    assert source_attribute is not None
    assert match_type is not None
    now = utcnow()
    rule = CorrelationRule(
        id=draft.id or new_id(),
        name=name,
        scope=draft.scope,
        source_attribute=source_attribute,
        target_attribute=target_attribute,
        match_type=match_type,
        algorithm=algorithm if match_type is MatchType.FUZZY else None,
        expression=expression if match_type is MatchType.EXPRESSION else None,
        threshold=threshold,
        weight=weight,
        tier=tier,
        is_definitive=bool(draft.is_definitive),
        normalize=True if draft.normalize is None else draft.normalize,
        priority=priority,
        is_active=True if draft.is_active is None else draft.is_active,
        created_at=draft.created_at or now,
        updated_at=now,
    )
    return RuleValidation(rule)


_IMMUTABLE_FIELDS = frozenset({"id", "scope", "created_at"})
_DRAFT_FIELDS = frozenset(field.name for field in dataclasses.fields(RuleDraft))


def merge_draft(existing: CorrelationRule, changes: Mapping[str, object]) -> RuleDraft:
    """Apply a partial update to ``existing`` and return the merged draft.

    ``changes`` holds only the fields the caller actually sent; an explicit
    ``None`` clears a nullable field. Changing ``match_type`` drops the
    algorithm/expression that no longer applies unless the caller resends it.
    """

    base = RuleDraft.from_rule(existing)
    updates = {
        key: value
        for key, value in changes.items()
        if key in _DRAFT_FIELDS and key not in _IMMUTABLE_FIELDS
    }
    if "attribute" in updates:
        updates["source_attribute"] = updates.pop("attribute")

    new_type = updates.get("match_type", base.match_type)
    if new_type != MatchType.FUZZY and "algorithm" not in updates:
        updates["algorithm"] = None
    if new_type != MatchType.EXPRESSION and "expression" not in updates:
        updates["expression"] = None
    return dataclasses.replace(base, **updates)  # pyright: ignore[reportArgumentType]


def validate_thresholds(scope: Scope, draft: ThresholdDraft) -> ThresholdValidation:
    errors = _Collector()
    auto = errors.number(
        "auto_confirm_threshold", draft.auto_confirm_threshold, minimum=0.0, maximum=1.0
    )
    manual = errors.number(
        "manual_review_threshold", draft.manual_review_threshold, minimum=0.0, maximum=1.0
    )
    batch_size = errors.number(
        "batch_size",
        draft.batch_size if draft.batch_size is not None else DEFAULT_BATCH_SIZE,
        minimum=1,
        maximum=MAX_BATCH_SIZE,
        integer=True,
    )
    if auto is not None and manual is not None and auto < manual:
        errors.add(
            "auto_confirm_threshold",
            Kind.OUT_OF_RANGE,
            "auto_confirm_threshold must be greater than or equal to manual_review_threshold",
        )
    if errors.errors:
        return ThresholdValidation(None, tuple(errors.errors))

    config = ThresholdConfig(
        scope=scope,
        auto_confirm_threshold=auto,
        manual_review_threshold=manual,
        tuning_mode=draft.tuning_mode,
        include_deactivated=draft.include_deactivated,
        batch_size=batch_size,
    )
    return ThresholdValidation(config)
