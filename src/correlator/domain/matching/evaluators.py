"""Per-rule match evaluators.

Three variants, picked by the rule's ``match_type``. Every variant returns a
score in [0, 1]; a missing or unusable attribute degrades to 0 and the reason
is kept on the ``RuleOutcome`` rather than raised.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, assert_never

from correlator.domain.errors import ExpressionEvaluationError
from correlator.domain.expressions import evaluate_expression
from correlator.domain.matching.normalize import prepare_value
from correlator.domain.matching.similarity import similarity
from correlator.domain.model.candidates import RuleOutcome
from correlator.domain.model.enums import FuzzyAlgorithm, MatchType

if TYPE_CHECKING:
    from correlator.domain.expressions import CompiledExpression
    from correlator.domain.model.records import IdentityRecord
    from correlator.domain.model.rules import CorrelationRule


class MissingValueError(ExpressionEvaluationError):
    """An attribute needed by an exact/fuzzy rule is absent, blank or non-scalar."""


@dataclass(frozen=True, slots=True)
class ExactEvaluator:
    normalize: bool

    def score(self, source_value: object, target_value: object) -> float:
        a, b = _prepare_pair(source_value, target_value, normalize=self.normalize)
        return 1.0 if a == b else 0.0


@dataclass(frozen=True, slots=True)
class FuzzyEvaluator:
    algorithm: FuzzyAlgorithm
    normalize: bool

    def score(self, source_value: object, target_value: object) -> float:
        a, b = _prepare_pair(source_value, target_value, normalize=self.normalize)
        return similarity(self.algorithm, a, b)


@dataclass(frozen=True, slots=True)
class ExpressionEvaluator:
    compiled: CompiledExpression

    def score(self, source_value: object, target_value: object) -> float:
        source = _as_mapping(source_value)
        target = _as_mapping(target_value)
        return 1.0 if evaluate_expression(self.compiled, source, target) else 0.0


type Evaluator = ExactEvaluator | FuzzyEvaluator | ExpressionEvaluator


def evaluator_for(rule: CorrelationRule, compiled: CompiledExpression | None = None) -> Evaluator:
    match_type = rule.match_type
    if match_type is MatchType.EXACT:
        return ExactEvaluator(normalize=rule.normalize)
    if match_type is MatchType.FUZZY:
        assert rule.algorithm is not None
        return FuzzyEvaluator(algorithm=rule.algorithm, normalize=rule.normalize)
    if match_type is MatchType.EXPRESSION:
        if compiled is None:
            raise ExpressionEvaluationError(f"rule {rule.id} has no compiled expression")
        return ExpressionEvaluator(compiled=compiled)
    assert_never(match_type)


def evaluate(
    rule: CorrelationRule,
    source_value: object,
    target_value: object,
    *,
    compiled: CompiledExpression | None = None,
) -> float:
    """Score one value pair with ``rule``.

    For expression rules the values are the full source and target attribute
    maps. Raises ``ExpressionEvaluationError`` for missing values.
    """

    return evaluator_for(rule, compiled).score(source_value, target_value)


def evaluate_rule(
    rule: CorrelationRule,
    source: IdentityRecord,
    target: IdentityRecord,
    *,
    compiled: CompiledExpression | None = None,
) -> RuleOutcome:
    """Evaluate ``rule`` against a record pair; never raises for bad data."""

    if rule.match_type is MatchType.EXPRESSION:
        values: tuple[object, object] = (source.attributes, target.attributes)
    else:
        values = (source.get(rule.source_attribute), target.get(rule.target_key))

    error: str | None = None
    try:
        score = evaluate(rule, *values, compiled=compiled)
    except ExpressionEvaluationError as exc:
        score = 0.0
        error = f"{rule.label}: {exc}"

    return RuleOutcome(
        rule_id=rule.id,
        attribute=rule.label,
        tier=rule.tier,
        weight=rule.weight,
        score=score,
        hit=error is None and score >= rule.threshold,
        is_definitive=rule.is_definitive,
        error=error,
    )


def _prepare_pair(
    source_value: object, target_value: object, *, normalize: bool
) -> tuple[str, str]:
    a = prepare_value(source_value, normalize=normalize)
    if a is None:
        raise MissingValueError("missing attribute on source record")
    b = prepare_value(target_value, normalize=normalize)
    if b is None:
        raise MissingValueError("missing attribute on target record")
    return a, b


def _as_mapping(value: object) -> Mapping[str, object]:
    if isinstance(value, Mapping):
        return value  # pyright: ignore[reportUnknownVariableType]
    raise ExpressionEvaluationError("expression rules need attribute maps on both sides")
