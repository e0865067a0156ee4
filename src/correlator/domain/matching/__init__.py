"""Rule evaluation, score aggregation and threshold decisions."""

from __future__ import annotations

from correlator.domain.matching.aggregate import AggregateScore, aggregate, weighted_hit_ratio
from correlator.domain.matching.evaluators import (
    ExactEvaluator,
    ExpressionEvaluator,
    FuzzyEvaluator,
    evaluate,
    evaluate_rule,
    evaluator_for,
)
from correlator.domain.matching.policy import decide
from correlator.domain.matching.similarity import (
    jaro_winkler_similarity,
    levenshtein_similarity,
    similarity,
)
from correlator.domain.matching.snapshot import RuleSetRegistry, RuleSnapshot

__all__ = [
    "AggregateScore",
    "ExactEvaluator",
    "ExpressionEvaluator",
    "FuzzyEvaluator",
    "RuleSetRegistry",
    "RuleSnapshot",
    "aggregate",
    "decide",
    "evaluate",
    "evaluate_rule",
    "evaluator_for",
    "jaro_winkler_similarity",
    "levenshtein_similarity",
    "similarity",
    "weighted_hit_ratio",
]
