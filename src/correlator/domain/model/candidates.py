"""Pairwise evaluation results."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING
from uuid import UUID

from correlator.domain.model.base import new_id, utcnow
from correlator.domain.model.enums import Decision

if TYPE_CHECKING:
    from datetime import datetime


@dataclass(frozen=True, slots=True, kw_only=True)
class RuleOutcome:
    """What one rule said about one pair.

    ``score`` is the raw evaluator score; only hits contribute to aggregation.
    ``error`` carries the reason a score degraded to zero (missing attribute etc.).
    """

    rule_id: UUID
    attribute: str
    tier: int
    weight: float
    score: float
    hit: bool
    is_definitive: bool = False
    error: str | None = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.score <= 1.0:
            raise ValueError("RuleOutcome.score must be within [0, 1]")


@dataclass(frozen=True, slots=True, kw_only=True)
class RuleHit:
    rule_id: UUID
    score: float
    tier: int


@dataclass(frozen=True, slots=True, kw_only=True)
class MatchCandidate:
    id: UUID = field(default_factory=new_id)
    source_ref: str
    target_ref: str
    aggregate_score: float
    definitive_hit: bool = False
    no_rules_configured: bool = False
    rule_outcomes: tuple[RuleOutcome, ...] = ()
    decision: Decision
    evaluated_at: datetime = field(default_factory=utcnow)
    rules_version: int = 0
    target_deactivated: bool = False

    def __post_init__(self) -> None:
        if not 0.0 <= self.aggregate_score <= 1.0:
            raise ValueError("aggregate_score must be within [0, 1]")
        if self.definitive_hit and self.decision is not Decision.AUTO_CONFIRM:
            raise ValueError("A definitive hit must be auto-confirmed")

    @property
    def rule_hits(self) -> tuple[RuleHit, ...]:
        return tuple(
            RuleHit(rule_id=outcome.rule_id, score=outcome.score, tier=outcome.tier)
            for outcome in self.rule_outcomes
            if outcome.hit
        )

    @property
    def per_attribute_scores(self) -> dict[str, float]:
        scores: dict[str, float] = {}
        for outcome in self.rule_outcomes:
            scores[outcome.attribute] = max(scores.get(outcome.attribute, 0.0), outcome.score)
        return scores

    @property
    def errors(self) -> tuple[str, ...]:
        return tuple(outcome.error for outcome in self.rule_outcomes if outcome.error)
