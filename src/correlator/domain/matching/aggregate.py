"""Combine per-rule outcomes into one candidate confidence."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from correlator.domain.matching.evaluators import evaluate_rule

if TYPE_CHECKING:
    from correlator.domain.matching.snapshot import RuleSnapshot
    from correlator.domain.model.candidates import RuleOutcome
    from correlator.domain.model.records import IdentityRecord

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True, kw_only=True)
class AggregateScore:
    score: float
    definitive_hit: bool = False
    no_rules_configured: bool = False
    outcomes: tuple[RuleOutcome, ...] = ()


def aggregate(
    snapshot: RuleSnapshot,
    source: IdentityRecord,
    target: IdentityRecord,
) -> AggregateScore:
    """Score a record pair against every active rule in ``snapshot``.

    Tiers are walked in ascending order. A hit on a definitive rule ends the
    walk with a score of 1.0; otherwise the result is the weighted hit ratio
    over all evaluated rules. Tiers never gate each other.
    """

    if snapshot.is_empty:
        return AggregateScore(score=0.0, no_rules_configured=True)

    outcomes: list[RuleOutcome] = []
    for _tier, rules in snapshot.tiers():
        for rule in rules:
            outcome = evaluate_rule(rule, source, target, compiled=snapshot.compiled.get(rule.id))
            outcomes.append(outcome)
        definitive = next((o for o in outcomes if o.hit and o.is_definitive), None)
        if definitive is not None:
            log.debug(
                "Definitive rule %s hit for %s/%s", definitive.rule_id, source.ref, target.ref
            )
            return AggregateScore(score=1.0, definitive_hit=True, outcomes=tuple(outcomes))

    return AggregateScore(score=weighted_hit_ratio(outcomes), outcomes=tuple(outcomes))


def weighted_hit_ratio(outcomes: list[RuleOutcome] | tuple[RuleOutcome, ...]) -> float:
    total = sum(outcome.weight for outcome in outcomes)
    if total <= 0:
        return 0.0
    hits = sum(outcome.weight for outcome in outcomes if outcome.hit)
    return min(1.0, max(0.0, hits / total))
