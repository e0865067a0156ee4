from __future__ import annotations

import pytest

from correlator.domain.matching import aggregate, weighted_hit_ratio
from correlator.domain.model import MatchType, RuleOutcome, new_id
from tests.support.correlation import alice_pair, make_record, make_rule, make_snapshot, phone_rule


def test_weighted_ratio_over_hits_and_misses() -> None:
    pair = alice_pair()
    snapshot = make_snapshot(make_rule(), phone_rule())

    result = aggregate(snapshot, pair.source, pair.target)

    assert result.score == pytest.approx(0.5)
    assert result.definitive_hit is False
    assert [outcome.hit for outcome in result.outcomes] == [True, False]


def test_weights_shift_the_ratio() -> None:
    pair = alice_pair()
    snapshot = make_snapshot(make_rule(weight=3.0), phone_rule(weight=1.0))

    assert aggregate(snapshot, pair.source, pair.target).score == pytest.approx(0.75)


def test_definitive_hit_short_circuits_later_tiers() -> None:
    employee = make_rule("employee", source_attribute="employee_id", is_definitive=True)
    later = make_rule("late", source_attribute="email", tier=2)
    source = make_record("s", employee_id="E-1", email="a@x")
    target = make_record("t", employee_id="e-1", email="other@x")

    result = aggregate(make_snapshot(employee, later), source, target)

    assert result.score == 1.0
    assert result.definitive_hit is True
    assert [outcome.rule_id for outcome in result.outcomes] == [employee.id]


def test_definitive_miss_falls_through_to_weighted_score() -> None:
    employee = make_rule("employee", source_attribute="employee_id", is_definitive=True)
    email = make_rule("email", tier=2)
    source = make_record("s", employee_id="E-1", email="a@x")
    target = make_record("t", employee_id="E-2", email="a@x")

    result = aggregate(make_snapshot(employee, email), source, target)

    assert result.definitive_hit is False
    assert result.score == pytest.approx(0.5)
    assert len(result.outcomes) == 2


def test_lower_tier_miss_does_not_gate_higher_tier() -> None:
    first = make_rule("first", source_attribute="employee_id", tier=1)
    second = make_rule("second", source_attribute="email", tier=2)
    source = make_record("s", email="a@x")
    target = make_record("t", employee_id="E-2", email="a@x")

    result = aggregate(make_snapshot(first, second), source, target)

    assert result.score == pytest.approx(0.5)
    assert result.outcomes[0].error is not None


def test_empty_rule_set_is_flagged() -> None:
    pair = alice_pair()

    result = aggregate(make_snapshot(), pair.source, pair.target)

    assert result.score == 0.0
    assert result.no_rules_configured is True


def test_inactive_rules_are_not_evaluated() -> None:
    pair = alice_pair()
    snapshot = make_snapshot(make_rule(), phone_rule(is_active=False))

    result = aggregate(snapshot, pair.source, pair.target)

    assert result.score == 1.0
    assert len(result.outcomes) == 1


def test_stored_expression_that_no_longer_compiles_scores_zero() -> None:
    broken = make_rule("broken", match_type=MatchType.EXPRESSION, expression="source.a <")
    pair = alice_pair()
    snapshot = make_snapshot(make_rule(), broken)

    result = aggregate(snapshot, pair.source, pair.target)

    assert broken.id in snapshot.compile_errors
    assert result.score == pytest.approx(0.5)
    failed = next(outcome for outcome in result.outcomes if outcome.rule_id == broken.id)
    assert failed.error is not None


def test_zero_total_weight_scores_zero() -> None:
    outcomes = [
        RuleOutcome(rule_id=new_id(), attribute="a", tier=1, weight=0.0, score=1.0, hit=True)
    ]

    assert weighted_hit_ratio(outcomes) == 0.0
