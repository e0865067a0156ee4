from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from correlator.domain.correlation import (
    RouteKind,
    commit_route,
    evaluate_pair,
    group_by_source,
    route_source,
)
from correlator.domain.model import (
    AuditEventType,
    CaseQuery,
    Decision,
    LinkOrigin,
    TriggerType,
)
from tests.support.correlation import (
    HR,
    alice_pair,
    make_candidate,
    make_config,
    make_pair,
    make_record,
    make_rule,
    make_snapshot,
    phone_rule,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from correlator.adapters.sqlalchemy import SqlAlchemyUnitOfWork


def test_evaluate_pair_routes_half_match_to_review() -> None:
    snapshot = make_snapshot(make_rule(), phone_rule(), version=4)

    candidate = evaluate_pair(snapshot, make_config(auto=0.9, manual=0.3), alice_pair())

    assert candidate.aggregate_score == pytest.approx(0.5)
    assert candidate.decision is Decision.MANUAL_REVIEW
    assert candidate.rules_version == 4
    assert candidate.per_attribute_scores["email->email"] == 1.0
    assert candidate.per_attribute_scores["phone->phone"] < 0.8
    assert [hit.rule_id for hit in candidate.rule_hits] == [snapshot.rules[0].id]


def test_evaluate_pair_with_lower_auto_threshold_confirms() -> None:
    snapshot = make_snapshot(make_rule(), phone_rule())

    candidate = evaluate_pair(snapshot, make_config(auto=0.4, manual=0.3), alice_pair())

    assert candidate.decision is Decision.AUTO_CONFIRM


def test_evaluate_pair_without_rules() -> None:
    candidate = evaluate_pair(make_snapshot(), make_config(), alice_pair())

    assert candidate.no_rules_configured is True
    assert candidate.decision is Decision.NO_MATCH


def test_single_auto_candidate_links() -> None:
    source = make_record("hr:alice")
    auto = make_candidate("idn:a", score=0.95, decision=Decision.AUTO_CONFIRM)
    review = make_candidate("idn:b", score=0.5)

    route = route_source(source, [review, auto])

    assert route.kind is RouteKind.LINK
    assert route.candidates == (auto,)


def test_multiple_auto_candidates_are_ambiguous() -> None:
    source = make_record("hr:alice")
    first = make_candidate("idn:a", score=0.95, decision=Decision.AUTO_CONFIRM)
    second = make_candidate("idn:b", score=0.97, decision=Decision.AUTO_CONFIRM)
    review = make_candidate("idn:c", score=0.5)
    none = make_candidate("idn:d", score=0.1, decision=Decision.NO_MATCH)

    route = route_source(source, [first, none, review, second])

    assert route.kind is RouteKind.CASE
    assert [c.target_ref for c in route.candidates] == ["idn:b", "idn:a", "idn:c"]


def test_review_and_no_match_routes() -> None:
    source = make_record("hr:alice")
    none = make_candidate("idn:d", score=0.1, decision=Decision.NO_MATCH)

    assert route_source(source, [make_candidate("idn:c")]).kind is RouteKind.CASE
    assert route_source(source, [none]).kind is RouteKind.NO_MATCH


def test_group_by_source_keeps_first_seen_order() -> None:
    bob = make_record("hr:bob")
    alice = make_record("hr:alice")
    pairs = [
        make_pair(bob, make_record("idn:1")),
        make_pair(alice, make_record("idn:2")),
        make_pair(bob, make_record("idn:3")),
    ]
    candidates = [
        make_candidate("idn:1", source_ref="hr:bob"),
        make_candidate("idn:2", source_ref="hr:alice"),
        make_candidate("idn:3", source_ref="hr:bob"),
    ]

    routes = group_by_source(pairs, candidates)

    assert [route.source.ref for route in routes] == ["hr:bob", "hr:alice"]
    assert len(routes[0].candidates) == 2


def test_commit_route_links_once(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    config = make_config()
    route = route_source(
        make_record("hr:alice"),
        [make_candidate("idn:a", score=0.95, decision=Decision.AUTO_CONFIRM)],
    )

    with sqlite_unit_of_work() as uow:
        first = commit_route(
            uow.repositories,
            route,
            scope=HR,
            config=config,
            trigger=TriggerType.BATCH,
            rules_version=1,
        )
        second = commit_route(
            uow.repositories,
            route,
            scope=HR,
            config=config,
            trigger=TriggerType.BATCH,
            rules_version=1,
        )
        uow.commit()

    assert first.link is not None
    assert first.link.origin is LinkOrigin.AUTO
    assert second.duplicate is True
    with sqlite_unit_of_work() as uow:
        assert len(uow.repositories.links.for_source("hr:alice")) == 1
        events = uow.repositories.audit.find(event_type=AuditEventType.AUTO_CONFIRM)
    assert len(events) == 1
    assert events[0].thresholds_snapshot == config.snapshot()


def test_commit_route_skips_second_pending_case(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    route = route_source(make_record("hr:alice", email="a@x"), [make_candidate("idn:a")])

    with sqlite_unit_of_work() as uow:
        opened = commit_route(
            uow.repositories,
            route,
            scope=HR,
            config=make_config(),
            trigger=TriggerType.IMPORT,
            rules_version=2,
        )
        repeated = commit_route(
            uow.repositories,
            route,
            scope=HR,
            config=make_config(),
            trigger=TriggerType.IMPORT,
            rules_version=2,
        )
        uow.commit()

    assert opened.case is not None
    assert repeated.duplicate is True
    with sqlite_unit_of_work() as uow:
        cases = uow.repositories.cases.find(CaseQuery(source_ref="hr:alice"))
    assert len(cases) == 1
    assert cases[0].trigger_type is TriggerType.IMPORT
    assert cases[0].source_attributes == {"email": "a@x"}
