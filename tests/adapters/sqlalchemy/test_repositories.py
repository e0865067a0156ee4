"""Tests for SQLAlchemy repositories."""

from __future__ import annotations

import dataclasses
from datetime import UTC, datetime, timedelta
from uuid import uuid4

from sqlalchemy.orm import Session  # noqa: TC002

from correlator.adapters.sqlalchemy.repositories import (
    SqlAlchemyAuditRepository,
    SqlAlchemyCaseRepository,
    SqlAlchemyJobRepository,
    SqlAlchemyLinkRepository,
    SqlAlchemyRuleRepository,
    SqlAlchemyThresholdRepository,
)
from correlator.domain.model import (
    ActorType,
    AuditEventType,
    AuditOutcome,
    CaseQuery,
    CaseStatus,
    CorrelationAuditEvent,
    CorrelationJob,
    Decision,
    IdentityLink,
    JobStatus,
    LinkOrigin,
    MatchCandidate,
    MatchType,
    RuleOutcome,
)
from tests.support.correlation import (
    HR,
    TENANT,
    make_candidate,
    make_case,
    make_config,
    make_rule,
    phone_rule,
)


def test_rule_repository_round_trip(sqlite_session: Session) -> None:
    repository = SqlAlchemyRuleRepository(sqlite_session)
    rule = phone_rule()

    repository.add(rule)
    sqlite_session.commit()

    assert repository.get(rule.id) == rule


def test_rule_repository_orders_and_filters(sqlite_session: Session) -> None:
    repository = SqlAlchemyRuleRepository(sqlite_session)
    late = make_rule("zeta", tier=2)
    early = make_rule("alpha", priority=1)
    fuzzy = phone_rule()
    inactive = make_rule("off", is_active=False)
    tenant = make_rule("mail", scope=TENANT, source_attribute="mail")
    for rule in (late, early, fuzzy, inactive, tenant):
        repository.add(rule)
    sqlite_session.commit()

    names = [rule.name for rule in repository.find(scope=HR)]
    active_fuzzy = repository.find(scope=HR, match_type=MatchType.FUZZY, is_active=True)
    paged = repository.find(scope=HR, limit=2, offset=1)

    assert names == ["alpha", "off", "phone", "zeta"]
    assert [rule.id for rule in active_fuzzy] == [fuzzy.id]
    assert [rule.name for rule in paged] == ["off", "phone"]
    assert [rule.name for rule in repository.find(tier=2)] == ["zeta"]
    assert [rule.name for rule in repository.find(scope=TENANT)] == ["mail"]


def test_rule_repository_update_and_delete(sqlite_session: Session) -> None:
    repository = SqlAlchemyRuleRepository(sqlite_session)
    rule = make_rule()
    repository.add(rule)

    repository.update(dataclasses.replace(rule, threshold=0.5, is_active=False))
    updated = repository.get(rule.id)

    assert updated is not None
    assert (updated.threshold, updated.is_active) == (0.5, False)
    assert repository.delete(rule.id) is True
    assert repository.delete(rule.id) is False
    assert repository.get(rule.id) is None


def test_threshold_repository_upserts(sqlite_session: Session) -> None:
    repository = SqlAlchemyThresholdRepository(sqlite_session)

    assert repository.get(HR) is None
    repository.upsert(make_config(auto=0.9, manual=0.3))
    repository.upsert(make_config(auto=0.8, manual=0.2, batch_size=10, tuning_mode=True))
    sqlite_session.commit()

    stored = repository.get(HR)
    assert stored is not None
    assert (stored.auto_confirm_threshold, stored.manual_review_threshold) == (0.8, 0.2)
    assert stored.batch_size == 10
    assert stored.tuning_mode is True
    assert repository.get(TENANT) is None


def test_case_repository_keeps_candidates(sqlite_session: Session) -> None:
    repository = SqlAlchemyCaseRepository(sqlite_session)
    email, phone = make_rule(), phone_rule()
    detailed = MatchCandidate(
        source_ref="hr:alice",
        target_ref="idn:a",
        aggregate_score=0.5,
        rule_outcomes=(
            RuleOutcome(
                rule_id=email.id, attribute="email->email", tier=1, weight=1, score=1, hit=True
            ),
            RuleOutcome(
                rule_id=phone.id,
                attribute="phone->phone",
                tier=1,
                weight=1,
                score=0.444,
                hit=False,
            ),
        ),
        decision=Decision.MANUAL_REVIEW,
        rules_version=3,
    )
    case = make_case(detailed, make_candidate("idn:b", score=0.4))

    repository.add(case)
    sqlite_session.commit()
    loaded = repository.get(case.id)

    assert loaded is not None
    assert loaded.status is CaseStatus.PENDING
    assert loaded.source_attributes == {"email": "alice@example.com"}
    assert [c.id for c in loaded.candidates] == [c.id for c in case.candidates]
    best = loaded.candidates[0]
    assert best.per_attribute_scores == {"email->email": 1.0, "phone->phone": 0.444}
    assert best.rule_outcomes == detailed.rule_outcomes
    assert [hit.rule_id for hit in best.rule_hits] == [email.id]
    assert best.decision is Decision.MANUAL_REVIEW
    assert best.rules_version == 3


def test_case_compare_and_set_checks_status(sqlite_session: Session) -> None:
    repository = SqlAlchemyCaseRepository(sqlite_session)
    case = make_case()
    repository.add(case)
    rejected = dataclasses.replace(case, status=CaseStatus.REJECTED, resolution_reason="no")

    assert repository.compare_and_set(rejected, expected_status=CaseStatus.PENDING) is True
    assert repository.compare_and_set(rejected, expected_status=CaseStatus.PENDING) is False
    stored = repository.get(case.id)
    assert stored is not None
    assert stored.status is CaseStatus.REJECTED
    assert stored.resolution_reason == "no"


def test_case_find_and_count(sqlite_session: Session) -> None:
    repository = SqlAlchemyCaseRepository(sqlite_session)
    base = datetime(2026, 1, 1, tzinfo=UTC)
    older = dataclasses.replace(make_case(source_ref="hr:old"), created_at=base)
    newer = dataclasses.replace(
        make_case(source_ref="hr:new"), created_at=base + timedelta(days=1), assigned_to="rev"
    )
    tenant = dataclasses.replace(
        make_case(scope=TENANT, source_ref="t:x"), created_at=base + timedelta(days=2)
    )
    for case in (older, newer, tenant):
        repository.add(case)

    newest_first = repository.find(CaseQuery(scope=HR))
    oldest_first = repository.find(CaseQuery(scope=HR, newest_first=False))
    window = CaseQuery(created_from=base + timedelta(hours=1), created_to=base + timedelta(days=2))

    assert [c.source_ref for c in newest_first] == ["hr:new", "hr:old"]
    assert [c.source_ref for c in oldest_first] == ["hr:old", "hr:new"]
    assert [c.source_ref for c in repository.find(window)] == ["hr:new"]
    assert repository.count(CaseQuery(assigned_to="rev")) == 1
    assert repository.count(CaseQuery(status=CaseStatus.PENDING)) == 3
    assert repository.count(CaseQuery(status=CaseStatus.CONFIRMED)) == 0


def test_case_reassigned_filter_only_sees_pending_cases(sqlite_session: Session) -> None:
    repository = SqlAlchemyCaseRepository(sqlite_session)
    unassigned = make_case(source_ref="hr:open")
    assigned = dataclasses.replace(make_case(source_ref="hr:handed"), assigned_to="rev")
    resolved = dataclasses.replace(
        make_case(source_ref="hr:done"), assigned_to="rev", status=CaseStatus.REJECTED
    )
    for case in (unassigned, assigned, resolved):
        repository.add(case)

    def refs(query: CaseQuery) -> set[str]:
        return {c.source_ref for c in repository.find(query)}

    assert refs(CaseQuery(reassigned=True)) == {"hr:handed"}
    assert refs(CaseQuery(reassigned=False)) == {"hr:open"}
    assert refs(CaseQuery()) == {"hr:open", "hr:handed", "hr:done"}
    assert repository.count(CaseQuery(reassigned=True)) == 1


def test_link_repository_lists_links_per_source(sqlite_session: Session) -> None:
    repository = SqlAlchemyLinkRepository(sqlite_session)
    link = IdentityLink(
        source_ref="hr:alice", identity_ref="idn:a", origin=LinkOrigin.AUTO, confidence=0.95
    )
    repository.add(link)
    repository.add(
        IdentityLink(
            source_ref="hr:bob", identity_ref="idn:b", origin=LinkOrigin.MANUAL, confidence=0.5
        )
    )

    assert repository.for_source("hr:alice") == [link]
    assert repository.for_source("hr:nobody") == []


def test_audit_repository_filters(sqlite_session: Session) -> None:
    repository = SqlAlchemyAuditRepository(sqlite_session)
    case = make_case()
    base = datetime(2026, 1, 1, tzinfo=UTC)
    opened = CorrelationAuditEvent(
        event_type=AuditEventType.CASE_OPENED, scope=HR, case_id=case.id, created_at=base
    )
    failed = CorrelationAuditEvent(
        event_type=AuditEventType.REJECT,
        outcome=AuditOutcome.FAILURE,
        scope=HR,
        case_id=case.id,
        reason="late",
        created_at=base + timedelta(seconds=1),
    )
    reviewed = CorrelationAuditEvent(
        event_type=AuditEventType.REASSIGN,
        scope=HR,
        case_id=case.id,
        actor_type=ActorType.USER,
        actor_id="rev",
        created_at=base + timedelta(seconds=2),
    )
    other = CorrelationAuditEvent(
        event_type=AuditEventType.AUTO_CONFIRM, scope=TENANT, created_at=base
    )
    for event in (failed, reviewed, opened, other):
        repository.add(event)

    assert repository.find(case_id=case.id) == [opened, failed, reviewed]
    assert repository.find(outcome=AuditOutcome.FAILURE) == [failed]
    assert repository.find(actor_id="rev") == [reviewed]
    assert repository.find(
        created_from=base + timedelta(seconds=1), created_to=base + timedelta(seconds=2)
    ) == [failed]
    assert repository.find(event_type=AuditEventType.REJECT) == [failed]
    assert repository.find(scope=TENANT) == [other]
    assert len(repository.find(limit=2)) == 2


def test_audit_repository_get(sqlite_session: Session) -> None:
    repository = SqlAlchemyAuditRepository(sqlite_session)
    event = CorrelationAuditEvent(event_type=AuditEventType.CASE_OPENED, scope=HR)
    repository.add(event)

    assert repository.get(event.id) == event
    assert repository.get(uuid4()) is None


def test_job_repository_tracks_progress(sqlite_session: Session) -> None:
    repository = SqlAlchemyJobRepository(sqlite_session)
    base = datetime(2026, 1, 1, tzinfo=UTC)
    job = CorrelationJob(scope=HR, total_pairs=10, started_at=base)
    repository.add(job)
    repository.add(CorrelationJob(scope=TENANT, started_at=base))

    finished = dataclasses.replace(
        job,
        status=JobStatus.COMPLETED,
        processed_pairs=10,
        auto_confirmed=4,
        queued_for_review=3,
        no_match=3,
        average_confidence=0.6,
        completed_at=base + timedelta(minutes=1),
    )
    repository.update(finished)

    assert repository.get(job.id) == finished
    assert [j.id for j in repository.find(scope=HR)] == [job.id]
    assert repository.find(started_from=base + timedelta(seconds=1)) == []
    assert len(repository.find(started_to=base + timedelta(seconds=1))) == 2
