from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

import pytest

from correlator.adapters.sqlalchemy.repositories import SqlAlchemyCaseRepository
from correlator.domain.correlation import CaseManager
from correlator.domain.errors import CaseAlreadyResolved, CaseNotFound, ValidationError
from correlator.domain.model import (
    Actor,
    AuditEventType,
    AuditOutcome,
    CaseQuery,
    CaseStatus,
    CorrelationCase,
    LinkOrigin,
    Scope,
    TriggerType,
)
from tests.support.correlation import HR, TENANT, make_candidate, make_record

if TYPE_CHECKING:
    from collections.abc import Callable

    from correlator.adapters.sqlalchemy import SqlAlchemyUnitOfWork

REVIEWER = Actor.user("reviewer-1")


@pytest.fixture
def manager(sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork]) -> CaseManager:
    return CaseManager(sqlite_unit_of_work)


def _open(
    manager: CaseManager,
    source_ref: str = "hr:alice",
    *,
    scope: Scope = HR,
    rules_version: int = 0,
) -> CorrelationCase:
    return manager.open_case(
        scope=scope,
        source=make_record(source_ref, email=f"{source_ref}@example.com"),
        candidates=[
            make_candidate("idn:a", source_ref=source_ref, score=0.6),
            make_candidate("idn:b", source_ref=source_ref, score=0.4),
        ],
        rules_version=rules_version,
    )


def _events(
    uow_factory: Callable[[], SqlAlchemyUnitOfWork], case_id: UUID
) -> list[tuple[AuditEventType, AuditOutcome]]:
    with uow_factory() as uow:
        events = uow.repositories.audit.find(case_id=case_id)
    return [(event.event_type, event.outcome) for event in events]


def test_open_case_is_pending_and_audited(
    manager: CaseManager, sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork]
) -> None:
    case = _open(manager, rules_version=3)

    stored = manager.get_case(case.id)
    assert stored.status is CaseStatus.PENDING
    assert stored.trigger_type is TriggerType.MANUAL
    assert stored.rules_version == 3
    assert [c.target_ref for c in stored.candidates] == ["idn:a", "idn:b"]
    assert stored.source_attributes == {"email": "hr:alice@example.com"}
    assert _events(sqlite_unit_of_work, case.id) == [
        (AuditEventType.CASE_OPENED, AuditOutcome.SUCCESS)
    ]


def test_confirm_links_the_chosen_candidate(
    manager: CaseManager, sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork]
) -> None:
    case = _open(manager)
    chosen = case.candidates[1]

    resolved = manager.confirm(case.id, chosen.id, actor=REVIEWER, reason="same person")

    assert resolved.status is CaseStatus.CONFIRMED
    assert resolved.selected_candidate_id == chosen.id
    assert resolved.identity_ref == "idn:b"
    assert resolved.resolved_by == "reviewer-1"
    assert resolved.resolution_reason == "same person"
    with sqlite_unit_of_work() as uow:
        (link,) = uow.repositories.links.for_source("hr:alice")
    assert link.identity_ref == "idn:b"
    assert link.origin is LinkOrigin.MANUAL
    assert link.confidence == pytest.approx(0.4)
    assert link.case_id == case.id
    assert manager.get_case(case.id).status is CaseStatus.CONFIRMED
    assert _events(sqlite_unit_of_work, case.id)[-1] == (
        AuditEventType.MANUAL_CONFIRM,
        AuditOutcome.SUCCESS,
    )


def test_second_resolution_fails_and_is_audited(
    manager: CaseManager, sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork]
) -> None:
    case = _open(manager)
    manager.confirm(case.id, case.candidates[0].id, actor=REVIEWER)

    with pytest.raises(CaseAlreadyResolved):
        manager.reject(case.id, "changed my mind", actor=REVIEWER)

    assert manager.get_case(case.id).status is CaseStatus.CONFIRMED
    assert _events(sqlite_unit_of_work, case.id)[-1] == (
        AuditEventType.REJECT,
        AuditOutcome.FAILURE,
    )
    with sqlite_unit_of_work() as uow:
        assert len(uow.repositories.links.for_source("hr:alice")) == 1


def test_lost_compare_and_set_is_a_conflict(
    manager: CaseManager,
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    case = _open(manager)
    stale = manager.get_case(case.id)
    manager.reject(case.id, "not a match", actor=Actor.user("reviewer-2"))

    # A writer that loaded the case before the rejection committed.
    monkeypatch.setattr(SqlAlchemyCaseRepository, "get", lambda self, case_id: stale)

    with pytest.raises(CaseAlreadyResolved):
        manager.confirm(case.id, case.candidates[0].id, actor=REVIEWER)

    monkeypatch.undo()
    assert manager.get_case(case.id).status is CaseStatus.REJECTED
    with sqlite_unit_of_work() as uow:
        assert uow.repositories.links.for_source("hr:alice") == []
    assert _events(sqlite_unit_of_work, case.id)[-2:] == [
        (AuditEventType.REJECT, AuditOutcome.SUCCESS),
        (AuditEventType.MANUAL_CONFIRM, AuditOutcome.FAILURE),
    ]


def test_reject_requires_a_reason(
    manager: CaseManager, sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork]
) -> None:
    case = _open(manager)

    with pytest.raises(ValidationError) as excinfo:
        manager.reject(case.id, "   ", actor=REVIEWER)

    assert excinfo.value.fields == ("reason",)
    assert manager.get_case(case.id).status is CaseStatus.PENDING
    assert len(_events(sqlite_unit_of_work, case.id)) == 1


def test_confirm_with_foreign_candidate_is_invalid(manager: CaseManager) -> None:
    case = _open(manager)

    with pytest.raises(ValidationError) as excinfo:
        manager.confirm(case.id, uuid4(), actor=REVIEWER)

    assert excinfo.value.fields == ("candidate_id",)
    assert manager.get_case(case.id).status is CaseStatus.PENDING


def test_unknown_case(manager: CaseManager) -> None:
    with pytest.raises(CaseNotFound):
        manager.get_case(uuid4())
    with pytest.raises(CaseNotFound):
        manager.reject(uuid4(), "gone", actor=REVIEWER)


def test_create_identity_provisions_and_links(
    manager: CaseManager, sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork]
) -> None:
    case = _open(manager)

    resolved = manager.create_identity_from_case(case.id, actor=REVIEWER, reason="new hire")

    assert resolved.status is CaseStatus.IDENTITY_CREATED
    assert resolved.identity_ref is not None
    assert resolved.identity_ref.startswith("identity:")
    with sqlite_unit_of_work() as uow:
        (link,) = uow.repositories.links.for_source("hr:alice")
        identity = uow.repositories.identities.get(
            UUID(resolved.identity_ref.removeprefix("identity:"))
        )
    assert link.origin is LinkOrigin.PROVISIONED
    assert link.confidence == 1.0
    assert link.identity_ref == resolved.identity_ref
    assert identity is not None
    assert identity.attributes == {"email": "hr:alice@example.com"}
    assert identity.created_by == "reviewer-1"


def test_reassign_keeps_the_case_pending(
    manager: CaseManager, sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork]
) -> None:
    case = _open(manager)

    updated = manager.reassign(case.id, " reviewer-2 ", actor=REVIEWER)

    assert updated.status is CaseStatus.PENDING
    assert updated.assigned_to == "reviewer-2"
    assert updated.is_reassigned
    assert _events(sqlite_unit_of_work, case.id)[-1] == (
        AuditEventType.REASSIGN,
        AuditOutcome.SUCCESS,
    )
    with pytest.raises(ValidationError):
        manager.reassign(case.id, "", actor=REVIEWER)

    manager.confirm(case.id, case.candidates[0].id, actor=Actor.user("reviewer-2"))
    with pytest.raises(CaseAlreadyResolved):
        manager.reassign(case.id, "reviewer-3", actor=REVIEWER)


def test_list_cases_filters_and_pages(manager: CaseManager) -> None:
    first = _open(manager, "hr:alice")
    _open(manager, "hr:bob")
    _open(manager, "tenant:carol", scope=TENANT)
    manager.reject(first.id, "duplicate", actor=REVIEWER)

    pending = manager.list_cases(CaseQuery(status=CaseStatus.PENDING))
    hr_only = manager.list_cases(CaseQuery(scope=HR, limit=1))
    second_page = manager.list_cases(CaseQuery(scope=HR, limit=1, offset=1))

    assert {case.source_ref for case in pending.items} == {"hr:bob", "tenant:carol"}
    assert hr_only.total == 2
    assert hr_only.has_more
    assert not second_page.has_more
    assert hr_only.items[0].id != second_page.items[0].id


def test_list_cases_by_creation_window(manager: CaseManager) -> None:
    case = _open(manager)
    created = manager.get_case(case.id).created_at

    inside = manager.list_cases(
        CaseQuery(created_from=created - timedelta(minutes=1), created_to=created + timedelta(1))
    )
    before = manager.list_cases(CaseQuery(created_to=datetime(2000, 1, 1, tzinfo=UTC)))

    assert [item.id for item in inside.items] == [case.id]
    assert before.total == 0


@pytest.mark.parametrize(
    "query",
    [CaseQuery(limit=0), CaseQuery(limit=501), CaseQuery(offset=-1)],
)
def test_list_cases_rejects_bad_paging(manager: CaseManager, query: CaseQuery) -> None:
    with pytest.raises(ValidationError):
        manager.list_cases(query)
