"""Case lifecycle: the only code allowed to change a case's status.

Every mutation follows the same steps inside one unit of work:

1. load the case (``CaseNotFound`` if absent),
2. refuse terminal cases (``CaseAlreadyResolved``),
3. validate the operation payload (``ValidationError``),
4. write the new state with a compare-and-set on ``status == pending``,
5. write the link/identity and the audit event, then commit.

A lost compare-and-set means a concurrent writer resolved the case first; it
is reported as ``CaseAlreadyResolved`` and a failure audit event is recorded.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from correlator.config.engine import DEFAULT_CASE_PAGE_SIZE, MAX_CASE_PAGE_SIZE
from correlator.domain.correlation.pipeline import open_case
from correlator.domain.errors import CaseAlreadyResolved, CaseNotFound, ValidationError
from correlator.domain.model import (
    SYSTEM_ACTOR,
    AuditEventType,
    AuditOutcome,
    CasePage,
    CaseQuery,
    CaseStatus,
    CorrelationAuditEvent,
    CorrelationCase,
    IdentityLink,
    LinkOrigin,
    ProvisionedIdentity,
    TriggerType,
    can_transition,
    utcnow,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from datetime import datetime
    from uuid import UUID

    from correlator.domain.model import Actor, IdentityRecord, MatchCandidate, Scope
    from correlator.domain.ports import UnitOfWorkFactory

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True, kw_only=True)
class _Transition:
    """Prepared outcome of one case operation, written only if the CAS wins."""

    case: CorrelationCase
    link: IdentityLink | None = None
    identity: ProvisionedIdentity | None = None


@dataclass(slots=True)
class CaseManager:
    unit_of_work_factory: UnitOfWorkFactory
    clock: Callable[[], datetime] = utcnow
    page_size: int = DEFAULT_CASE_PAGE_SIZE

    # Queries ---------------------------------------------------------------

    def get_case(self, case_id: UUID) -> CorrelationCase:
        with self.unit_of_work_factory() as uow:
            case = uow.repositories.cases.get(case_id)
        if case is None:
            raise CaseNotFound(case_id)
        return case

    def list_cases(self, query: CaseQuery | None = None) -> CasePage:
        query = query or CaseQuery()
        limit = query.limit if query.limit is not None else self.page_size
        if not 1 <= limit <= MAX_CASE_PAGE_SIZE:
            raise ValidationError.single("limit", f"limit must be within [1, {MAX_CASE_PAGE_SIZE}]")
        if query.offset < 0:
            raise ValidationError.single("offset", "offset must be non-negative")
        query = dataclasses.replace(query, limit=limit)
        with self.unit_of_work_factory() as uow:
            items = uow.repositories.cases.find(query)
            total = uow.repositories.cases.count(query)
        return CasePage(items=tuple(items), total=total, limit=limit, offset=query.offset)

    # Creation --------------------------------------------------------------

    def open_case(
        self,
        *,
        scope: Scope,
        source: IdentityRecord,
        candidates: Iterable[MatchCandidate],
        trigger: TriggerType = TriggerType.MANUAL,
        rules_version: int = 0,
        actor: Actor = SYSTEM_ACTOR,
    ) -> CorrelationCase:
        with self.unit_of_work_factory() as uow:
            case = open_case(
                uow.repositories,
                scope=scope,
                source=source,
                candidates=candidates,
                trigger=trigger,
                rules_version=rules_version,
                actor=actor,
            )
            uow.commit()
        return case

    # Resolutions -----------------------------------------------------------

    def confirm(
        self,
        case_id: UUID,
        candidate_id: UUID,
        *,
        actor: Actor,
        reason: str | None = None,
    ) -> CorrelationCase:
        def prepare(case: CorrelationCase) -> _Transition:
            candidate = case.find_candidate(candidate_id)
            if candidate is None:
                raise ValidationError.single(
                    "candidate_id", f"candidate {candidate_id} does not belong to case {case.id}"
                )
            resolved = self._resolved(
                case,
                CaseStatus.CONFIRMED,
                actor=actor,
                reason=reason,
                selected_candidate_id=candidate.id,
                identity_ref=candidate.target_ref,
            )
            link = IdentityLink(
                source_ref=case.source_ref,
                identity_ref=candidate.target_ref,
                origin=LinkOrigin.MANUAL,
                confidence=candidate.aggregate_score,
                case_id=case.id,
                candidate_id=candidate.id,
                created_by=actor.label,
                created_at=resolved.updated_at,
            )
            return _Transition(case=resolved, link=link)

        return self._mutate(
            case_id, AuditEventType.MANUAL_CONFIRM, actor=actor, reason=reason, prepare=prepare
        )

    def reject(self, case_id: UUID, reason: str, *, actor: Actor) -> CorrelationCase:
        def prepare(case: CorrelationCase) -> _Transition:
            if not reason or not reason.strip():
                raise ValidationError.single("reason", "a reason is required to reject a case")
            resolved = self._resolved(case, CaseStatus.REJECTED, actor=actor, reason=reason)
            return _Transition(case=resolved)

        return self._mutate(
            case_id, AuditEventType.REJECT, actor=actor, reason=reason, prepare=prepare
        )

    def create_identity_from_case(
        self,
        case_id: UUID,
        *,
        actor: Actor,
        reason: str | None = None,
    ) -> CorrelationCase:
        def prepare(case: CorrelationCase) -> _Transition:
            now = self.clock()
            identity = ProvisionedIdentity(
                source_ref=case.source_ref,
                attributes=dict(case.source_attributes),
                created_by=actor.label,
                created_at=now,
            )
            resolved = self._resolved(
                case,
                CaseStatus.IDENTITY_CREATED,
                actor=actor,
                reason=reason,
                identity_ref=identity.ref,
                now=now,
            )
            link = IdentityLink(
                source_ref=case.source_ref,
                identity_ref=identity.ref,
                origin=LinkOrigin.PROVISIONED,
                confidence=1.0,
                case_id=case.id,
                created_by=actor.label,
                created_at=now,
            )
            return _Transition(case=resolved, link=link, identity=identity)

        return self._mutate(
            case_id, AuditEventType.CREATE_IDENTITY, actor=actor, reason=reason, prepare=prepare
        )

    def reassign(
        self,
        case_id: UUID,
        assigned_to: str,
        *,
        actor: Actor,
        reason: str | None = None,
    ) -> CorrelationCase:
        def prepare(case: CorrelationCase) -> _Transition:
            if not assigned_to or not assigned_to.strip():
                raise ValidationError.single("assigned_to", "assigned_to is required")
            updated = dataclasses.replace(
                case, assigned_to=assigned_to.strip(), updated_at=self.clock()
            )
            return _Transition(case=updated)

        return self._mutate(
            case_id, AuditEventType.REASSIGN, actor=actor, reason=reason, prepare=prepare
        )

    # Internals -------------------------------------------------------------

    def _resolved(
        self,
        case: CorrelationCase,
        status: CaseStatus,
        *,
        actor: Actor,
        reason: str | None,
        selected_candidate_id: UUID | None = None,
        identity_ref: str | None = None,
        now: datetime | None = None,
    ) -> CorrelationCase:
        if not can_transition(case.status, status):
            raise CaseAlreadyResolved(case.id, case.status)
        now = now or self.clock()
        return dataclasses.replace(
            case,
            status=status,
            resolution_reason=reason.strip() if reason else None,
            resolved_by=actor.label,
            resolved_at=now,
            selected_candidate_id=selected_candidate_id,
            identity_ref=identity_ref,
            updated_at=now,
        )

    def _mutate(
        self,
        case_id: UUID,
        event_type: AuditEventType,
        *,
        actor: Actor,
        reason: str | None,
        prepare: Callable[[CorrelationCase], _Transition],
    ) -> CorrelationCase:
        with self.unit_of_work_factory() as uow:
            repositories = uow.repositories
            case = repositories.cases.get(case_id)
            if case is None:
                raise CaseNotFound(case_id)
            if case.is_terminal:
                conflict = CaseAlreadyResolved(case_id, case.status)
            else:
                transition = prepare(case)
                if repositories.cases.compare_and_set(
                    transition.case, expected_status=CaseStatus.PENDING
                ):
                    if transition.identity is not None:
                        repositories.identities.add(transition.identity)
                    if transition.link is not None:
                        repositories.links.add(transition.link)
                    repositories.audit.add(
                        self._event(transition.case, event_type, actor=actor, reason=reason)
                    )
                    uow.commit()
                    log.info(
                        "Case %s: %s by %s (status=%s)",
                        case_id,
                        event_type,
                        actor.label,
                        transition.case.status,
                    )
                    return transition.case
                conflict = CaseAlreadyResolved(case_id)
            uow.rollback()

        log.warning("Case %s: %s rejected, %s", case_id, event_type, conflict)
        self._record_failure(case, event_type, actor=actor, reason=reason)
        raise conflict

    def _record_failure(
        self,
        case: CorrelationCase,
        event_type: AuditEventType,
        *,
        actor: Actor,
        reason: str | None,
    ) -> None:
        with self.unit_of_work_factory() as uow:
            uow.repositories.audit.add(
                self._event(
                    case, event_type, actor=actor, reason=reason, outcome=AuditOutcome.FAILURE
                )
            )
            uow.commit()

    def _event(
        self,
        case: CorrelationCase,
        event_type: AuditEventType,
        *,
        actor: Actor,
        reason: str | None,
        outcome: AuditOutcome = AuditOutcome.SUCCESS,
    ) -> CorrelationAuditEvent:
        return CorrelationAuditEvent(
            event_type=event_type,
            outcome=outcome,
            scope=case.scope,
            case_id=case.id,
            source_ref=case.source_ref,
            identity_ref=case.identity_ref,
            confidence_score=case.highest_confidence,
            candidate_count=len(case.candidates),
            rules_version=case.rules_version,
            actor_type=actor.actor_type,
            actor_id=actor.actor_id,
            reason=reason,
            created_at=self.clock(),
        )
