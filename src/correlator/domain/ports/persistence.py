"""Ports for persisting correlation state."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

from correlator.domain.model import (
    AuditEventType,
    AuditOutcome,
    CaseQuery,
    CaseStatus,
    CorrelationAuditEvent,
    CorrelationCase,
    CorrelationJob,
    CorrelationRule,
    IdentityLink,
    MatchType,
    ProvisionedIdentity,
    Scope,
    ThresholdConfig,
)

if TYPE_CHECKING:
    from datetime import datetime
    from uuid import UUID


@runtime_checkable
class Repository[TEntity](Protocol):
    """Minimal repository contract for a persistent aggregate store."""

    def add(self, entity: TEntity) -> None: ...


@runtime_checkable
class RuleRepository(Repository[CorrelationRule], Protocol):
    def get(self, rule_id: UUID) -> CorrelationRule | None: ...

    def update(self, rule: CorrelationRule) -> None: ...

    def delete(self, rule_id: UUID) -> bool: ...

    def find(
        self,
        *,
        scope: Scope | None = None,
        match_type: MatchType | None = None,
        is_active: bool | None = None,
        tier: int | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[CorrelationRule]: ...


@runtime_checkable
class ThresholdRepository(Protocol):
    def get(self, scope: Scope) -> ThresholdConfig | None: ...

    def upsert(self, config: ThresholdConfig) -> None: ...


@runtime_checkable
class CaseRepository(Repository[CorrelationCase], Protocol):
    def get(self, case_id: UUID) -> CorrelationCase | None: ...

    def compare_and_set(self, case: CorrelationCase, *, expected_status: CaseStatus) -> bool:
        """Persist ``case`` only if its stored status is still ``expected_status``."""
        ...

    def find(self, query: CaseQuery) -> list[CorrelationCase]: ...

    def count(self, query: CaseQuery) -> int: ...


@runtime_checkable
class LinkRepository(Repository[IdentityLink], Protocol):
    def for_source(self, source_ref: str) -> list[IdentityLink]: ...


@runtime_checkable
class IdentityRepository(Repository[ProvisionedIdentity], Protocol):
    def get(self, identity_id: UUID) -> ProvisionedIdentity | None: ...


@runtime_checkable
class AuditRepository(Repository[CorrelationAuditEvent], Protocol):
    def get(self, event_id: UUID) -> CorrelationAuditEvent | None: ...

    def find(
        self,
        *,
        case_id: UUID | None = None,
        event_type: AuditEventType | None = None,
        scope: Scope | None = None,
        outcome: AuditOutcome | None = None,
        actor_id: str | None = None,
        created_from: datetime | None = None,
        created_to: datetime | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[CorrelationAuditEvent]: ...


@runtime_checkable
class JobRepository(Repository[CorrelationJob], Protocol):
    def get(self, job_id: UUID) -> CorrelationJob | None: ...

    def update(self, job: CorrelationJob) -> None: ...

    def find(
        self,
        *,
        scope: Scope | None = None,
        started_from: datetime | None = None,
        started_to: datetime | None = None,
    ) -> list[CorrelationJob]: ...
