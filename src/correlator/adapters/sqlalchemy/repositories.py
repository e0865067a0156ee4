"""Repository implementations backed by SQLAlchemy sessions."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, cast

from sqlalchemy import delete, func, insert, select, update

from correlator.adapters.sqlalchemy.mappings import (
    audit_from_row,
    audit_to_row,
    case_from_row,
    case_to_row,
    correlation_audit_event_table,
    correlation_case_table,
    correlation_job_table,
    correlation_rule_table,
    correlation_threshold_table,
    identity_from_row,
    identity_link_table,
    identity_to_row,
    job_from_row,
    job_to_row,
    link_from_row,
    link_to_row,
    provisioned_identity_table,
    rule_from_row,
    rule_to_row,
    thresholds_from_row,
    thresholds_to_row,
)
from correlator.domain.model import CaseStatus

if TYPE_CHECKING:
    from datetime import datetime
    from uuid import UUID

    from sqlalchemy import ColumnElement, CursorResult, Select
    from sqlalchemy.orm import Session

    from correlator.domain.model import (
        AuditEventType,
        AuditOutcome,
        CaseQuery,
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


def _rowcount(result: object) -> int:
    return cast("CursorResult[Any]", result).rowcount


def _page[TSelect: Select[Any]](stmt: TSelect, limit: int | None, offset: int) -> TSelect:
    if offset:
        stmt = stmt.offset(offset)
    if limit is not None:
        stmt = stmt.limit(limit)
    return stmt


class SqlAlchemyRuleRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entity: CorrelationRule) -> None:
        self.session.execute(insert(correlation_rule_table).values(**rule_to_row(entity)))

    def get(self, rule_id: UUID) -> CorrelationRule | None:
        stmt = select(correlation_rule_table).where(correlation_rule_table.c.id == rule_id)
        row = self.session.execute(stmt).mappings().one_or_none()
        return rule_from_row(row) if row is not None else None

    def update(self, rule: CorrelationRule) -> None:
        values = rule_to_row(rule)
        del values["id"], values["created_at"]
        self.session.execute(
            update(correlation_rule_table)
            .where(correlation_rule_table.c.id == rule.id)
            .values(**values)
        )

    def delete(self, rule_id: UUID) -> bool:
        result = self.session.execute(
            delete(correlation_rule_table).where(correlation_rule_table.c.id == rule_id)
        )
        return _rowcount(result) > 0

    def find(
        self,
        *,
        scope: Scope | None = None,
        match_type: MatchType | None = None,
        is_active: bool | None = None,
        tier: int | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[CorrelationRule]:
        table = correlation_rule_table
        stmt = select(table).order_by(
            table.c.tier, table.c.priority, table.c.name, table.c.id
        )
        if scope is not None:
            stmt = stmt.where(table.c.scope_key == scope.key)
        if match_type is not None:
            stmt = stmt.where(table.c.match_type == match_type)
        if is_active is not None:
            stmt = stmt.where(table.c.is_active == is_active)
        if tier is not None:
            stmt = stmt.where(table.c.tier == tier)
        rows = self.session.execute(_page(stmt, limit, offset)).mappings().all()
        return [rule_from_row(row) for row in rows]


class SqlAlchemyThresholdRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, scope: Scope) -> ThresholdConfig | None:
        stmt = select(correlation_threshold_table).where(
            correlation_threshold_table.c.scope_key == scope.key
        )
        row = self.session.execute(stmt).mappings().one_or_none()
        return thresholds_from_row(row) if row is not None else None

    def upsert(self, config: ThresholdConfig) -> None:
        table = correlation_threshold_table
        values = thresholds_to_row(config)
        result = self.session.execute(
            update(table).where(table.c.scope_key == config.scope.key).values(**values)
        )
        if _rowcount(result) == 0:
            self.session.execute(insert(table).values(**values))


class SqlAlchemyCaseRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entity: CorrelationCase) -> None:
        self.session.execute(insert(correlation_case_table).values(**case_to_row(entity)))

    def get(self, case_id: UUID) -> CorrelationCase | None:
        stmt = select(correlation_case_table).where(correlation_case_table.c.id == case_id)
        row = self.session.execute(stmt).mappings().one_or_none()
        return case_from_row(row) if row is not None else None

    def compare_and_set(self, case: CorrelationCase, *, expected_status: CaseStatus) -> bool:
        table = correlation_case_table
        values = case_to_row(case)
        del values["id"], values["created_at"]
        result = self.session.execute(
            update(table)
            .where(table.c.id == case.id)
            .where(table.c.status == expected_status)
            .values(**values)
        )
        return _rowcount(result) == 1

    def find(self, query: CaseQuery) -> list[CorrelationCase]:
        table = correlation_case_table
        order = (
            (table.c.created_at.desc(), table.c.id)
            if query.newest_first
            else (table.c.created_at.asc(), table.c.id)
        )
        stmt = select(table).where(*self._conditions(query)).order_by(*order)
        rows = self.session.execute(_page(stmt, query.limit, query.offset)).mappings().all()
        return [case_from_row(row) for row in rows]

    def count(self, query: CaseQuery) -> int:
        stmt = (
            select(func.count())
            .select_from(correlation_case_table)
            .where(*self._conditions(query))
        )
        return int(self.session.execute(stmt).scalar_one())

    @staticmethod
    def _conditions(query: CaseQuery) -> list[ColumnElement[bool]]:
        table = correlation_case_table
        conditions: list[ColumnElement[bool]] = []
        if query.status is not None:
            conditions.append(table.c.status == query.status)
        if query.scope is not None:
            conditions.append(table.c.scope_key == query.scope.key)
        if query.source_ref is not None:
            conditions.append(table.c.source_ref == query.source_ref)
        if query.assigned_to is not None:
            conditions.append(table.c.assigned_to == query.assigned_to)
        if query.trigger_type is not None:
            conditions.append(table.c.trigger_type == query.trigger_type)
        if query.created_from is not None:
            conditions.append(table.c.created_at >= query.created_from)
        if query.created_to is not None:
            conditions.append(table.c.created_at < query.created_to)
        if query.reassigned is not None:
            conditions.append(table.c.status == CaseStatus.PENDING)
            assigned = table.c.assigned_to
            conditions.append(assigned.is_not(None) if query.reassigned else assigned.is_(None))
        return conditions


class SqlAlchemyLinkRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entity: IdentityLink) -> None:
        self.session.execute(insert(identity_link_table).values(**link_to_row(entity)))

    def for_source(self, source_ref: str) -> list[IdentityLink]:
        stmt = (
            select(identity_link_table)
            .where(identity_link_table.c.source_ref == source_ref)
            .order_by(identity_link_table.c.created_at)
        )
        return [link_from_row(row) for row in self.session.execute(stmt).mappings().all()]


class SqlAlchemyIdentityRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entity: ProvisionedIdentity) -> None:
        self.session.execute(
            insert(provisioned_identity_table).values(**identity_to_row(entity))
        )

    def get(self, identity_id: UUID) -> ProvisionedIdentity | None:
        stmt = select(provisioned_identity_table).where(
            provisioned_identity_table.c.id == identity_id
        )
        row = self.session.execute(stmt).mappings().one_or_none()
        return identity_from_row(row) if row is not None else None


class SqlAlchemyAuditRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entity: CorrelationAuditEvent) -> None:
        self.session.execute(
            insert(correlation_audit_event_table).values(**audit_to_row(entity))
        )

    def get(self, event_id: UUID) -> CorrelationAuditEvent | None:
        stmt = select(correlation_audit_event_table).where(
            correlation_audit_event_table.c.id == event_id
        )
        row = self.session.execute(stmt).mappings().one_or_none()
        return audit_from_row(row) if row is not None else None

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
    ) -> list[CorrelationAuditEvent]:
        table = correlation_audit_event_table
        stmt = select(table).order_by(table.c.created_at, table.c.id)
        if case_id is not None:
            stmt = stmt.where(table.c.case_id == case_id)
        if event_type is not None:
            stmt = stmt.where(table.c.event_type == event_type)
        if scope is not None:
            stmt = stmt.where(table.c.scope_key == scope.key)
        if outcome is not None:
            stmt = stmt.where(table.c.outcome == outcome)
        if actor_id is not None:
            stmt = stmt.where(table.c.actor_id == actor_id)
        if created_from is not None:
            stmt = stmt.where(table.c.created_at >= created_from)
        if created_to is not None:
            stmt = stmt.where(table.c.created_at < created_to)
        rows = self.session.execute(_page(stmt, limit, offset)).mappings().all()
        return [audit_from_row(row) for row in rows]


class SqlAlchemyJobRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entity: CorrelationJob) -> None:
        self.session.execute(insert(correlation_job_table).values(**job_to_row(entity)))

    def get(self, job_id: UUID) -> CorrelationJob | None:
        stmt = select(correlation_job_table).where(correlation_job_table.c.id == job_id)
        row = self.session.execute(stmt).mappings().one_or_none()
        return job_from_row(row) if row is not None else None

    def update(self, job: CorrelationJob) -> None:
        values = job_to_row(job)
        del values["id"], values["started_at"]
        self.session.execute(
            update(correlation_job_table)
            .where(correlation_job_table.c.id == job.id)
            .values(**values)
        )

    def find(
        self,
        *,
        scope: Scope | None = None,
        started_from: datetime | None = None,
        started_to: datetime | None = None,
    ) -> list[CorrelationJob]:
        table = correlation_job_table
        stmt = select(table).order_by(table.c.started_at, table.c.id)
        if scope is not None:
            stmt = stmt.where(table.c.scope_key == scope.key)
        if started_from is not None:
            stmt = stmt.where(table.c.started_at >= started_from)
        if started_to is not None:
            stmt = stmt.where(table.c.started_at < started_to)
        return [job_from_row(row) for row in self.session.execute(stmt).mappings().all()]


if TYPE_CHECKING:
    from correlator.domain.ports.persistence import (
        AuditRepository,
        CaseRepository,
        IdentityRepository,
        JobRepository,
        LinkRepository,
        RuleRepository,
        ThresholdRepository,
    )

    _session_stub = cast("Session", object())
    _rule_repo: RuleRepository = SqlAlchemyRuleRepository(_session_stub)
    _threshold_repo: ThresholdRepository = SqlAlchemyThresholdRepository(_session_stub)
    _case_repo: CaseRepository = SqlAlchemyCaseRepository(_session_stub)
    _link_repo: LinkRepository = SqlAlchemyLinkRepository(_session_stub)
    _identity_repo: IdentityRepository = SqlAlchemyIdentityRepository(_session_stub)
    _audit_repo: AuditRepository = SqlAlchemyAuditRepository(_session_stub)
    _job_repo: JobRepository = SqlAlchemyJobRepository(_session_stub)
