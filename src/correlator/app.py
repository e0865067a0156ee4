"""Application orchestration entry points."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

from correlator.adapters.sqlalchemy.unit_of_work import SqlAlchemyUnitOfWork, is_started, startup
from correlator.api.schemas import ValidateExpressionResponse
from correlator.config import EngineConfig, get_engine_config
from correlator.domain.correlation import (
    CaseManager,
    compute_statistics,
    compute_trends,
    run_correlation,
    simulate,
)
from correlator.domain.errors import (
    AuditEventNotFound,
    JobNotFound,
    RuleNotFound,
    ValidationError,
)
from correlator.domain.expressions import dry_run
from correlator.domain.matching import RuleSetRegistry
from correlator.domain.model import (
    CaseQuery,
    CaseStatus,
    ThresholdConfig,
    TriggerType,
    utcnow,
)
from correlator.domain.validation import (
    merge_draft,
    validate,
    validate_thresholds,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from datetime import datetime
    from uuid import UUID

    from correlator.api.schemas import (
        CreateRuleRequest,
        ListCasesRequest,
        SimulateThresholdsRequest,
        UpdateRuleRequest,
        UpsertThresholdRequest,
        ValidateExpressionRequest,
    )
    from correlator.domain.correlation import (
        BatchReport,
        CancellationToken,
        CorrelationStatistics,
        CorrelationTrends,
        SimulationReport,
    )
    from correlator.domain.matching import RuleSnapshot
    from correlator.domain.model import (
        Actor,
        AuditEventType,
        AuditOutcome,
        CasePage,
        CorrelationAuditEvent,
        CorrelationCase,
        CorrelationJob,
        CorrelationRule,
        MatchType,
        RecordPair,
        Scope,
    )
    from correlator.domain.ports import UnitOfWorkFactory


log = getLogger(__name__)


@dataclass(slots=True)
class CorrelationService:
    """Use cases for rule authors, reviewers and batch callers.

    Rule changes publish a fresh snapshot for their scope; evaluation always
    reloads the scope's rules first so changes made by other processes are
    picked up before a run starts.
    """

    unit_of_work_factory: UnitOfWorkFactory
    engine_config: EngineConfig = field(default_factory=EngineConfig)
    registry: RuleSetRegistry = field(default_factory=RuleSetRegistry)
    clock: Callable[[], datetime] = utcnow
    cases: CaseManager = field(init=False)

    def __post_init__(self) -> None:
        self.cases = CaseManager(
            self.unit_of_work_factory,
            clock=self.clock,
            page_size=self.engine_config.case_page_size,
        )

    # Rules -----------------------------------------------------------------

    def create_rule(self, scope: Scope, request: CreateRuleRequest) -> CorrelationRule:
        result = validate(request.to_draft(scope))
        if not result.ok:
            log.info("Rejected rule for %s: %s", scope, [e.field for e in result.errors])
        rule = result.unwrap()
        with self.unit_of_work_factory() as uow:
            uow.repositories.rules.add(rule)
            uow.commit()
        log.info("Created rule %s (%s) for %s", rule.id, rule.name, scope)
        self.refresh_snapshot(scope)
        return rule

    def update_rule(self, rule_id: UUID, request: UpdateRuleRequest) -> CorrelationRule:
        with self.unit_of_work_factory() as uow:
            existing = uow.repositories.rules.get(rule_id)
            if existing is None:
                raise RuleNotFound(rule_id)
            result = validate(merge_draft(existing, request.changes()))
            if not result.ok:
                log.info(
                    "Rejected update of rule %s: %s", rule_id, [e.field for e in result.errors]
                )
            rule = dataclasses.replace(result.unwrap(), updated_at=self.clock())
            uow.repositories.rules.update(rule)
            uow.commit()
        log.info("Updated rule %s", rule_id)
        self.refresh_snapshot(rule.scope)
        return rule

    def delete_rule(self, rule_id: UUID) -> None:
        with self.unit_of_work_factory() as uow:
            existing = uow.repositories.rules.get(rule_id)
            if existing is None or not uow.repositories.rules.delete(rule_id):
                raise RuleNotFound(rule_id)
            uow.commit()
        log.info("Deleted rule %s", rule_id)
        self.refresh_snapshot(existing.scope)

    def get_rule(self, rule_id: UUID) -> CorrelationRule:
        with self.unit_of_work_factory() as uow:
            rule = uow.repositories.rules.get(rule_id)
        if rule is None:
            raise RuleNotFound(rule_id)
        return rule

    def list_rules(
        self,
        scope: Scope | None = None,
        *,
        match_type: MatchType | None = None,
        is_active: bool | None = None,
        tier: int | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[CorrelationRule]:
        with self.unit_of_work_factory() as uow:
            return uow.repositories.rules.find(
                scope=scope,
                match_type=match_type,
                is_active=is_active,
                tier=tier,
                limit=limit,
                offset=offset,
            )

    def refresh_snapshot(self, scope: Scope) -> RuleSnapshot:
        with self.unit_of_work_factory() as uow:
            rules = uow.repositories.rules.find(scope=scope)
        return self.registry.publish(scope, rules)

    def validate_expression(
        self, request: ValidateExpressionRequest
    ) -> ValidateExpressionResponse:
        test_input = request.test_input
        if test_input is None:
            return ValidateExpressionResponse.from_result(dry_run(request.expression))
        return ValidateExpressionResponse.from_result(
            dry_run(request.expression, test_input.source, test_input.target)
        )

    # Thresholds ------------------------------------------------------------

    def get_thresholds(self, scope: Scope) -> ThresholdConfig:
        with self.unit_of_work_factory() as uow:
            stored = uow.repositories.thresholds.get(scope)
        if stored is not None:
            return stored
        return ThresholdConfig(
            scope=scope,
            auto_confirm_threshold=self.engine_config.default_auto_confirm_threshold,
            manual_review_threshold=self.engine_config.default_manual_review_threshold,
            batch_size=self.engine_config.default_batch_size,
        )

    def upsert_thresholds(self, scope: Scope, request: UpsertThresholdRequest) -> ThresholdConfig:
        result = validate_thresholds(scope, request.to_draft())
        if not result.ok:
            log.info("Rejected thresholds for %s: %s", scope, [e.field for e in result.errors])
        config = dataclasses.replace(result.unwrap(), updated_at=self.clock())
        with self.unit_of_work_factory() as uow:
            uow.repositories.thresholds.upsert(config)
            uow.commit()
        log.info(
            "Thresholds for %s: auto=%s manual=%s tuning=%s",
            scope,
            config.auto_confirm_threshold,
            config.manual_review_threshold,
            config.tuning_mode,
        )
        return config

    # Cases -----------------------------------------------------------------

    def get_case(self, case_id: UUID) -> CorrelationCase:
        return self.cases.get_case(case_id)

    def list_cases(self, request: ListCasesRequest | None = None) -> CasePage:
        return self.cases.list_cases(request.to_query() if request is not None else None)

    def confirm_case(
        self, case_id: UUID, candidate_id: UUID, *, actor: Actor, reason: str | None = None
    ) -> CorrelationCase:
        return self.cases.confirm(case_id, candidate_id, actor=actor, reason=reason)

    def reject_case(self, case_id: UUID, reason: str, *, actor: Actor) -> CorrelationCase:
        return self.cases.reject(case_id, reason, actor=actor)

    def reassign_case(
        self, case_id: UUID, assigned_to: str, *, actor: Actor, reason: str | None = None
    ) -> CorrelationCase:
        return self.cases.reassign(case_id, assigned_to, actor=actor, reason=reason)

    def create_identity_from_case(
        self, case_id: UUID, *, actor: Actor, reason: str | None = None
    ) -> CorrelationCase:
        return self.cases.create_identity_from_case(case_id, actor=actor, reason=reason)

    # Runs ------------------------------------------------------------------

    def correlate(
        self,
        scope: Scope,
        pairs: Iterable[RecordPair],
        *,
        trigger: TriggerType = TriggerType.BATCH,
        cancel: CancellationToken | None = None,
    ) -> BatchReport:
        snapshot = self.refresh_snapshot(scope)
        config = self.get_thresholds(scope)
        return run_correlation(
            pairs,
            scope=scope,
            snapshot=snapshot,
            config=config,
            unit_of_work_factory=self.unit_of_work_factory,
            trigger=trigger,
            max_workers=self.engine_config.max_workers,
            cancel=cancel,
            clock=self.clock,
        )

    def simulate_thresholds(
        self,
        scope: Scope,
        request: SimulateThresholdsRequest,
        pairs: Iterable[RecordPair],
        *,
        cancel: CancellationToken | None = None,
    ) -> SimulationReport:
        committed = self.get_thresholds(scope)
        proposed = validate_thresholds(scope, request.to_draft(committed)).unwrap()
        snapshot = self.refresh_snapshot(scope)
        return simulate(
            proposed,
            pairs,
            committed=committed,
            snapshot=snapshot,
            cancel=cancel,
            max_workers=self.engine_config.max_workers,
            clock=self.clock,
        )

    def get_job(self, job_id: UUID) -> CorrelationJob:
        with self.unit_of_work_factory() as uow:
            job = uow.repositories.jobs.get(job_id)
        if job is None:
            raise JobNotFound(job_id)
        return job

    # Reporting -------------------------------------------------------------

    def statistics(
        self,
        scope: Scope | None = None,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> CorrelationStatistics:
        _check_window(start, end)
        with self.unit_of_work_factory() as uow:
            jobs = uow.repositories.jobs.find(scope=scope, started_from=start, started_to=end)
            depth = uow.repositories.cases.count(
                CaseQuery(status=CaseStatus.PENDING, scope=scope)
            )
        return compute_statistics(jobs, review_queue_depth=depth, scope=scope)

    def trends(
        self,
        scope: Scope | None = None,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> CorrelationTrends:
        _check_window(start, end)
        with self.unit_of_work_factory() as uow:
            jobs = uow.repositories.jobs.find(scope=scope, started_from=start, started_to=end)
        return compute_trends(jobs, scope=scope, start=start, end=end)

    def get_audit_event(self, event_id: UUID) -> CorrelationAuditEvent:
        with self.unit_of_work_factory() as uow:
            event = uow.repositories.audit.get(event_id)
        if event is None:
            raise AuditEventNotFound(event_id)
        return event

    def list_audit_events(
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
        _check_window(created_from, created_to, names=("created_from", "created_to"))
        with self.unit_of_work_factory() as uow:
            return uow.repositories.audit.find(
                case_id=case_id,
                event_type=event_type,
                scope=scope,
                outcome=outcome,
                actor_id=actor_id,
                created_from=created_from,
                created_to=created_to,
                limit=limit,
                offset=offset,
            )


def _check_window(
    start: datetime | None,
    end: datetime | None,
    *,
    names: tuple[str, str] = ("start", "end"),
) -> None:
    if start is not None and end is not None and start > end:
        low, high = names
        raise ValidationError.single(low, f"{low} must not be after {high}")


def build_service(*, database_uri: str | None = None) -> CorrelationService:
    """Start the SQLAlchemy adapter (once) and wire a service to it."""

    if not is_started():
        startup(database_uri=database_uri)
    return CorrelationService(SqlAlchemyUnitOfWork, engine_config=get_engine_config())
