"""Pydantic request/response shapes for the correlation service.

Requests are deliberately loose: they only check that values have a usable
type. Domain constraints (ranges, required-by-match-type fields, expression
compilation) are reported by ``correlator.domain.validation`` so every problem
comes back as a field-attributed error in one pass.
"""

from __future__ import annotations

from datetime import date, datetime  # noqa: TC003
from typing import TYPE_CHECKING, Any
from uuid import UUID  # noqa: TC003

import pydantic
from pydantic import BaseModel, ConfigDict, Field

from correlator.domain.errors import FieldError, ValidationError, ValidationErrorKind
from correlator.domain.model import (
    AuditEventType,
    CaseQuery,
    CaseStatus,
    Decision,
    IdentityRecord,
    RecordPair,
    Scope,
    TriggerType,
)
from correlator.domain.validation import RuleDraft, ThresholdDraft

if TYPE_CHECKING:
    from collections.abc import Mapping

    from correlator.domain.correlation import (
        BatchReport,
        CorrelationStatistics,
        CorrelationTrends,
        SimulationReport,
    )
    from correlator.domain.expressions import DryRunResult
    from correlator.domain.model import (
        CasePage,
        CorrelationAuditEvent,
        CorrelationCase,
        CorrelationJob,
        CorrelationRule,
        MatchCandidate,
        ThresholdConfig,
    )


class CorrelatorModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


def parse_payload[TModel: BaseModel](model: type[TModel], payload: Mapping[str, Any]) -> TModel:
    """Validate ``payload`` into ``model`` and report type errors per field."""

    try:
        return model.model_validate(payload)
    except pydantic.ValidationError as exc:
        errors = [
            FieldError(
                field=".".join(str(part) for part in error["loc"]) or "payload",
                kind=(
                    ValidationErrorKind.MISSING_FIELD
                    if error["type"] == "missing"
                    else ValidationErrorKind.INVALID_VALUE
                ),
                message=error["msg"],
            )
            for error in exc.errors()
        ]
        raise ValidationError(errors) from exc


def parse_scope(value: str) -> Scope:
    """Accept ``tenant``, ``connector:<id>`` or a bare connector id."""

    value = value.strip()
    try:
        if value == "tenant" or value.startswith("connector:"):
            return Scope.from_key(value)
        return Scope.connector(value)
    except ValueError as exc:
        raise ValidationError.single("scope", str(exc)) from exc


# Rules -----------------------------------------------------------------------


class CreateRuleRequest(CorrelatorModel):
    name: str | None = None
    source_attribute: str | None = None
    target_attribute: str | None = None
    attribute: str | None = None
    match_type: str | None = None
    algorithm: str | None = None
    expression: str | None = None
    threshold: float | None = None
    weight: float | None = None
    tier: int | None = None
    is_definitive: bool = False
    normalize: bool = True
    priority: int | None = None
    is_active: bool = True

    def to_draft(self, scope: Scope) -> RuleDraft:
        return RuleDraft(scope=scope, **self.model_dump())


class UpdateRuleRequest(CorrelatorModel):
    """Partial update; only fields present in the payload are applied."""

    name: str | None = None
    source_attribute: str | None = None
    target_attribute: str | None = None
    attribute: str | None = None
    match_type: str | None = None
    algorithm: str | None = None
    expression: str | None = None
    threshold: float | None = None
    weight: float | None = None
    tier: int | None = None
    is_definitive: bool | None = None
    normalize: bool | None = None
    priority: int | None = None
    is_active: bool | None = None

    def changes(self) -> dict[str, object]:
        return self.model_dump(exclude_unset=True)


class RuleResponse(CorrelatorModel):
    id: UUID
    name: str
    scope: str
    source_attribute: str
    target_attribute: str | None
    match_type: str
    algorithm: str | None
    expression: str | None
    threshold: float
    weight: float
    tier: int
    is_definitive: bool
    normalize: bool
    priority: int
    is_active: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_rule(cls, rule: CorrelationRule) -> RuleResponse:
        return cls(
            id=rule.id,
            name=rule.name,
            scope=rule.scope.key,
            source_attribute=rule.source_attribute,
            target_attribute=rule.target_attribute,
            match_type=rule.match_type.value,
            algorithm=rule.algorithm.value if rule.algorithm else None,
            expression=rule.expression,
            threshold=rule.threshold,
            weight=rule.weight,
            tier=rule.tier,
            is_definitive=rule.is_definitive,
            normalize=rule.normalize,
            priority=rule.priority,
            is_active=rule.is_active,
            created_at=rule.created_at,
            updated_at=rule.updated_at,
        )


# Expressions -----------------------------------------------------------------


class ExpressionTestInput(CorrelatorModel):
    source: dict[str, Any] = Field(default_factory=dict)
    target: dict[str, Any] = Field(default_factory=dict)


class ValidateExpressionRequest(CorrelatorModel):
    expression: str
    test_input: ExpressionTestInput | None = None


class ValidateExpressionResponse(CorrelatorModel):
    valid: bool
    error: str | None = None
    offset: int | None = None
    result: bool | None = None
    attributes: list[str] = Field(default_factory=list[str])

    @classmethod
    def from_result(cls, result: DryRunResult) -> ValidateExpressionResponse:
        return cls(
            valid=result.valid,
            error=result.error,
            offset=result.offset,
            result=result.result,
            attributes=list(result.attributes),
        )


# Thresholds ------------------------------------------------------------------


class UpsertThresholdRequest(CorrelatorModel):
    auto_confirm_threshold: float | None = None
    manual_review_threshold: float | None = None
    tuning_mode: bool = False
    include_deactivated: bool = False
    batch_size: int | None = None

    def to_draft(self) -> ThresholdDraft:
        return ThresholdDraft(**self.model_dump())


class SimulateThresholdsRequest(CorrelatorModel):
    """Proposed thresholds; omitted fields fall back to the committed configuration."""

    auto_confirm_threshold: float | None = None
    manual_review_threshold: float | None = None
    include_deactivated: bool | None = None
    batch_size: int | None = None

    def to_draft(self, committed: ThresholdConfig) -> ThresholdDraft:
        def pick[T](value: T | None, fallback: T) -> T:
            return fallback if value is None else value

        return ThresholdDraft(
            auto_confirm_threshold=pick(
                self.auto_confirm_threshold, committed.auto_confirm_threshold
            ),
            manual_review_threshold=pick(
                self.manual_review_threshold, committed.manual_review_threshold
            ),
            tuning_mode=True,
            include_deactivated=pick(self.include_deactivated, committed.include_deactivated),
            batch_size=pick(self.batch_size, committed.batch_size),
        )


class ThresholdResponse(CorrelatorModel):
    scope: str
    auto_confirm_threshold: float
    manual_review_threshold: float
    tuning_mode: bool
    include_deactivated: bool
    batch_size: int
    updated_at: datetime

    @classmethod
    def from_config(cls, config: ThresholdConfig) -> ThresholdResponse:
        return cls(
            scope=config.scope.key,
            auto_confirm_threshold=config.auto_confirm_threshold,
            manual_review_threshold=config.manual_review_threshold,
            tuning_mode=config.tuning_mode,
            include_deactivated=config.include_deactivated,
            batch_size=config.batch_size,
            updated_at=config.updated_at,
        )


# Records ---------------------------------------------------------------------


class RecordPayload(CorrelatorModel):
    ref: str
    attributes: dict[str, Any] = Field(default_factory=dict)
    is_deactivated: bool = False
    display_name: str | None = None

    def to_record(self) -> IdentityRecord:
        return IdentityRecord(
            ref=self.ref,
            attributes=self.attributes,
            is_deactivated=self.is_deactivated,
            display_name=self.display_name,
        )


class RecordPairPayload(CorrelatorModel):
    source: RecordPayload
    target: RecordPayload

    def to_pair(self) -> RecordPair:
        return RecordPair(self.source.to_record(), self.target.to_record())


# Cases -----------------------------------------------------------------------


class ListCasesRequest(CorrelatorModel):
    status: CaseStatus | None = None
    scope: str | None = None
    source_ref: str | None = None
    assigned_to: str | None = None
    trigger_type: TriggerType | None = None
    created_from: datetime | None = None
    created_to: datetime | None = None
    reassigned: bool | None = None
    newest_first: bool = True
    limit: int | None = None
    offset: int = 0

    def to_query(self) -> CaseQuery:
        return CaseQuery(
            status=self.status,
            scope=parse_scope(self.scope) if self.scope else None,
            source_ref=self.source_ref,
            assigned_to=self.assigned_to,
            trigger_type=self.trigger_type,
            created_from=self.created_from,
            created_to=self.created_to,
            reassigned=self.reassigned,
            newest_first=self.newest_first,
            limit=self.limit,
            offset=self.offset,
        )


class RuleOutcomeResponse(CorrelatorModel):
    rule_id: UUID
    attribute: str
    tier: int
    weight: float
    score: float
    hit: bool
    is_definitive: bool
    error: str | None


class CandidateResponse(CorrelatorModel):
    id: UUID
    source_ref: str
    target_ref: str
    aggregate_score: float
    definitive_hit: bool
    no_rules_configured: bool
    decision: Decision
    per_attribute_scores: dict[str, float]
    rule_outcomes: list[RuleOutcomeResponse]
    evaluated_at: datetime
    rules_version: int
    target_deactivated: bool

    @classmethod
    def from_candidate(cls, candidate: MatchCandidate) -> CandidateResponse:
        return cls(
            id=candidate.id,
            source_ref=candidate.source_ref,
            target_ref=candidate.target_ref,
            aggregate_score=candidate.aggregate_score,
            definitive_hit=candidate.definitive_hit,
            no_rules_configured=candidate.no_rules_configured,
            decision=candidate.decision,
            per_attribute_scores=candidate.per_attribute_scores,
            rule_outcomes=[
                RuleOutcomeResponse(
                    rule_id=outcome.rule_id,
                    attribute=outcome.attribute,
                    tier=outcome.tier,
                    weight=outcome.weight,
                    score=outcome.score,
                    hit=outcome.hit,
                    is_definitive=outcome.is_definitive,
                    error=outcome.error,
                )
                for outcome in candidate.rule_outcomes
            ],
            evaluated_at=candidate.evaluated_at,
            rules_version=candidate.rules_version,
            target_deactivated=candidate.target_deactivated,
        )


class CaseResponse(CorrelatorModel):
    id: UUID
    scope: str
    source_ref: str
    status: CaseStatus
    assigned_to: str | None
    trigger_type: TriggerType
    highest_confidence: float
    candidates: list[CandidateResponse]
    selected_candidate_id: UUID | None
    identity_ref: str | None
    resolution_reason: str | None
    resolved_by: str | None
    resolved_at: datetime | None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_case(cls, case: CorrelationCase) -> CaseResponse:
        return cls(
            id=case.id,
            scope=case.scope.key,
            source_ref=case.source_ref,
            status=case.status,
            assigned_to=case.assigned_to,
            trigger_type=case.trigger_type,
            highest_confidence=case.highest_confidence,
            candidates=[CandidateResponse.from_candidate(c) for c in case.candidates],
            selected_candidate_id=case.selected_candidate_id,
            identity_ref=case.identity_ref,
            resolution_reason=case.resolution_reason,
            resolved_by=case.resolved_by,
            resolved_at=case.resolved_at,
            created_at=case.created_at,
            updated_at=case.updated_at,
        )


class CasePageResponse(CorrelatorModel):
    items: list[CaseResponse]
    total: int
    limit: int
    offset: int
    has_more: bool

    @classmethod
    def from_page(cls, page: CasePage) -> CasePageResponse:
        return cls(
            items=[CaseResponse.from_case(case) for case in page.items],
            total=page.total,
            limit=page.limit,
            offset=page.offset,
            has_more=page.has_more,
        )


# Runs and reporting ----------------------------------------------------------


class PairErrorResponse(CorrelatorModel):
    source_ref: str
    target_ref: str
    message: str


class BatchReportResponse(CorrelatorModel):
    job_id: UUID | None
    scope: str
    rules_version: int
    tuning_mode: bool
    evaluated: int
    skipped: int
    distribution: dict[Decision, int]
    links_created: int
    cases_opened: int
    duplicates: int
    average_confidence: float | None
    cancelled: bool
    errors: list[PairErrorResponse]

    @classmethod
    def from_report(cls, report: BatchReport) -> BatchReportResponse:
        return cls(
            job_id=report.job_id,
            scope=report.scope.key,
            rules_version=report.rules_version,
            tuning_mode=report.tuning_mode,
            evaluated=report.evaluated,
            skipped=report.skipped,
            distribution={decision: report.distribution[decision] for decision in Decision},
            links_created=report.links_created,
            cases_opened=report.cases_opened,
            duplicates=report.duplicates,
            average_confidence=report.average_confidence,
            cancelled=report.cancelled,
            errors=[
                PairErrorResponse(
                    source_ref=error.source_ref, target_ref=error.target_ref, message=error.message
                )
                for error in report.errors
            ],
        )


class DecisionChangeResponse(CorrelatorModel):
    source_ref: str
    target_ref: str
    aggregate_score: float
    definitive_hit: bool
    committed: Decision
    proposed: Decision


class SimulationReportResponse(CorrelatorModel):
    rules_version: int
    proposed: ThresholdResponse
    committed: ThresholdResponse
    evaluated: int
    skipped: int
    distribution: dict[Decision, int]
    committed_distribution: dict[Decision, int]
    changes: list[DecisionChangeResponse]
    errors: list[PairErrorResponse]
    cancelled: bool

    @classmethod
    def from_report(cls, report: SimulationReport) -> SimulationReportResponse:
        return cls(
            rules_version=report.rules_version,
            proposed=ThresholdResponse.from_config(report.proposed),
            committed=ThresholdResponse.from_config(report.committed),
            evaluated=report.evaluated,
            skipped=report.skipped,
            distribution={d: report.distribution[d] for d in Decision},
            committed_distribution={d: report.committed_distribution[d] for d in Decision},
            changes=[
                DecisionChangeResponse(
                    source_ref=change.source_ref,
                    target_ref=change.target_ref,
                    aggregate_score=change.aggregate_score,
                    definitive_hit=change.definitive_hit,
                    committed=change.committed,
                    proposed=change.proposed,
                )
                for change in report.changes
            ],
            errors=[
                PairErrorResponse(
                    source_ref=error.source_ref, target_ref=error.target_ref, message=error.message
                )
                for error in report.errors
            ],
            cancelled=report.cancelled,
        )


class JobResponse(CorrelatorModel):
    id: UUID
    scope: str
    status: str
    tuning_mode: bool
    processed_pairs: int
    auto_confirmed: int
    queued_for_review: int
    no_match: int
    skipped: int
    errors: int
    average_confidence: float | None
    started_at: datetime
    completed_at: datetime | None

    @classmethod
    def from_job(cls, job: CorrelationJob) -> JobResponse:
        return cls(
            id=job.id,
            scope=job.scope.key,
            status=job.status.value,
            tuning_mode=job.tuning_mode,
            processed_pairs=job.processed_pairs,
            auto_confirmed=job.auto_confirmed,
            queued_for_review=job.queued_for_review,
            no_match=job.no_match,
            skipped=job.skipped,
            errors=job.errors,
            average_confidence=job.average_confidence,
            started_at=job.started_at,
            completed_at=job.completed_at,
        )


class StatisticsResponse(CorrelatorModel):
    scope: str | None
    jobs: int
    total_evaluated: int
    counts: dict[Decision, int]
    percentages: dict[Decision, float]
    average_confidence: float | None
    review_queue_depth: int

    @classmethod
    def from_statistics(cls, stats: CorrelationStatistics) -> StatisticsResponse:
        return cls(
            scope=stats.scope.key if stats.scope else None,
            jobs=stats.jobs,
            total_evaluated=stats.total_evaluated,
            counts={decision: stats.count(decision) for decision in Decision},
            percentages={decision: stats.percentage(decision) for decision in Decision},
            average_confidence=stats.average_confidence,
            review_queue_depth=stats.review_queue_depth,
        )


class DailyTrendResponse(CorrelatorModel):
    date: date
    total_evaluated: int
    auto_confirmed: int
    manual_review: int
    no_match: int
    average_confidence: float | None


class TrendsResponse(CorrelatorModel):
    scope: str | None
    period_start: datetime | None
    period_end: datetime | None
    daily_trends: list[DailyTrendResponse]

    @classmethod
    def from_trends(cls, trends: CorrelationTrends) -> TrendsResponse:
        return cls(
            scope=trends.scope.key if trends.scope else None,
            period_start=trends.period_start,
            period_end=trends.period_end,
            daily_trends=[
                DailyTrendResponse(
                    date=trend.date,
                    total_evaluated=trend.total_evaluated,
                    auto_confirmed=trend.auto_confirmed,
                    manual_review=trend.manual_review,
                    no_match=trend.no_match,
                    average_confidence=trend.average_confidence,
                )
                for trend in trends.daily_trends
            ],
        )


class AuditEventResponse(CorrelatorModel):
    id: UUID
    event_type: AuditEventType
    outcome: str
    scope: str
    case_id: UUID | None
    source_ref: str | None
    identity_ref: str | None
    confidence_score: float | None
    candidate_count: int | None
    rules_version: int | None
    thresholds_snapshot: dict[str, Any] | None
    actor_type: str
    actor_id: str | None
    reason: str | None
    created_at: datetime

    @classmethod
    def from_event(cls, event: CorrelationAuditEvent) -> AuditEventResponse:
        return cls(
            id=event.id,
            event_type=event.event_type,
            outcome=event.outcome.value,
            scope=event.scope.key,
            case_id=event.case_id,
            source_ref=event.source_ref,
            identity_ref=event.identity_ref,
            confidence_score=event.confidence_score,
            candidate_count=event.candidate_count,
            rules_version=event.rules_version,
            thresholds_snapshot=(
                dict(event.thresholds_snapshot) if event.thresholds_snapshot else None
            ),
            actor_type=event.actor_type.value,
            actor_id=event.actor_id,
            reason=event.reason,
            created_at=event.created_at,
        )


class FieldErrorResponse(CorrelatorModel):
    field: str
    kind: ValidationErrorKind
    message: str


class ErrorResponse(CorrelatorModel):
    error: str
    message: str
    field_errors: list[FieldErrorResponse] = Field(default_factory=list["FieldErrorResponse"])

    @classmethod
    def from_exception(cls, exc: Exception) -> ErrorResponse:
        fields: list[FieldErrorResponse] = []
        if isinstance(exc, ValidationError):
            fields = [
                FieldErrorResponse(field=error.field, kind=error.kind, message=error.message)
                for error in exc.errors
            ]
        return cls(error=type(exc).__name__, message=str(exc), field_errors=fields)
