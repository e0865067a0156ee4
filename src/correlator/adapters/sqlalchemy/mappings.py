"""SQLAlchemy table metadata and row translation for the correlation model.

Domain objects are frozen dataclasses, so they are translated to and from Core
rows here instead of being mapped imperatively.
"""

from __future__ import annotations

import json
import uuid
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Final, cast

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Dialect,
    Enum,
    Float,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    TypeDecorator,
    UniqueConstraint,
    Uuid,
)

from correlator.domain.model import (
    ActorType,
    AuditEventType,
    AuditOutcome,
    CaseStatus,
    CorrelationAuditEvent,
    CorrelationCase,
    CorrelationJob,
    CorrelationRule,
    Decision,
    FuzzyAlgorithm,
    IdentityLink,
    JobStatus,
    LinkOrigin,
    MatchCandidate,
    MatchType,
    ProvisionedIdentity,
    RuleOutcome,
    Scope,
    ThresholdConfig,
    TriggerType,
)

if TYPE_CHECKING:
    from collections.abc import Mapping


UUIDColumnType = Uuid[uuid.UUID]
ENUM_LENGTH: Final[int] = 32
SCOPE_KEY_LENGTH: Final[int] = 300
REF_LENGTH: Final[int] = 512


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return value if value.tzinfo else value.replace(tzinfo=UTC)


class JSONDocument(TypeDecorator[Any]):
    """JSON stored as text; non-JSON scalars (dates, UUIDs) are written as strings."""

    impl = Text
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Dialect) -> str | None:
        _ = dialect
        if value is None:
            return None
        return json.dumps(value, default=str, sort_keys=True)

    def process_result_value(self, value: str | None, dialect: Dialect) -> Any:
        _ = dialect
        if value is None:
            return None
        return json.loads(value)


def _enum_values(enum_cls: type[StrEnum]) -> list[str]:
    return [member.value for member in enum_cls]


def _enum_column_type(enum_cls: type[StrEnum]) -> Enum:
    return Enum(
        enum_cls,
        native_enum=False,
        length=ENUM_LENGTH,
        values_callable=_enum_values,
        validate_strings=True,
    )


metadata = MetaData(
    naming_convention={
        "ix": "ix_%(column_0_label)s",
        "uq": "uq_%(table_name)s_%(column_0_N_name)s",
        "ck": "ck_%(table_name)s_%(constraint_name)s",
        "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
        "pk": "pk_%(table_name)s",
    }
)

# Core tables -----------------------------------------------------------------

correlation_rule_table = Table(
    "correlation_rule",
    metadata,
    Column("id", UUIDColumnType, primary_key=True),
    Column("name", String(255), nullable=False),
    Column("scope_key", String(SCOPE_KEY_LENGTH), nullable=False, index=True),
    Column("source_attribute", String(255), nullable=False),
    Column("target_attribute", String(255), nullable=True),
    Column("match_type", _enum_column_type(MatchType), nullable=False),
    Column("algorithm", _enum_column_type(FuzzyAlgorithm), nullable=True),
    Column("expression", Text, nullable=True),
    Column("threshold", Float, nullable=False),
    Column("weight", Float, nullable=False),
    Column("tier", Integer, nullable=False),
    Column("is_definitive", Boolean, nullable=False),
    Column("normalize", Boolean, nullable=False),
    Column("priority", Integer, nullable=False),
    Column("is_active", Boolean, nullable=False),
    Column("created_at", UTCDateTime(), nullable=False),
    Column("updated_at", UTCDateTime(), nullable=False),
)

correlation_threshold_table = Table(
    "correlation_threshold",
    metadata,
    Column("scope_key", String(SCOPE_KEY_LENGTH), primary_key=True),
    Column("auto_confirm_threshold", Float, nullable=False),
    Column("manual_review_threshold", Float, nullable=False),
    Column("tuning_mode", Boolean, nullable=False),
    Column("include_deactivated", Boolean, nullable=False),
    Column("batch_size", Integer, nullable=False),
    Column("updated_at", UTCDateTime(), nullable=False),
)

correlation_case_table = Table(
    "correlation_case",
    metadata,
    Column("id", UUIDColumnType, primary_key=True),
    Column("scope_key", String(SCOPE_KEY_LENGTH), nullable=False, index=True),
    Column("source_ref", String(REF_LENGTH), nullable=False, index=True),
    Column("source_attributes", JSONDocument(), nullable=False),
    Column("candidates", JSONDocument(), nullable=False),
    Column("status", _enum_column_type(CaseStatus), nullable=False, index=True),
    Column("assigned_to", String(255), nullable=True),
    Column("trigger_type", _enum_column_type(TriggerType), nullable=False),
    Column("rules_version", Integer, nullable=False),
    Column("selected_candidate_id", UUIDColumnType, nullable=True),
    Column("identity_ref", String(REF_LENGTH), nullable=True),
    Column("resolution_reason", Text, nullable=True),
    Column("resolved_by", String(255), nullable=True),
    Column("resolved_at", UTCDateTime(), nullable=True),
    Column("created_at", UTCDateTime(), nullable=False),
    Column("updated_at", UTCDateTime(), nullable=False),
)

identity_link_table = Table(
    "identity_link",
    metadata,
    Column("id", UUIDColumnType, primary_key=True),
    Column("source_ref", String(REF_LENGTH), nullable=False, index=True),
    Column("identity_ref", String(REF_LENGTH), nullable=False),
    Column("origin", _enum_column_type(LinkOrigin), nullable=False),
    Column("confidence", Float, nullable=False),
    Column(
        "case_id",
        UUIDColumnType,
        ForeignKey("correlation_case.id", ondelete="SET NULL"),
        nullable=True,
    ),
    Column("candidate_id", UUIDColumnType, nullable=True),
    Column("created_by", String(255), nullable=True),
    Column("created_at", UTCDateTime(), nullable=False),
    UniqueConstraint("source_ref", "identity_ref"),
)

provisioned_identity_table = Table(
    "provisioned_identity",
    metadata,
    Column("id", UUIDColumnType, primary_key=True),
    Column("source_ref", String(REF_LENGTH), nullable=False),
    Column("attributes", JSONDocument(), nullable=False),
    Column("created_by", String(255), nullable=True),
    Column("created_at", UTCDateTime(), nullable=False),
)

correlation_audit_event_table = Table(
    "correlation_audit_event",
    metadata,
    Column("id", UUIDColumnType, primary_key=True),
    Column("event_type", _enum_column_type(AuditEventType), nullable=False, index=True),
    Column("outcome", _enum_column_type(AuditOutcome), nullable=False),
    Column("scope_key", String(SCOPE_KEY_LENGTH), nullable=False),
    Column("case_id", UUIDColumnType, nullable=True, index=True),
    Column("source_ref", String(REF_LENGTH), nullable=True),
    Column("identity_ref", String(REF_LENGTH), nullable=True),
    Column("confidence_score", Float, nullable=True),
    Column("candidate_count", Integer, nullable=True),
    Column("rules_version", Integer, nullable=True),
    Column("thresholds_snapshot", JSONDocument(), nullable=True),
    Column("actor_type", _enum_column_type(ActorType), nullable=False),
    Column("actor_id", String(255), nullable=True),
    Column("reason", Text, nullable=True),
    Column("created_at", UTCDateTime(), nullable=False),
)

correlation_job_table = Table(
    "correlation_job",
    metadata,
    Column("id", UUIDColumnType, primary_key=True),
    Column("scope_key", String(SCOPE_KEY_LENGTH), nullable=False, index=True),
    Column("status", _enum_column_type(JobStatus), nullable=False),
    Column("tuning_mode", Boolean, nullable=False),
    Column("total_pairs", Integer, nullable=False),
    Column("processed_pairs", Integer, nullable=False),
    Column("auto_confirmed", Integer, nullable=False),
    Column("queued_for_review", Integer, nullable=False),
    Column("no_match", Integer, nullable=False),
    Column("skipped", Integer, nullable=False),
    Column("errors", Integer, nullable=False),
    Column("average_confidence", Float, nullable=True),
    Column("started_at", UTCDateTime(), nullable=False),
    Column("completed_at", UTCDateTime(), nullable=True),
)


# Rules -----------------------------------------------------------------------


def rule_to_row(rule: CorrelationRule) -> dict[str, object]:
    return {
        "id": rule.id,
        "name": rule.name,
        "scope_key": rule.scope.key,
        "source_attribute": rule.source_attribute,
        "target_attribute": rule.target_attribute,
        "match_type": rule.match_type,
        "algorithm": rule.algorithm,
        "expression": rule.expression,
        "threshold": rule.threshold,
        "weight": rule.weight,
        "tier": rule.tier,
        "is_definitive": rule.is_definitive,
        "normalize": rule.normalize,
        "priority": rule.priority,
        "is_active": rule.is_active,
        "created_at": rule.created_at,
        "updated_at": rule.updated_at,
    }


def rule_from_row(row: Mapping[str, Any]) -> CorrelationRule:
    return CorrelationRule(
        id=row["id"],
        name=row["name"],
        scope=Scope.from_key(row["scope_key"]),
        source_attribute=row["source_attribute"],
        target_attribute=row["target_attribute"],
        match_type=row["match_type"],
        algorithm=row["algorithm"],
        expression=row["expression"],
        threshold=row["threshold"],
        weight=row["weight"],
        tier=row["tier"],
        is_definitive=row["is_definitive"],
        normalize=row["normalize"],
        priority=row["priority"],
        is_active=row["is_active"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


# Thresholds ------------------------------------------------------------------


def thresholds_to_row(config: ThresholdConfig) -> dict[str, object]:
    return {
        "scope_key": config.scope.key,
        "auto_confirm_threshold": config.auto_confirm_threshold,
        "manual_review_threshold": config.manual_review_threshold,
        "tuning_mode": config.tuning_mode,
        "include_deactivated": config.include_deactivated,
        "batch_size": config.batch_size,
        "updated_at": config.updated_at,
    }


def thresholds_from_row(row: Mapping[str, Any]) -> ThresholdConfig:
    return ThresholdConfig(
        scope=Scope.from_key(row["scope_key"]),
        auto_confirm_threshold=row["auto_confirm_threshold"],
        manual_review_threshold=row["manual_review_threshold"],
        tuning_mode=row["tuning_mode"],
        include_deactivated=row["include_deactivated"],
        batch_size=row["batch_size"],
        updated_at=row["updated_at"],
    )


# Cases -----------------------------------------------------------------------


def candidate_to_document(candidate: MatchCandidate) -> dict[str, object]:
    return {
        "id": str(candidate.id),
        "source_ref": candidate.source_ref,
        "target_ref": candidate.target_ref,
        "aggregate_score": candidate.aggregate_score,
        "definitive_hit": candidate.definitive_hit,
        "no_rules_configured": candidate.no_rules_configured,
        "decision": candidate.decision.value,
        "evaluated_at": candidate.evaluated_at.isoformat(),
        "rules_version": candidate.rules_version,
        "target_deactivated": candidate.target_deactivated,
        "rule_outcomes": [
            {
                "rule_id": str(outcome.rule_id),
                "attribute": outcome.attribute,
                "tier": outcome.tier,
                "weight": outcome.weight,
                "score": outcome.score,
                "hit": outcome.hit,
                "is_definitive": outcome.is_definitive,
                "error": outcome.error,
            }
            for outcome in candidate.rule_outcomes
        ],
    }


def candidate_from_document(document: Mapping[str, Any]) -> MatchCandidate:
    outcomes = cast(list[dict[str, Any]], document.get("rule_outcomes") or [])
    return MatchCandidate(
        id=uuid.UUID(document["id"]),
        source_ref=document["source_ref"],
        target_ref=document["target_ref"],
        aggregate_score=float(document["aggregate_score"]),
        definitive_hit=bool(document["definitive_hit"]),
        no_rules_configured=bool(document.get("no_rules_configured", False)),
        decision=Decision(document["decision"]),
        evaluated_at=datetime.fromisoformat(document["evaluated_at"]),
        rules_version=int(document.get("rules_version", 0)),
        target_deactivated=bool(document.get("target_deactivated", False)),
        rule_outcomes=tuple(
            RuleOutcome(
                rule_id=uuid.UUID(outcome["rule_id"]),
                attribute=outcome["attribute"],
                tier=int(outcome["tier"]),
                weight=float(outcome["weight"]),
                score=float(outcome["score"]),
                hit=bool(outcome["hit"]),
                is_definitive=bool(outcome.get("is_definitive", False)),
                error=outcome.get("error"),
            )
            for outcome in outcomes
        ),
    )


def case_to_row(case: CorrelationCase) -> dict[str, object]:
    return {
        "id": case.id,
        "scope_key": case.scope.key,
        "source_ref": case.source_ref,
        "source_attributes": case.source_attributes,
        "candidates": [candidate_to_document(candidate) for candidate in case.candidates],
        "status": case.status,
        "assigned_to": case.assigned_to,
        "trigger_type": case.trigger_type,
        "rules_version": case.rules_version,
        "selected_candidate_id": case.selected_candidate_id,
        "identity_ref": case.identity_ref,
        "resolution_reason": case.resolution_reason,
        "resolved_by": case.resolved_by,
        "resolved_at": case.resolved_at,
        "created_at": case.created_at,
        "updated_at": case.updated_at,
    }


def case_from_row(row: Mapping[str, Any]) -> CorrelationCase:
    documents = cast(list[dict[str, Any]], row["candidates"])
    return CorrelationCase(
        id=row["id"],
        scope=Scope.from_key(row["scope_key"]),
        source_ref=row["source_ref"],
        source_attributes=dict(row["source_attributes"] or {}),
        candidates=tuple(candidate_from_document(document) for document in documents),
        status=row["status"],
        assigned_to=row["assigned_to"],
        trigger_type=row["trigger_type"],
        rules_version=row["rules_version"],
        selected_candidate_id=row["selected_candidate_id"],
        identity_ref=row["identity_ref"],
        resolution_reason=row["resolution_reason"],
        resolved_by=row["resolved_by"],
        resolved_at=row["resolved_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


# Links and identities --------------------------------------------------------


def link_to_row(link: IdentityLink) -> dict[str, object]:
    return {
        "id": link.id,
        "source_ref": link.source_ref,
        "identity_ref": link.identity_ref,
        "origin": link.origin,
        "confidence": link.confidence,
        "case_id": link.case_id,
        "candidate_id": link.candidate_id,
        "created_by": link.created_by,
        "created_at": link.created_at,
    }


def link_from_row(row: Mapping[str, Any]) -> IdentityLink:
    return IdentityLink(
        id=row["id"],
        source_ref=row["source_ref"],
        identity_ref=row["identity_ref"],
        origin=row["origin"],
        confidence=row["confidence"],
        case_id=row["case_id"],
        candidate_id=row["candidate_id"],
        created_by=row["created_by"],
        created_at=row["created_at"],
    )


def identity_to_row(identity: ProvisionedIdentity) -> dict[str, object]:
    return {
        "id": identity.id,
        "source_ref": identity.source_ref,
        "attributes": dict(identity.attributes),
        "created_by": identity.created_by,
        "created_at": identity.created_at,
    }


def identity_from_row(row: Mapping[str, Any]) -> ProvisionedIdentity:
    return ProvisionedIdentity(
        id=row["id"],
        source_ref=row["source_ref"],
        attributes=dict(row["attributes"] or {}),
        created_by=row["created_by"],
        created_at=row["created_at"],
    )


# Audit and jobs --------------------------------------------------------------


def audit_to_row(event: CorrelationAuditEvent) -> dict[str, object]:
    snapshot = event.thresholds_snapshot
    return {
        "id": event.id,
        "event_type": event.event_type,
        "outcome": event.outcome,
        "scope_key": event.scope.key,
        "case_id": event.case_id,
        "source_ref": event.source_ref,
        "identity_ref": event.identity_ref,
        "confidence_score": event.confidence_score,
        "candidate_count": event.candidate_count,
        "rules_version": event.rules_version,
        "thresholds_snapshot": dict(snapshot) if snapshot is not None else None,
        "actor_type": event.actor_type,
        "actor_id": event.actor_id,
        "reason": event.reason,
        "created_at": event.created_at,
    }


def audit_from_row(row: Mapping[str, Any]) -> CorrelationAuditEvent:
    return CorrelationAuditEvent(
        id=row["id"],
        event_type=row["event_type"],
        outcome=row["outcome"],
        scope=Scope.from_key(row["scope_key"]),
        case_id=row["case_id"],
        source_ref=row["source_ref"],
        identity_ref=row["identity_ref"],
        confidence_score=row["confidence_score"],
        candidate_count=row["candidate_count"],
        rules_version=row["rules_version"],
        thresholds_snapshot=row["thresholds_snapshot"],
        actor_type=row["actor_type"],
        actor_id=row["actor_id"],
        reason=row["reason"],
        created_at=row["created_at"],
    )


def job_to_row(job: CorrelationJob) -> dict[str, object]:
    return {
        "id": job.id,
        "scope_key": job.scope.key,
        "status": job.status,
        "tuning_mode": job.tuning_mode,
        "total_pairs": job.total_pairs,
        "processed_pairs": job.processed_pairs,
        "auto_confirmed": job.auto_confirmed,
        "queued_for_review": job.queued_for_review,
        "no_match": job.no_match,
        "skipped": job.skipped,
        "errors": job.errors,
        "average_confidence": job.average_confidence,
        "started_at": job.started_at,
        "completed_at": job.completed_at,
    }


def job_from_row(row: Mapping[str, Any]) -> CorrelationJob:
    return CorrelationJob(
        id=row["id"],
        scope=Scope.from_key(row["scope_key"]),
        status=row["status"],
        tuning_mode=row["tuning_mode"],
        total_pairs=row["total_pairs"],
        processed_pairs=row["processed_pairs"],
        auto_confirmed=row["auto_confirmed"],
        queued_for_review=row["queued_for_review"],
        no_match=row["no_match"],
        skipped=row["skipped"],
        errors=row["errors"],
        average_confidence=row["average_confidence"],
        started_at=row["started_at"],
        completed_at=row["completed_at"],
    )
