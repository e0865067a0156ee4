"""Correlation domain model."""

from __future__ import annotations

from correlator.domain.model.audit import CorrelationAuditEvent
from correlator.domain.model.base import SYSTEM_ACTOR, Actor, new_id, utcnow
from correlator.domain.model.candidates import MatchCandidate, RuleHit, RuleOutcome
from correlator.domain.model.cases import (
    ALLOWED_TRANSITIONS,
    TERMINAL_STATUSES,
    CasePage,
    CaseQuery,
    CorrelationCase,
    can_transition,
)
from correlator.domain.model.enums import (
    DECISION_RANK,
    ActorType,
    AuditEventType,
    AuditOutcome,
    CaseStatus,
    Decision,
    FuzzyAlgorithm,
    JobStatus,
    LinkOrigin,
    MatchType,
    RuleScope,
    TriggerType,
)
from correlator.domain.model.jobs import CorrelationJob
from correlator.domain.model.links import IdentityLink, ProvisionedIdentity
from correlator.domain.model.records import IdentityRecord, RecordPair
from correlator.domain.model.rules import CorrelationRule
from correlator.domain.model.scope import Scope
from correlator.domain.model.thresholds import ThresholdConfig

__all__ = [
    "ALLOWED_TRANSITIONS",
    "DECISION_RANK",
    "SYSTEM_ACTOR",
    "TERMINAL_STATUSES",
    "Actor",
    "ActorType",
    "AuditEventType",
    "AuditOutcome",
    "CasePage",
    "CaseQuery",
    "CaseStatus",
    "CorrelationAuditEvent",
    "CorrelationCase",
    "CorrelationJob",
    "CorrelationRule",
    "Decision",
    "FuzzyAlgorithm",
    "IdentityLink",
    "IdentityRecord",
    "JobStatus",
    "LinkOrigin",
    "MatchCandidate",
    "MatchType",
    "ProvisionedIdentity",
    "RecordPair",
    "RuleHit",
    "RuleOutcome",
    "RuleScope",
    "Scope",
    "ThresholdConfig",
    "TriggerType",
    "can_transition",
    "new_id",
    "utcnow",
]
