"""Domain enums (pure, dependency-light)."""

from __future__ import annotations

from enum import StrEnum


class RuleScope(StrEnum):
    """Connector rules compare an attribute pair; tenant rules compare one attribute."""

    CONNECTOR = "connector"
    TENANT = "tenant"


class MatchType(StrEnum):
    EXACT = "exact"
    FUZZY = "fuzzy"
    EXPRESSION = "expression"


class FuzzyAlgorithm(StrEnum):
    LEVENSHTEIN = "levenshtein"
    JARO_WINKLER = "jaro_winkler"


class Decision(StrEnum):
    """Ordered from weakest to strongest; see ``DECISION_RANK``."""

    NO_MATCH = "no_match"
    MANUAL_REVIEW = "manual_review"
    AUTO_CONFIRM = "auto_confirm"


DECISION_RANK: dict[Decision, int] = {
    Decision.NO_MATCH: 0,
    Decision.MANUAL_REVIEW: 1,
    Decision.AUTO_CONFIRM: 2,
}


class CaseStatus(StrEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    IDENTITY_CREATED = "identity_created"


class TriggerType(StrEnum):
    """What caused a case to be opened."""

    IMPORT = "import"
    BATCH = "batch"
    MANUAL = "manual"


class LinkOrigin(StrEnum):
    AUTO = "auto"
    MANUAL = "manual"
    PROVISIONED = "provisioned"


class AuditEventType(StrEnum):
    AUTO_CONFIRM = "auto_confirm"
    CASE_OPENED = "case_opened"
    MANUAL_CONFIRM = "manual_confirm"
    REJECT = "reject"
    CREATE_IDENTITY = "create_identity"
    REASSIGN = "reassign"


class AuditOutcome(StrEnum):
    SUCCESS = "success"
    FAILURE = "failure"


class ActorType(StrEnum):
    SYSTEM = "system"
    USER = "user"


class JobStatus(StrEnum):
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"
