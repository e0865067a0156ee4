"""Correlation cases: human-reviewable candidate sets and their lifecycle."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final
from uuid import UUID

from correlator.domain.model.base import new_id, utcnow
from correlator.domain.model.enums import CaseStatus, TriggerType

if TYPE_CHECKING:
    from datetime import datetime

    from correlator.domain.model.candidates import MatchCandidate
    from correlator.domain.model.scope import Scope


TERMINAL_STATUSES: Final[frozenset[CaseStatus]] = frozenset(
    {CaseStatus.CONFIRMED, CaseStatus.REJECTED, CaseStatus.IDENTITY_CREATED}
)

ALLOWED_TRANSITIONS: Final[dict[CaseStatus, frozenset[CaseStatus]]] = {
    CaseStatus.PENDING: TERMINAL_STATUSES,
    CaseStatus.CONFIRMED: frozenset(),
    CaseStatus.REJECTED: frozenset(),
    CaseStatus.IDENTITY_CREATED: frozenset(),
}


def can_transition(current: CaseStatus, target: CaseStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


@dataclass(eq=False, kw_only=True)
class CorrelationCase:
    """One source record awaiting a human decision.

    Mutated only by ``CaseManager``; repositories persist status changes with a
    compare-and-set on ``status``. Cases are never deleted.
    """

    id: UUID = field(default_factory=new_id)
    scope: Scope
    source_ref: str
    source_attributes: dict[str, object] = field(default_factory=dict)
    candidates: tuple[MatchCandidate, ...]
    status: CaseStatus = CaseStatus.PENDING
    assigned_to: str | None = None
    trigger_type: TriggerType = TriggerType.BATCH
    rules_version: int = 0
    selected_candidate_id: UUID | None = None
    identity_ref: str | None = None
    resolution_reason: str | None = None
    resolved_by: str | None = None
    resolved_at: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        if not self.candidates:
            raise ValueError("A correlation case needs at least one candidate")
        self.candidates = tuple(
            sorted(self.candidates, key=lambda c: (-c.aggregate_score, c.target_ref))
        )

    @property
    def candidate(self) -> MatchCandidate:
        """Highest scoring candidate."""

        return self.candidates[0]

    @property
    def highest_confidence(self) -> float:
        return self.candidate.aggregate_score

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_reassigned(self) -> bool:
        """Pending but handed to a specific reviewer."""

        return self.status is CaseStatus.PENDING and self.assigned_to is not None

    def find_candidate(self, candidate_id: UUID) -> MatchCandidate | None:
        for candidate in self.candidates:
            if candidate.id == candidate_id:
                return candidate
        return None


@dataclass(frozen=True, slots=True, kw_only=True)
class CaseQuery:
    """Filters for the review queue; ``None`` means "any"."""

    status: CaseStatus | None = None
    scope: Scope | None = None
    source_ref: str | None = None
    assigned_to: str | None = None
    trigger_type: TriggerType | None = None
    created_from: datetime | None = None
    created_to: datetime | None = None
    # Pending cases only: True for assigned ones, False for unassigned ones.
    reassigned: bool | None = None
    newest_first: bool = True
    limit: int | None = None
    offset: int = 0


@dataclass(frozen=True, slots=True, kw_only=True)
class CasePage:
    items: tuple[CorrelationCase, ...]
    total: int
    limit: int
    offset: int

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.items) < self.total
