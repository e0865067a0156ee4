"""Correlation audit trail."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING
from uuid import UUID

from correlator.domain.model.base import new_id, utcnow
from correlator.domain.model.enums import ActorType, AuditEventType, AuditOutcome

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import datetime

    from correlator.domain.model.scope import Scope


@dataclass(frozen=True, slots=True, kw_only=True)
class CorrelationAuditEvent:
    """Append-only record of an automatic or manual correlation decision."""

    id: UUID = field(default_factory=new_id)
    event_type: AuditEventType
    outcome: AuditOutcome = AuditOutcome.SUCCESS
    scope: Scope
    case_id: UUID | None = None
    source_ref: str | None = None
    identity_ref: str | None = None
    confidence_score: float | None = None
    candidate_count: int | None = None
    rules_version: int | None = None
    thresholds_snapshot: Mapping[str, object] | None = None
    actor_type: ActorType = ActorType.SYSTEM
    actor_id: str | None = None
    reason: str | None = None
    created_at: datetime = field(default_factory=utcnow)
