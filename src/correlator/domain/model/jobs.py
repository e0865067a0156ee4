"""Committed correlation runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING
from uuid import UUID

from correlator.domain.model.base import new_id, utcnow
from correlator.domain.model.enums import JobStatus

if TYPE_CHECKING:
    from datetime import datetime

    from correlator.domain.model.scope import Scope


@dataclass(kw_only=True)
class CorrelationJob:
    id: UUID = field(default_factory=new_id)
    scope: Scope
    status: JobStatus = JobStatus.RUNNING
    tuning_mode: bool = False
    total_pairs: int = 0
    processed_pairs: int = 0
    auto_confirmed: int = 0
    queued_for_review: int = 0
    no_match: int = 0
    skipped: int = 0
    errors: int = 0
    average_confidence: float | None = None
    started_at: datetime = field(default_factory=utcnow)
    completed_at: datetime | None = None

    @property
    def evaluated(self) -> int:
        return self.auto_confirmed + self.queued_for_review + self.no_match
