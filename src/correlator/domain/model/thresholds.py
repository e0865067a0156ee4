"""Per-scope decision thresholds."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from correlator.config.engine import DEFAULT_BATCH_SIZE, MAX_BATCH_SIZE
from correlator.domain.model.base import utcnow

if TYPE_CHECKING:
    from datetime import datetime

    from correlator.domain.model.scope import Scope


@dataclass(frozen=True, slots=True, kw_only=True)
class ThresholdConfig:
    scope: Scope
    auto_confirm_threshold: float
    manual_review_threshold: float
    tuning_mode: bool = False
    include_deactivated: bool = False
    batch_size: int = DEFAULT_BATCH_SIZE
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        for name in ("auto_confirm_threshold", "manual_review_threshold"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be within [0, 1]")
        if self.auto_confirm_threshold < self.manual_review_threshold:
            raise ValueError("auto_confirm_threshold must be >= manual_review_threshold")
        if not 1 <= self.batch_size <= MAX_BATCH_SIZE:
            raise ValueError(f"batch_size must be within [1, {MAX_BATCH_SIZE}]")

    @property
    def should_commit(self) -> bool:
        """Tuning mode computes decisions but never links or opens cases."""

        return not self.tuning_mode

    def snapshot(self) -> dict[str, object]:
        return {
            "scope": self.scope.key,
            "auto_confirm_threshold": self.auto_confirm_threshold,
            "manual_review_threshold": self.manual_review_threshold,
            "tuning_mode": self.tuning_mode,
            "include_deactivated": self.include_deactivated,
            "batch_size": self.batch_size,
        }
