"""Threshold decision policy."""

from __future__ import annotations

from typing import TYPE_CHECKING

from correlator.domain.model.enums import Decision

if TYPE_CHECKING:
    from correlator.domain.model.thresholds import ThresholdConfig


def decide(
    aggregate_score: float,
    definitive_hit: bool,  # noqa: FBT001
    config: ThresholdConfig,
) -> Decision:
    """Classify a score. Monotonic: a higher score never yields a weaker decision.

    Tuning mode does not change the outcome; callers check
    ``config.should_commit`` before acting on it.
    """

    if definitive_hit:
        return Decision.AUTO_CONFIRM
    if aggregate_score >= config.auto_confirm_threshold:
        return Decision.AUTO_CONFIRM
    if aggregate_score >= config.manual_review_threshold:
        return Decision.MANUAL_REVIEW
    return Decision.NO_MATCH
