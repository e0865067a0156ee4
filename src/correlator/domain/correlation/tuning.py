"""Threshold simulation over a sample of pairs.

Aggregate scores do not depend on thresholds, so each pair is scored once and
then classified under both the proposed and the committed configuration.
Nothing is written.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from correlator.config.engine import DEFAULT_MAX_WORKERS
from correlator.domain.correlation.batch import PairError, iter_chunk_results
from correlator.domain.matching import decide
from correlator.domain.model import Decision, utcnow

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from datetime import datetime

    from correlator.domain.correlation.batch import CancellationToken
    from correlator.domain.matching import RuleSnapshot
    from correlator.domain.model import RecordPair, ThresholdConfig

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True, kw_only=True)
class DecisionChange:
    source_ref: str
    target_ref: str
    aggregate_score: float
    definitive_hit: bool
    committed: Decision
    proposed: Decision


@dataclass(kw_only=True)
class SimulationReport:
    proposed: ThresholdConfig
    committed: ThresholdConfig
    rules_version: int
    evaluated: int = 0
    skipped: int = 0
    distribution: Counter[Decision] = field(default_factory=Counter[Decision])
    committed_distribution: Counter[Decision] = field(default_factory=Counter[Decision])
    changes: list[DecisionChange] = field(default_factory=list[DecisionChange])
    errors: list[PairError] = field(default_factory=list[PairError])
    cancelled: bool = False

    def percentages(self, *, committed: bool = False) -> dict[Decision, float]:
        counts = self.committed_distribution if committed else self.distribution
        if not self.evaluated:
            return dict.fromkeys(Decision, 0.0)
        return {decision: 100.0 * counts[decision] / self.evaluated for decision in Decision}


def simulate(
    proposed: ThresholdConfig,
    sample: Iterable[RecordPair],
    *,
    committed: ThresholdConfig,
    snapshot: RuleSnapshot,
    cancel: CancellationToken | None = None,
    max_workers: int = DEFAULT_MAX_WORKERS,
    clock: Callable[[], datetime] = utcnow,
) -> SimulationReport:
    report = SimulationReport(
        proposed=proposed, committed=committed, rules_version=snapshot.version
    )
    for chunk in iter_chunk_results(
        sample,
        snapshot=snapshot,
        config=proposed,
        max_workers=max_workers,
        cancel=cancel,
        clock=clock,
    ):
        report.skipped += chunk.skipped
        report.errors.extend(chunk.errors)
        report.cancelled = report.cancelled or chunk.cancelled
        for candidate in chunk.candidates:
            before = decide(candidate.aggregate_score, candidate.definitive_hit, committed)
            report.evaluated += 1
            report.distribution[candidate.decision] += 1
            report.committed_distribution[before] += 1
            if before is not candidate.decision:
                report.changes.append(
                    DecisionChange(
                        source_ref=candidate.source_ref,
                        target_ref=candidate.target_ref,
                        aggregate_score=candidate.aggregate_score,
                        definitive_hit=candidate.definitive_hit,
                        committed=before,
                        proposed=candidate.decision,
                    )
                )

    log.info(
        "Simulated %s pair(s) on rules v%s: %s decision change(s)%s",
        report.evaluated,
        report.rules_version,
        len(report.changes),
        " (cancelled)" if report.cancelled else "",
    )
    return report
