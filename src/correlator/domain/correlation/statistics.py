"""Decision statistics over committed correlation jobs."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import UTC
from typing import TYPE_CHECKING

from correlator.domain.model import Decision

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import date, datetime

    from correlator.domain.model import CorrelationJob, Scope


@dataclass(frozen=True, slots=True, kw_only=True)
class CorrelationStatistics:
    scope: Scope | None
    jobs: int
    total_evaluated: int
    auto_confirmed: int
    manual_review: int
    no_match: int
    average_confidence: float | None
    review_queue_depth: int

    def count(self, decision: Decision) -> int:
        if decision is Decision.AUTO_CONFIRM:
            return self.auto_confirmed
        if decision is Decision.MANUAL_REVIEW:
            return self.manual_review
        return self.no_match

    def percentage(self, decision: Decision) -> float:
        if not self.total_evaluated:
            return 0.0
        return 100.0 * self.count(decision) / self.total_evaluated


def _weighted_average(jobs: list[CorrelationJob]) -> float | None:
    weighted = [
        (job.average_confidence, job.evaluated)
        for job in jobs
        if job.average_confidence is not None and job.evaluated
    ]
    weight = sum(count for _, count in weighted)
    return sum(score * count for score, count in weighted) / weight if weight else None


def compute_statistics(
    jobs: Iterable[CorrelationJob],
    *,
    review_queue_depth: int,
    scope: Scope | None = None,
) -> CorrelationStatistics:
    """Fold job counters into totals.

    Tuning-mode jobs wrote nothing and are left out. The average confidence is
    weighted by the number of pairs each job evaluated.
    """

    committed = [job for job in jobs if not job.tuning_mode]
    auto = sum(job.auto_confirmed for job in committed)
    review = sum(job.queued_for_review for job in committed)
    none = sum(job.no_match for job in committed)
    total = auto + review + none

    return CorrelationStatistics(
        scope=scope,
        jobs=len(committed),
        total_evaluated=total,
        auto_confirmed=auto,
        manual_review=review,
        no_match=none,
        average_confidence=_weighted_average(committed),
        review_queue_depth=review_queue_depth,
    )


@dataclass(frozen=True, slots=True, kw_only=True)
class DailyTrend:
    date: date
    total_evaluated: int
    auto_confirmed: int
    manual_review: int
    no_match: int
    average_confidence: float | None


@dataclass(frozen=True, slots=True, kw_only=True)
class CorrelationTrends:
    scope: Scope | None
    period_start: datetime | None
    period_end: datetime | None
    daily_trends: tuple[DailyTrend, ...]


def compute_trends(
    jobs: Iterable[CorrelationJob],
    *,
    scope: Scope | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> CorrelationTrends:
    """Per-day decision counts, keyed by the UTC day each job started.

    Days without committed jobs are omitted; the rows are in date order.
    """

    by_day: defaultdict[date, list[CorrelationJob]] = defaultdict(list)
    for job in jobs:
        if not job.tuning_mode:
            by_day[job.started_at.astimezone(UTC).date()].append(job)

    daily: list[DailyTrend] = []
    for day in sorted(by_day):
        day_jobs = by_day[day]
        auto = sum(job.auto_confirmed for job in day_jobs)
        review = sum(job.queued_for_review for job in day_jobs)
        none = sum(job.no_match for job in day_jobs)
        daily.append(
            DailyTrend(
                date=day,
                total_evaluated=auto + review + none,
                auto_confirmed=auto,
                manual_review=review,
                no_match=none,
                average_confidence=_weighted_average(day_jobs),
            )
        )
    return CorrelationTrends(
        scope=scope, period_start=start, period_end=end, daily_trends=tuple(daily)
    )
