"""Chunked, parallel evaluation of record pairs.

Pairs are pulled lazily from the caller's iterable, at most ``batch_size`` at a
time. Each chunk is scored on a thread pool against one immutable rule
snapshot; a pair that fails is reported and the run continues. A
``CancellationToken`` stops the run between pairs and between chunks, and the
results gathered so far still form a valid report.
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from correlator.config.engine import DEFAULT_MAX_WORKERS
from correlator.domain.correlation.pipeline import (
    PendingSources,
    commit_route,
    evaluate_pair,
)
from correlator.domain.model import (
    CorrelationJob,
    Decision,
    JobStatus,
    TriggerType,
    utcnow,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Iterator
    from concurrent.futures import Future
    from datetime import datetime
    from uuid import UUID

    from correlator.domain.correlation.pipeline import SourceRoute
    from correlator.domain.matching import RuleSnapshot
    from correlator.domain.model import MatchCandidate, RecordPair, Scope, ThresholdConfig
    from correlator.domain.ports import UnitOfWorkFactory

log = logging.getLogger(__name__)


class CancellationToken:
    """Cooperative stop flag shared between the caller and worker threads."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass(frozen=True, slots=True, kw_only=True)
class PairError:
    source_ref: str
    target_ref: str
    message: str


@dataclass(frozen=True, slots=True, kw_only=True)
class ChunkResult:
    pairs: tuple[RecordPair, ...]
    candidates: tuple[MatchCandidate, ...]
    errors: tuple[PairError, ...] = ()
    skipped: int = 0
    cancelled: bool = False
    last_source_ref: str | None = None


def chunk_pairs(pairs: Iterable[RecordPair], size: int) -> Iterator[tuple[RecordPair, ...]]:
    """Yield chunks of at most ``size`` pairs, pulling no pair ahead of its chunk."""

    if size < 1:
        raise ValueError("chunk size must be at least 1")
    chunk: list[RecordPair] = []
    for pair in pairs:
        chunk.append(pair)
        if len(chunk) == size:
            yield tuple(chunk)
            chunk = []
    if chunk:
        yield tuple(chunk)


def iter_chunk_results(
    pairs: Iterable[RecordPair],
    *,
    snapshot: RuleSnapshot,
    config: ThresholdConfig,
    max_workers: int = DEFAULT_MAX_WORKERS,
    cancel: CancellationToken | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> Iterator[ChunkResult]:
    """Evaluate ``pairs`` chunk by chunk using ``config.batch_size``."""

    token = cancel or CancellationToken()
    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="correlate") as pool:
        for chunk in chunk_pairs(pairs, config.batch_size):
            if token.cancelled:
                yield ChunkResult(pairs=(), candidates=(), cancelled=True)
                return
            result = _evaluate_chunk(chunk, pool, snapshot, config, token, clock)
            yield result
            if result.cancelled:
                return


def _evaluate_chunk(
    chunk: tuple[RecordPair, ...],
    pool: ThreadPoolExecutor,
    snapshot: RuleSnapshot,
    config: ThresholdConfig,
    token: CancellationToken,
    clock: Callable[[], datetime],
) -> ChunkResult:
    eligible: list[RecordPair] = []
    skipped = 0
    for pair in chunk:
        if pair.source.is_deactivated and not config.include_deactivated:
            skipped += 1
            continue
        eligible.append(pair)

    def work(pair: RecordPair) -> MatchCandidate | None:
        if token.cancelled:
            return None
        return evaluate_pair(snapshot, config, pair, clock=clock)

    futures: list[tuple[RecordPair, Future[MatchCandidate | None]]] = [
        (pair, pool.submit(work, pair)) for pair in eligible
    ]
    evaluated: list[RecordPair] = []
    candidates: list[MatchCandidate] = []
    errors: list[PairError] = []
    for pair, future in futures:
        try:
            candidate = future.result()
        except Exception as exc:  # noqa: BLE001
            log.warning("Evaluation failed for %s/%s: %s", pair.source.ref, pair.target.ref, exc)
            errors.append(
                PairError(source_ref=pair.source.ref, target_ref=pair.target.ref, message=str(exc))
            )
            continue
        if candidate is None:
            continue
        evaluated.append(pair)
        candidates.append(candidate)

    return ChunkResult(
        pairs=tuple(evaluated),
        candidates=tuple(candidates),
        errors=tuple(errors),
        skipped=skipped,
        cancelled=token.cancelled,
        last_source_ref=chunk[-1].source.ref,
    )


@dataclass(kw_only=True)
class BatchReport:
    scope: Scope
    rules_version: int
    tuning_mode: bool
    job_id: UUID | None = None
    evaluated: int = 0
    skipped: int = 0
    distribution: Counter[Decision] = field(default_factory=Counter[Decision])
    links_created: int = 0
    cases_opened: int = 0
    duplicates: int = 0
    errors: list[PairError] = field(default_factory=list[PairError])
    cancelled: bool = False
    score_total: float = 0.0

    @property
    def average_confidence(self) -> float | None:
        if not self.evaluated:
            return None
        return self.score_total / self.evaluated

    def absorb(self, chunk: ChunkResult) -> None:
        self.skipped += chunk.skipped
        self.errors.extend(chunk.errors)
        self.cancelled = self.cancelled or chunk.cancelled
        for candidate in chunk.candidates:
            self.evaluated += 1
            self.distribution[candidate.decision] += 1
            self.score_total += candidate.aggregate_score


def run_correlation(
    pairs: Iterable[RecordPair],
    *,
    scope: Scope,
    snapshot: RuleSnapshot,
    config: ThresholdConfig,
    unit_of_work_factory: UnitOfWorkFactory,
    trigger: TriggerType = TriggerType.BATCH,
    max_workers: int = DEFAULT_MAX_WORKERS,
    cancel: CancellationToken | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> BatchReport:
    """Evaluate ``pairs`` and commit links/cases chunk by chunk.

    Pairs of one source are expected to arrive together. The source of a
    chunk's last pair stays open, and its candidates are carried into the next
    chunk so that a run split by ``batch_size`` is still routed as one. In
    tuning mode nothing but the job record is written.
    """

    report = BatchReport(
        scope=scope, rules_version=snapshot.version, tuning_mode=config.tuning_mode
    )
    job = CorrelationJob(scope=scope, tuning_mode=config.tuning_mode, started_at=clock())
    with unit_of_work_factory() as uow:
        uow.repositories.jobs.add(job)
        uow.commit()
    report.job_id = job.id
    log.info(
        "Correlation job %s started for %s (rules v%s, batch_size=%s, tuning=%s)",
        job.id,
        scope,
        snapshot.version,
        config.batch_size,
        config.tuning_mode,
    )

    pending = PendingSources()

    def commit(routes: list[SourceRoute]) -> None:
        with unit_of_work_factory() as uow:
            for route in routes:
                outcome = commit_route(
                    uow.repositories,
                    route,
                    scope=scope,
                    config=config,
                    trigger=trigger,
                    rules_version=snapshot.version,
                )
                report.links_created += outcome.link is not None
                report.cases_opened += outcome.case is not None
                report.duplicates += outcome.duplicate
            _fill_job(job, report)
            uow.repositories.jobs.update(job)
            uow.commit()

    try:
        for chunk in iter_chunk_results(
            pairs,
            snapshot=snapshot,
            config=config,
            max_workers=max_workers,
            cancel=cancel,
            clock=clock,
        ):
            report.absorb(chunk)
            if config.should_commit:
                for pair, candidate in zip(chunk.pairs, chunk.candidates, strict=True):
                    pending.add(pair, candidate)
                commit(pending.drain(keep=None if chunk.cancelled else chunk.last_source_ref))
            else:
                for candidate in chunk.candidates:
                    log.info(
                        "Tuning mode: %s/%s would be %s (%.3f)",
                        candidate.source_ref,
                        candidate.target_ref,
                        candidate.decision,
                        candidate.aggregate_score,
                    )
                commit([])
        if pending:
            commit(pending.drain())
    except Exception:
        log.exception("Correlation job %s failed", job.id)
        _finish_job(job, report, JobStatus.FAILED, unit_of_work_factory, clock)
        raise

    _finish_job(
        job,
        report,
        JobStatus.CANCELLED if report.cancelled else JobStatus.COMPLETED,
        unit_of_work_factory,
        clock,
    )

    log.info(
        "Correlation job %s %s: evaluated=%s, links=%s, cases=%s, skipped=%s, errors=%s",
        job.id,
        job.status,
        report.evaluated,
        report.links_created,
        report.cases_opened,
        report.skipped,
        len(report.errors),
    )
    return report


def _finish_job(
    job: CorrelationJob,
    report: BatchReport,
    status: JobStatus,
    unit_of_work_factory: UnitOfWorkFactory,
    clock: Callable[[], datetime],
) -> None:
    job.status = status
    job.completed_at = clock()
    _fill_job(job, report)
    with unit_of_work_factory() as uow:
        uow.repositories.jobs.update(job)
        uow.commit()


def _fill_job(job: CorrelationJob, report: BatchReport) -> None:
    job.processed_pairs = report.evaluated + report.skipped + len(report.errors)
    job.total_pairs = job.processed_pairs
    job.auto_confirmed = report.distribution[Decision.AUTO_CONFIRM]
    job.queued_for_review = report.distribution[Decision.MANUAL_REVIEW]
    job.no_match = report.distribution[Decision.NO_MATCH]
    job.skipped = report.skipped
    job.errors = len(report.errors)
    job.average_confidence = report.average_confidence
