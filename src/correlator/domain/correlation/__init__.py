"""Correlation workflows: pair pipeline, case lifecycle, batch and tuning runs."""

from __future__ import annotations

from correlator.domain.correlation.batch import (
    BatchReport,
    CancellationToken,
    PairError,
    chunk_pairs,
    run_correlation,
)
from correlator.domain.correlation.cases import CaseManager
from correlator.domain.correlation.pipeline import (
    CommitOutcome,
    PendingSources,
    RouteKind,
    SourceRoute,
    commit_route,
    evaluate_pair,
    group_by_source,
    open_case,
    route_source,
)
from correlator.domain.correlation.statistics import (
    CorrelationStatistics,
    CorrelationTrends,
    DailyTrend,
    compute_statistics,
    compute_trends,
)
from correlator.domain.correlation.tuning import DecisionChange, SimulationReport, simulate

__all__ = [
    "BatchReport",
    "CancellationToken",
    "CaseManager",
    "CommitOutcome",
    "CorrelationStatistics",
    "CorrelationTrends",
    "DailyTrend",
    "DecisionChange",
    "PairError",
    "PendingSources",
    "RouteKind",
    "SimulationReport",
    "SourceRoute",
    "chunk_pairs",
    "commit_route",
    "compute_statistics",
    "compute_trends",
    "evaluate_pair",
    "group_by_source",
    "open_case",
    "route_source",
    "run_correlation",
    "simulate",
]
