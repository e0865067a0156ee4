"""From record pairs to committed links, open cases or nothing.

``evaluate_pair`` is side-effect free and safe to run on worker threads.
``route_source`` turns all candidates of one source record into a single
routing decision, and ``commit_route`` writes that decision through a
repository collection inside the caller's unit of work.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from correlator.domain.matching import aggregate, decide
from correlator.domain.model import (
    SYSTEM_ACTOR,
    AuditEventType,
    CaseQuery,
    CaseStatus,
    CorrelationAuditEvent,
    CorrelationCase,
    Decision,
    IdentityLink,
    LinkOrigin,
    MatchCandidate,
    TriggerType,
    utcnow,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from datetime import datetime

    from correlator.domain.matching import RuleSnapshot
    from correlator.domain.model import (
        Actor,
        IdentityRecord,
        RecordPair,
        Scope,
        ThresholdConfig,
    )
    from correlator.domain.ports import CorrelationRepositories

log = logging.getLogger(__name__)


def evaluate_pair(
    snapshot: RuleSnapshot,
    config: ThresholdConfig,
    pair: RecordPair,
    *,
    clock: Callable[[], datetime] = utcnow,
) -> MatchCandidate:
    """Score and classify one pair against a fixed rule snapshot."""

    result = aggregate(snapshot, pair.source, pair.target)
    decision = decide(result.score, result.definitive_hit, config)
    candidate = MatchCandidate(
        source_ref=pair.source.ref,
        target_ref=pair.target.ref,
        aggregate_score=result.score,
        definitive_hit=result.definitive_hit,
        no_rules_configured=result.no_rules_configured,
        rule_outcomes=result.outcomes,
        decision=decision,
        evaluated_at=clock(),
        rules_version=snapshot.version,
        target_deactivated=pair.target.is_deactivated,
    )
    log.debug(
        "Pair %s/%s scored %.3f -> %s",
        candidate.source_ref,
        candidate.target_ref,
        candidate.aggregate_score,
        decision,
    )
    return candidate


class RouteKind(StrEnum):
    LINK = "link"
    CASE = "case"
    NO_MATCH = "no_match"


@dataclass(frozen=True, slots=True, kw_only=True)
class SourceRoute:
    source: IdentityRecord
    kind: RouteKind
    candidates: tuple[MatchCandidate, ...]


def route_source(source: IdentityRecord, candidates: Iterable[MatchCandidate]) -> SourceRoute:
    """Decide what happens to one source record.

    Exactly one auto-confirmed candidate links directly. Several auto-confirmed
    candidates are ambiguous and go to review together with any manual-review
    candidates, as does any manual-review candidate on its own.
    """

    ranked = tuple(sorted(candidates, key=lambda c: (-c.aggregate_score, c.target_ref)))
    auto = tuple(c for c in ranked if c.decision is Decision.AUTO_CONFIRM)
    review = tuple(c for c in ranked if c.decision is not Decision.NO_MATCH)

    if len(auto) == 1:
        return SourceRoute(source=source, kind=RouteKind.LINK, candidates=auto)
    if review:
        return SourceRoute(source=source, kind=RouteKind.CASE, candidates=review)
    return SourceRoute(source=source, kind=RouteKind.NO_MATCH, candidates=ranked)


class PendingSources:
    """Candidates collected per source record until the source can be routed.

    Only candidates are held, never pairs, so a source matched against a large
    population costs one candidate per target however the input is chunked.
    """

    def __init__(self) -> None:
        self._sources: dict[str, IdentityRecord] = {}
        self._candidates: defaultdict[str, list[MatchCandidate]] = defaultdict(list)

    def __len__(self) -> int:
        return len(self._sources)

    def add(self, pair: RecordPair, candidate: MatchCandidate) -> None:
        self._sources.setdefault(pair.source.ref, pair.source)
        self._candidates[pair.source.ref].append(candidate)

    def drain(self, *, keep: str | None = None) -> list[SourceRoute]:
        """Route every held source in first-seen order, except ``keep``."""

        routes: list[SourceRoute] = []
        for ref in list(self._sources):
            if ref == keep:
                continue
            source = self._sources.pop(ref)
            routes.append(route_source(source, self._candidates.pop(ref)))
        return routes


def group_by_source(
    pairs: Iterable[RecordPair],
    candidates: Iterable[MatchCandidate],
) -> list[SourceRoute]:
    """Route every source that appears in ``pairs``, in first-seen order.

    ``candidates`` must line up with ``pairs``.
    """

    pending = PendingSources()
    for pair, candidate in zip(pairs, candidates, strict=True):
        pending.add(pair, candidate)
    return pending.drain()


@dataclass(frozen=True, slots=True, kw_only=True)
class CommitOutcome:
    link: IdentityLink | None = None
    case: CorrelationCase | None = None
    duplicate: bool = False


def commit_route(
    repositories: CorrelationRepositories,
    route: SourceRoute,
    *,
    scope: Scope,
    config: ThresholdConfig,
    trigger: TriggerType,
    rules_version: int,
    actor: Actor = SYSTEM_ACTOR,
) -> CommitOutcome:
    """Persist one routing decision. The caller owns the transaction."""

    if route.kind is RouteKind.LINK:
        return _commit_auto_link(
            repositories, route, scope=scope, config=config, rules_version=rules_version
        )
    if route.kind is RouteKind.CASE:
        return _commit_case(
            repositories,
            route,
            scope=scope,
            trigger=trigger,
            rules_version=rules_version,
            actor=actor,
        )
    return CommitOutcome()


def _commit_auto_link(
    repositories: CorrelationRepositories,
    route: SourceRoute,
    *,
    scope: Scope,
    config: ThresholdConfig,
    rules_version: int,
) -> CommitOutcome:
    candidate = route.candidates[0]
    existing = repositories.links.for_source(candidate.source_ref)
    if any(link.identity_ref == candidate.target_ref for link in existing):
        log.debug("Link %s -> %s already present", candidate.source_ref, candidate.target_ref)
        return CommitOutcome(duplicate=True)

    link = IdentityLink(
        source_ref=candidate.source_ref,
        identity_ref=candidate.target_ref,
        origin=LinkOrigin.AUTO,
        confidence=candidate.aggregate_score,
        candidate_id=candidate.id,
    )
    repositories.links.add(link)
    repositories.audit.add(
        CorrelationAuditEvent(
            event_type=AuditEventType.AUTO_CONFIRM,
            scope=scope,
            source_ref=candidate.source_ref,
            identity_ref=candidate.target_ref,
            confidence_score=candidate.aggregate_score,
            candidate_count=1,
            rules_version=rules_version,
            thresholds_snapshot=config.snapshot(),
        )
    )
    return CommitOutcome(link=link)


def _commit_case(
    repositories: CorrelationRepositories,
    route: SourceRoute,
    *,
    scope: Scope,
    trigger: TriggerType,
    rules_version: int,
    actor: Actor,
) -> CommitOutcome:
    pending = repositories.cases.count(
        CaseQuery(status=CaseStatus.PENDING, scope=scope, source_ref=route.source.ref)
    )
    if pending:
        log.debug("Source %s already has a pending case", route.source.ref)
        return CommitOutcome(duplicate=True)

    case = open_case(
        repositories,
        scope=scope,
        source=route.source,
        candidates=route.candidates,
        trigger=trigger,
        rules_version=rules_version,
        actor=actor,
    )
    return CommitOutcome(case=case)


def open_case(
    repositories: CorrelationRepositories,
    *,
    scope: Scope,
    source: IdentityRecord,
    candidates: Iterable[MatchCandidate],
    trigger: TriggerType,
    rules_version: int,
    actor: Actor = SYSTEM_ACTOR,
) -> CorrelationCase:
    case = CorrelationCase(
        scope=scope,
        source_ref=source.ref,
        source_attributes=source.to_payload(),
        candidates=tuple(candidates),
        trigger_type=trigger,
        rules_version=rules_version,
    )
    repositories.cases.add(case)
    repositories.audit.add(
        CorrelationAuditEvent(
            event_type=AuditEventType.CASE_OPENED,
            scope=scope,
            case_id=case.id,
            source_ref=case.source_ref,
            confidence_score=case.highest_confidence,
            candidate_count=len(case.candidates),
            rules_version=rules_version,
            actor_type=actor.actor_type,
            actor_id=actor.actor_id,
        )
    )
    log.info(
        "Opened case %s for %s with %s candidate(s), best %.3f",
        case.id,
        case.source_ref,
        len(case.candidates),
        case.highest_confidence,
    )
    return case
