"""Versioned, immutable rule sets.

Evaluation always runs against one ``RuleSnapshot``. Rule changes publish a new
snapshot into the ``RuleSetRegistry``; readers holding the previous one keep a
consistent view until they finish.
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING

from correlator.domain.errors import ExpressionCompileError
from correlator.domain.expressions import CompiledExpression, compile_expression
from correlator.domain.model.base import utcnow
from correlator.domain.model.enums import MatchType

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping
    from datetime import datetime
    from uuid import UUID

    from correlator.domain.model.rules import CorrelationRule
    from correlator.domain.model.scope import Scope

log = logging.getLogger(__name__)


def rules_fingerprint(rules: Iterable[CorrelationRule]) -> str:
    payload = [
        [str(rule.id), rule.updated_at.isoformat(), rule.is_active]
        for rule in sorted(rules, key=lambda rule: str(rule.id))
    ]
    return hashlib.sha256(json.dumps(payload).encode()).hexdigest()


@dataclass(frozen=True, slots=True, kw_only=True)
class RuleSnapshot:
    scope: Scope
    version: int
    rules: tuple[CorrelationRule, ...]
    compiled: Mapping[UUID, CompiledExpression] = field(
        default_factory=lambda: MappingProxyType({})
    )
    compile_errors: Mapping[UUID, str] = field(default_factory=lambda: MappingProxyType({}))
    fingerprint: str = ""
    created_at: datetime = field(default_factory=utcnow)

    @classmethod
    def build(
        cls, scope: Scope, rules: Iterable[CorrelationRule], *, version: int
    ) -> RuleSnapshot:
        """Keep active rules in evaluation order and precompile their expressions."""

        all_rules = tuple(rules)
        active = tuple(sorted((rule for rule in all_rules if rule.is_active), key=_order))
        compiled: dict[UUID, CompiledExpression] = {}
        errors: dict[UUID, str] = {}
        for rule in active:
            if rule.match_type is not MatchType.EXPRESSION or rule.expression is None:
                continue
            try:
                compiled[rule.id] = compile_expression(rule.expression)
            except ExpressionCompileError as exc:
                log.warning("Stored rule %s no longer compiles: %s", rule.id, exc)
                errors[rule.id] = str(exc)
        return cls(
            scope=scope,
            version=version,
            rules=active,
            compiled=MappingProxyType(compiled),
            compile_errors=MappingProxyType(errors),
            fingerprint=rules_fingerprint(all_rules),
        )

    @property
    def is_empty(self) -> bool:
        return not self.rules

    def tiers(self) -> tuple[tuple[int, tuple[CorrelationRule, ...]], ...]:
        grouped: dict[int, list[CorrelationRule]] = {}
        for rule in self.rules:
            grouped.setdefault(rule.tier, []).append(rule)
        return tuple((tier, tuple(members)) for tier, members in sorted(grouped.items()))


def _order(rule: CorrelationRule) -> tuple[int, int, str, str]:
    return rule.sort_key


class RuleSetRegistry:
    """Copy-on-write holder of the current snapshot per scope.

    ``current`` is lock-free; ``publish`` serialises writers and swaps in a new
    mapping so readers never see a partially updated rule set.
    """

    def __init__(self) -> None:
        self._snapshots: Mapping[str, RuleSnapshot] = MappingProxyType({})
        self._write_lock = threading.Lock()

    def current(self, scope: Scope) -> RuleSnapshot | None:
        return self._snapshots.get(scope.key)

    def publish(self, scope: Scope, rules: Iterable[CorrelationRule]) -> RuleSnapshot:
        rules = tuple(rules)
        with self._write_lock:
            previous = self._snapshots.get(scope.key)
            if previous is not None and previous.fingerprint == rules_fingerprint(rules):
                return previous
            version = previous.version + 1 if previous is not None else 1
            snapshot = RuleSnapshot.build(scope, rules, version=version)
            updated = dict(self._snapshots)
            updated[scope.key] = snapshot
            self._snapshots = MappingProxyType(updated)
        log.info(
            "Published rule snapshot v%s for %s (%s active rules)",
            snapshot.version,
            scope,
            len(snapshot.rules),
        )
        return snapshot

