"""Correlation rules: one comparison directive each."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final
from uuid import UUID

from correlator.domain.model.base import new_id, utcnow
from correlator.domain.model.enums import FuzzyAlgorithm, MatchType

if TYPE_CHECKING:
    from datetime import datetime

    from correlator.domain.model.scope import Scope

MAX_NAME_LENGTH: Final[int] = 255
MAX_ATTRIBUTE_LENGTH: Final[int] = 255
DEFAULT_PRIORITY: Final[int] = 10
DEFAULT_TIER: Final[int] = 1


@dataclass(frozen=True, slots=True, kw_only=True)
class CorrelationRule:
    """A validated, immutable rule.

    Tenant-scoped rules compare one attribute on both records; it is stored in
    ``source_attribute`` and ``target_attribute`` stays ``None``.

    Construction raises ``ValueError`` for structurally incomplete rules so an
    invalid rule can never exist. Callers handling user input go through
    ``correlator.domain.validation.validate`` which reports field errors instead.
    """

    id: UUID = field(default_factory=new_id)
    name: str
    scope: Scope
    source_attribute: str
    target_attribute: str | None = None
    match_type: MatchType
    algorithm: FuzzyAlgorithm | None = None
    expression: str | None = None
    threshold: float
    weight: float
    tier: int = DEFAULT_TIER
    is_definitive: bool = False
    normalize: bool = True
    priority: int = DEFAULT_PRIORITY
    is_active: bool = True
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        if self.match_type is MatchType.FUZZY and self.algorithm is None:
            raise ValueError("Fuzzy rules require an algorithm")
        if self.match_type is MatchType.EXPRESSION and not (self.expression or "").strip():
            raise ValueError("Expression rules require a non-empty expression")
        if self.scope.is_tenant:
            if self.target_attribute is not None:
                raise ValueError("Tenant rules compare a single attribute")
        elif not self.target_attribute:
            raise ValueError("Connector rules require a target attribute")
        if not 0.0 <= self.threshold <= 1.0:
            raise ValueError("threshold must be within [0, 1]")
        if self.weight < 0:
            raise ValueError("weight must be non-negative")
        if self.tier < 1:
            raise ValueError("tier must be at least 1")
        if self.priority < 0:
            raise ValueError("priority must be non-negative")

    @property
    def attribute(self) -> str:
        """Single compared attribute of a tenant rule (the source side otherwise)."""

        return self.source_attribute

    @property
    def target_key(self) -> str:
        return self.target_attribute or self.source_attribute

    @property
    def sort_key(self) -> tuple[int, int, str, str]:
        return (self.tier, self.priority, self.name, str(self.id))

    @property
    def label(self) -> str:
        if self.target_attribute is None:
            return self.source_attribute
        return f"{self.source_attribute}->{self.target_attribute}"
