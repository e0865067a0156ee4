"""Identity records as seen by the matcher."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType


def _freeze(attributes: Mapping[str, object]) -> Mapping[str, object]:
    if isinstance(attributes, MappingProxyType):
        return attributes
    return MappingProxyType(dict(attributes))


@dataclass(frozen=True, slots=True, kw_only=True)
class IdentityRecord:
    """A connector account or canonical identity, reduced to its attributes.

    ``attributes`` is exposed as a read-only mapping; evaluators never mutate it.
    """

    ref: str
    attributes: Mapping[str, object] = field(default_factory=dict)
    is_deactivated: bool = False
    display_name: str | None = None

    def __post_init__(self) -> None:
        if not self.ref:
            raise ValueError("IdentityRecord.ref must be non-empty")
        object.__setattr__(self, "attributes", _freeze(self.attributes))

    def get(self, attribute: str) -> object | None:
        return self.attributes.get(attribute)

    def to_payload(self) -> dict[str, object]:
        return dict(self.attributes)


@dataclass(frozen=True, slots=True)
class RecordPair:
    source: IdentityRecord
    target: IdentityRecord
