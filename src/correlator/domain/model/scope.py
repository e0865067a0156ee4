"""Rule and threshold scopes."""

from __future__ import annotations

from dataclasses import dataclass

from correlator.domain.model.enums import RuleScope

_TENANT_KEY = "tenant"
_CONNECTOR_PREFIX = "connector:"


@dataclass(frozen=True, slots=True)
class Scope:
    """Either one connector or the whole tenant.

    ``key`` is the stable string form used as a storage discriminator.
    """

    kind: RuleScope
    connector_id: str | None = None

    def __post_init__(self) -> None:
        if self.kind is RuleScope.CONNECTOR:
            if self.connector_id is None or not self.connector_id.strip():
                raise ValueError("Connector scope requires a connector_id")
        elif self.connector_id is not None:
            raise ValueError("Tenant scope must not carry a connector_id")

    @classmethod
    def tenant(cls) -> Scope:
        return cls(RuleScope.TENANT)

    @classmethod
    def connector(cls, connector_id: str) -> Scope:
        return cls(RuleScope.CONNECTOR, connector_id)

    @classmethod
    def from_key(cls, key: str) -> Scope:
        if key == _TENANT_KEY:
            return cls.tenant()
        if key.startswith(_CONNECTOR_PREFIX):
            return cls.connector(key.removeprefix(_CONNECTOR_PREFIX))
        raise ValueError(f"Unknown scope key: {key!r}")

    @property
    def key(self) -> str:
        if self.kind is RuleScope.TENANT:
            return _TENANT_KEY
        return f"{_CONNECTOR_PREFIX}{self.connector_id}"

    @property
    def is_tenant(self) -> bool:
        return self.kind is RuleScope.TENANT

    def __str__(self) -> str:
        return self.key
