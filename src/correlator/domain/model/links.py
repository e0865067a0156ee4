"""Committed correlations and provisioned identities."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING
from uuid import UUID

from correlator.domain.model.base import new_id, utcnow
from correlator.domain.model.enums import LinkOrigin

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import datetime


@dataclass(frozen=True, slots=True, kw_only=True)
class IdentityLink:
    id: UUID = field(default_factory=new_id)
    source_ref: str
    identity_ref: str
    origin: LinkOrigin
    confidence: float
    case_id: UUID | None = None
    candidate_id: UUID | None = None
    created_by: str | None = None
    created_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True, slots=True, kw_only=True)
class ProvisionedIdentity:
    """Canonical identity created from a case instead of linking an existing one."""

    id: UUID = field(default_factory=new_id)
    source_ref: str
    attributes: Mapping[str, object] = field(default_factory=dict)
    created_by: str | None = None
    created_at: datetime = field(default_factory=utcnow)

    @property
    def ref(self) -> str:
        return f"identity:{self.id}"
