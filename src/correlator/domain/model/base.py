"""Base building blocks: identity, clock and acting principal."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID, uuid4

from correlator.domain.model.enums import ActorType


def new_id() -> UUID:
    return uuid4()


def utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True, kw_only=True)
class Actor:
    """Who performed a state change, recorded on cases and audit events."""

    actor_type: ActorType
    actor_id: str | None = None

    @classmethod
    def user(cls, actor_id: str) -> Actor:
        return cls(actor_type=ActorType.USER, actor_id=actor_id)

    @property
    def label(self) -> str:
        return self.actor_id or self.actor_type.value


SYSTEM_ACTOR = Actor(actor_type=ActorType.SYSTEM)
