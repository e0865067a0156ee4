"""SQLAlchemy adapter package for correlator."""

from __future__ import annotations

from .mappings import metadata
from .repositories import (
    SqlAlchemyAuditRepository,
    SqlAlchemyCaseRepository,
    SqlAlchemyIdentityRepository,
    SqlAlchemyJobRepository,
    SqlAlchemyLinkRepository,
    SqlAlchemyRuleRepository,
    SqlAlchemyThresholdRepository,
)
from .unit_of_work import (
    SqlAlchemyUnitOfWork,
    StartupError,
    is_started,
    shutdown,
    startup,
)

__all__ = [
    "SqlAlchemyAuditRepository",
    "SqlAlchemyCaseRepository",
    "SqlAlchemyIdentityRepository",
    "SqlAlchemyJobRepository",
    "SqlAlchemyLinkRepository",
    "SqlAlchemyRuleRepository",
    "SqlAlchemyThresholdRepository",
    "SqlAlchemyUnitOfWork",
    "StartupError",
    "is_started",
    "metadata",
    "shutdown",
    "startup",
]
