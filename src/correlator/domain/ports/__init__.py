"""Ports implemented by adapters."""

from __future__ import annotations

from correlator.domain.ports.persistence import (
    AuditRepository,
    CaseRepository,
    IdentityRepository,
    JobRepository,
    LinkRepository,
    Repository,
    RuleRepository,
    ThresholdRepository,
)
from correlator.domain.ports.unit_of_work import (
    CorrelationRepositories,
    CorrelationUnitOfWork,
    RepositoryCollection,
    UnitOfWork,
    UnitOfWorkFactory,
)

__all__ = [
    "AuditRepository",
    "CaseRepository",
    "CorrelationRepositories",
    "CorrelationUnitOfWork",
    "IdentityRepository",
    "JobRepository",
    "LinkRepository",
    "Repository",
    "RepositoryCollection",
    "RuleRepository",
    "ThresholdRepository",
    "UnitOfWork",
    "UnitOfWorkFactory",
]
