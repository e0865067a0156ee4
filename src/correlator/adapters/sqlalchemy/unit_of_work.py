"""SQLAlchemy-backed unit of work for correlation transactions.

The adapter owns one engine per process. ``startup`` must run before the first
unit of work is opened; each unit of work then holds its own session, so
threads may open units of work independently.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from correlator.adapters.sqlalchemy.migrations import upgrade_head
from correlator.adapters.sqlalchemy.repositories import (
    SqlAlchemyAuditRepository,
    SqlAlchemyCaseRepository,
    SqlAlchemyIdentityRepository,
    SqlAlchemyJobRepository,
    SqlAlchemyLinkRepository,
    SqlAlchemyRuleRepository,
    SqlAlchemyThresholdRepository,
)
from correlator.config import DatabaseConfig, get_database_config
from correlator.domain.ports.unit_of_work import CorrelationRepositories

if TYPE_CHECKING:
    from types import TracebackType

    from sqlalchemy.engine import Engine

log = logging.getLogger(__name__)


class StartupError(RuntimeError):
    """Raised when the adapter or a unit of work is used in the wrong state."""


@dataclass(slots=True)
class _AdapterState:
    engine: Engine | None = None
    session_factory: sessionmaker[Session] | None = None


_STATE = _AdapterState()


def startup(
    *,
    engine: Engine | None = None,
    database_uri: str | None = None,
    force: bool = False,
) -> None:
    """Bind the adapter to ``engine`` (or a new one) after migrating it to head."""

    if _STATE.engine is not None and not force:
        raise StartupError(
            "SQLAlchemy adapter already initialised. Pass force=True to reconfigure."
        )
    if engine is None:
        database = DatabaseConfig(uri=database_uri) if database_uri else get_database_config()
        engine = create_engine(database.uri, connect_args=database.connect_args(), future=True)
    upgrade_head(engine=engine)
    _STATE.engine = engine
    _STATE.session_factory = sessionmaker(bind=engine, expire_on_commit=False)
    log.info("SQLAlchemy adapter started on %s", engine.url.render_as_string())


def is_started() -> bool:
    return _STATE.engine is not None


def shutdown() -> None:
    """Dispose the engine and forget it."""

    if _STATE.engine is not None:
        _STATE.engine.dispose()
    _STATE.engine = None
    _STATE.session_factory = None


class SqlAlchemyUnitOfWork:
    """One session-backed transaction over every correlation repository.

    Leaving the block without ``commit()`` discards the transaction.
    """

    def __init__(self) -> None:
        if _STATE.session_factory is None:
            raise StartupError(
                "SQLAlchemy adapter not initialised. Call correlator.adapters.sqlalchemy."
                "unit_of_work.startup() before requesting a unit of work."
            )
        self._session_factory = _STATE.session_factory
        self._session: Session | None = None
        self._repositories: CorrelationRepositories | None = None

    def __enter__(self) -> SqlAlchemyUnitOfWork:
        if self._session is not None:
            raise StartupError("Unit of work is already open")
        session = self._session_factory()
        self._session = session
        self._repositories = CorrelationRepositories(
            rules=SqlAlchemyRuleRepository(session),
            thresholds=SqlAlchemyThresholdRepository(session),
            cases=SqlAlchemyCaseRepository(session),
            links=SqlAlchemyLinkRepository(session),
            identities=SqlAlchemyIdentityRepository(session),
            audit=SqlAlchemyAuditRepository(session),
            jobs=SqlAlchemyJobRepository(session),
        )
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> Literal[False]:
        session = self._open_session()
        try:
            if exc_type is not None:
                session.rollback()
        finally:
            session.close()
            self._session = None
            self._repositories = None
        return False

    def commit(self) -> None:
        self._open_session().commit()

    def rollback(self) -> None:
        self._open_session().rollback()

    @property
    def repositories(self) -> CorrelationRepositories:
        if self._repositories is None:
            raise StartupError("Unit of work used outside its with-block")
        return self._repositories

    def _open_session(self) -> Session:
        if self._session is None:
            raise StartupError("Unit of work used outside its with-block")
        return self._session


if TYPE_CHECKING:
    from correlator.domain.ports.unit_of_work import CorrelationUnitOfWork

    _uow_check: CorrelationUnitOfWork = SqlAlchemyUnitOfWork()
