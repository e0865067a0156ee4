from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine

from correlator.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemyUnitOfWork,
    StartupError,
    is_started,
    shutdown,
    startup,
)
from tests.support.correlation import make_config, make_rule

if TYPE_CHECKING:
    from collections.abc import Iterator

    from sqlalchemy.engine import Engine


@pytest.fixture(autouse=True)
def reset_unit_of_work_state() -> Iterator[None]:
    shutdown()
    yield
    shutdown()


def test_sqlalchemy_unit_of_work_requires_startup() -> None:
    assert not is_started()
    with pytest.raises(StartupError):
        SqlAlchemyUnitOfWork()


def test_startup_requires_force_for_reconfiguration() -> None:
    engine_a = create_engine("sqlite+pysqlite:///:memory:", future=True)
    engine_b = create_engine("sqlite+pysqlite:///:memory:", future=True)

    rule = make_rule()

    startup(engine=engine_a, force=True)
    with SqlAlchemyUnitOfWork() as uow:
        uow.repositories.rules.add(rule)
        uow.commit()

    with pytest.raises(StartupError):
        startup(engine=engine_b)

    startup(engine=engine_b, force=True)
    assert is_started()
    with SqlAlchemyUnitOfWork() as uow:
        assert uow.repositories.rules.get(rule.id) is None


def test_unit_of_work_persists_on_commit(sqlite_engine: Engine) -> None:
    startup(engine=sqlite_engine, force=True)
    rule = make_rule()

    with SqlAlchemyUnitOfWork() as uow:
        uow.repositories.rules.add(rule)
        uow.repositories.thresholds.upsert(make_config())
        uow.commit()

    with SqlAlchemyUnitOfWork() as uow:
        assert uow.repositories.rules.get(rule.id) == rule
        assert uow.repositories.thresholds.get(rule.scope) is not None


def test_unit_of_work_discards_without_commit(sqlite_engine: Engine) -> None:
    startup(engine=sqlite_engine, force=True)
    rule = make_rule()

    with SqlAlchemyUnitOfWork() as uow:
        uow.repositories.rules.add(rule)

    with SqlAlchemyUnitOfWork() as uow:
        assert uow.repositories.rules.get(rule.id) is None


def test_unit_of_work_rolls_back_on_error(sqlite_engine: Engine) -> None:
    startup(engine=sqlite_engine, force=True)
    rule = make_rule()

    with pytest.raises(RuntimeError), SqlAlchemyUnitOfWork() as uow:
        uow.repositories.rules.add(rule)
        raise RuntimeError("boom")

    with SqlAlchemyUnitOfWork() as uow:
        assert uow.repositories.rules.find() == []


def test_repositories_unavailable_outside_block(sqlite_engine: Engine) -> None:
    startup(engine=sqlite_engine, force=True)
    uow = SqlAlchemyUnitOfWork()

    with pytest.raises(StartupError):
        _ = uow.repositories
