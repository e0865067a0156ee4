from __future__ import annotations

from pathlib import Path  # noqa: TC003

from sqlalchemy import create_engine, inspect

from correlator.adapters.sqlalchemy.migrations import upgrade_head

EXPECTED_TABLES = {
    "correlation_rule",
    "correlation_threshold",
    "correlation_case",
    "identity_link",
    "provisioned_identity",
    "correlation_audit_event",
    "correlation_job",
}


def test_upgrade_head_creates_schema() -> None:
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
    try:
        upgrade_head(engine=engine)
        tables = set(inspect(engine).get_table_names())
    finally:
        engine.dispose()

    assert tables >= EXPECTED_TABLES
    assert "alembic_version" in tables


def test_upgrade_head_is_idempotent() -> None:
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
    try:
        upgrade_head(engine=engine)
        upgrade_head(engine=engine)
        columns = {column["name"] for column in inspect(engine).get_columns("correlation_case")}
    finally:
        engine.dispose()

    assert {"status", "candidates", "scope_key", "assigned_to"} <= columns


def test_upgrade_head_from_database_uri(tmp_path: Path) -> None:
    uri = f"sqlite+pysqlite:///{tmp_path / 'migrated.db'}"

    upgrade_head(database_uri=uri)

    engine = create_engine(uri, future=True)
    try:
        tables = set(inspect(engine).get_table_names())
    finally:
        engine.dispose()
    assert tables >= EXPECTED_TABLES
