from __future__ import annotations

from pathlib import Path  # noqa: TC003

import pytest

from correlator.config import storage


def test_storage_config_prefers_explicit_env(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    custom = tmp_path / "custom-data"
    monkeypatch.setenv("CORRELATOR_DATA_DIR", str(custom))

    config = storage.get_storage_config()

    assert config.data_dir == custom.resolve()
    assert config.database_path == custom.resolve() / storage.DEFAULT_DB_FILENAME


def test_database_config_uses_env_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URI", "sqlite:///override.db")

    assert storage.get_database_config().uri == "sqlite:///override.db"


def test_database_config_creates_data_dir(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.delenv("DATABASE_URI", raising=False)
    monkeypatch.setenv("CORRELATOR_DATA_DIR", str(tmp_path / "data-dir"))

    uri = storage.get_database_config().uri

    expected_path = (tmp_path / "data-dir" / storage.DEFAULT_DB_FILENAME).resolve()
    assert uri == f"sqlite+pysqlite:///{expected_path}"
    assert expected_path.parent.exists()


@pytest.mark.parametrize(
    ("uri", "connect_args"),
    [
        ("sqlite+pysqlite:///x.db", {"timeout": storage.SQLITE_BUSY_TIMEOUT}),
        ("sqlite://", {"timeout": storage.SQLITE_BUSY_TIMEOUT}),
        ("postgresql+psycopg://db/correlator", {}),
    ],
)
def test_only_sqlite_waits_for_writers(uri: str, connect_args: dict[str, object]) -> None:
    assert storage.DatabaseConfig(uri=uri).connect_args() == connect_args
