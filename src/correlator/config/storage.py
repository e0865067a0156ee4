"""Where correlation state is stored.

``DATABASE_URI`` wins when set. Otherwise a SQLite file lives in
``CORRELATOR_DATA_DIR`` (or the user's data directory) and that directory is
created on first use.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Final

DATA_DIR_ENV: Final[str] = "CORRELATOR_DATA_DIR"
DATABASE_URI_ENV: Final[str] = "DATABASE_URI"
DEFAULT_DB_FILENAME: Final[str] = "correlator.db"
# Seconds a SQLite connection waits for another reviewer's write to finish.
SQLITE_BUSY_TIMEOUT: Final[float] = 30.0


@dataclass(frozen=True, slots=True)
class StorageConfig:
    data_dir: Path

    @property
    def database_path(self) -> Path:
        return self.data_dir / DEFAULT_DB_FILENAME

    def database_uri(self) -> str:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        return f"sqlite+pysqlite:///{self.database_path}"


@dataclass(frozen=True, slots=True)
class DatabaseConfig:
    uri: str

    @property
    def is_sqlite(self) -> bool:
        return self.uri.split(":", 1)[0].split("+", 1)[0] == "sqlite"

    def connect_args(self) -> dict[str, object]:
        return {"timeout": SQLITE_BUSY_TIMEOUT} if self.is_sqlite else {}


def _user_data_dir() -> Path:
    xdg = os.getenv("XDG_DATA_HOME")
    base = Path(xdg) if xdg else Path.home() / ".local" / "share"
    return base / "correlator"


def get_storage_config() -> StorageConfig:
    configured = os.getenv(DATA_DIR_ENV)
    data_dir = Path(configured) if configured else _user_data_dir()
    return StorageConfig(data_dir=data_dir.expanduser().resolve())


def get_database_config(*, storage: StorageConfig | None = None) -> DatabaseConfig:
    uri = os.getenv(DATABASE_URI_ENV)
    if uri:
        return DatabaseConfig(uri=uri)
    return DatabaseConfig(uri=(storage or get_storage_config()).database_uri())
