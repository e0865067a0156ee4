"""Schema migrations for the correlation tables."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Final

from alembic import command
from alembic.config import Config

from correlator.config import get_database_config

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

MIGRATIONS_PATH: Final[Path] = Path(__file__).resolve().parent
PYPROJECT_PATH: Final[Path] = MIGRATIONS_PATH.parents[4] / "pyproject.toml"


def _build_config() -> Config:
    """Alembic config for the revisions shipped in this package.

    In a source checkout ``[tool.alembic]`` from pyproject.toml supplies the
    remaining options; the script location always points here so an installed
    package migrates the same way.
    """

    config = Config(toml_file=str(PYPROJECT_PATH)) if PYPROJECT_PATH.is_file() else Config()
    config.set_main_option("script_location", str(MIGRATIONS_PATH))
    return config


def upgrade_head(*, engine: Engine | None = None, database_uri: str | None = None) -> None:
    """Bring the schema to the latest revision, inside ``engine``'s transaction if given."""

    config = _build_config()
    if engine is None:
        config.set_main_option("sqlalchemy.url", database_uri or get_database_config().uri)
        command.upgrade(config, "head")
        return
    with engine.begin() as connection:
        config.attributes["connection"] = connection
        command.upgrade(config, "head")
