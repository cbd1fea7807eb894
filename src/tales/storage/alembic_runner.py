"""Schema migrations for the tales database, driven through Alembic."""

from __future__ import annotations

import logging
from pathlib import Path

from sqlalchemy.engine import Engine

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext

logger = logging.getLogger(__name__)

_REPO_ROOT = Path(__file__).resolve().parents[3]


def upgrade_head(engine: Engine) -> str | None:
    """Migrate the database behind ``engine`` to the latest revision.

    The upgrade runs on one of the engine's own connections, so schema changes
    take the same pragmas and write lock as commands do. Returns the revision
    the database is at afterwards.
    """

    config = _alembic_config()
    with engine.begin() as connection:
        config.attributes["connection"] = connection
        command.upgrade(config, "head")
    revision = current_revision(engine)
    logger.debug("Schema of %s is at revision %s", engine.url.database, revision)
    return revision


def current_revision(engine: Engine) -> str | None:
    with engine.connect() as connection:
        return MigrationContext.configure(connection).get_current_revision()


def _alembic_config() -> Config:
    config = Config(str(_REPO_ROOT / "alembic.ini"))
    config.set_main_option("script_location", str(_REPO_ROOT / "alembic"))
    # Host logging stays as configured by the application.
    config.attributes["configure_logger"] = False
    return config
