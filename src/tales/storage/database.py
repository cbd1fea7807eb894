"""SQLite database handle shared by the bus, the worker and the CLI."""

from __future__ import annotations

from pathlib import Path

from sqlalchemy.engine import Engine
from sqlmodel import Session

from tales.storage.alembic_runner import upgrade_head
from tales.storage.common import build_sqlite_engine


class Database:
    """Owns the SQLAlchemy engine; every session checks out its own connection."""

    def __init__(self, db_path: Path, *, sqlite_busy_timeout_ms: int = 5_000) -> None:
        self.db_path = db_path
        self.sqlite_busy_timeout_ms = sqlite_busy_timeout_ms
        self.engine: Engine = build_sqlite_engine(
            db_path=db_path,
            busy_timeout_ms=sqlite_busy_timeout_ms,
        )

    def init_schema(self) -> None:
        """Run schema migrations up to head."""

        upgrade_head(self.engine)

    def session(self) -> Session:
        """New session; the transaction begins on first statement."""

        return Session(self.engine, expire_on_commit=False)

    def close(self) -> None:
        self.engine.dispose()
