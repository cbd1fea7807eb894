"""Runtime configuration for the command bus, the worker and the CLI."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


@dataclass(slots=True)
class BusSettings:
    """Fire-and-forget execution settings."""

    async_max_workers: int = 4


@dataclass(slots=True)
class WorkerSettings:
    """Deferred task consumer settings."""

    worker_id: str = field(default_factory=lambda: f"worker-{os.getpid()}")
    poll_interval_seconds: float = 2.0
    stale_running_seconds: int = 1_800


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    db_path: Path = Path(".tales.db")
    sqlite_busy_timeout_ms: int = 5_000
    bus: BusSettings = field(default_factory=BusSettings)
    worker: WorkerSettings = field(default_factory=WorkerSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        return cls(
            db_path=db_path or Path(os.getenv("TALES_DB_PATH", ".tales.db")),
            sqlite_busy_timeout_ms=_env_int("TALES_SQLITE_BUSY_TIMEOUT_MS", 5_000),
            bus=BusSettings(
                async_max_workers=_env_int("TALES_ASYNC_MAX_WORKERS", 4),
            ),
            worker=WorkerSettings(
                worker_id=os.getenv("TALES_WORKER_ID") or f"worker-{os.getpid()}",
                poll_interval_seconds=float(
                    os.getenv("TALES_WORKER_POLL_INTERVAL_SECONDS", "2.0"),
                ),
                stale_running_seconds=_env_int("TALES_WORKER_STALE_RUNNING_SECONDS", 1_800),
            ),
        )

    def validate(self) -> None:
        if self.sqlite_busy_timeout_ms <= 0:
            raise ValueError("TALES_SQLITE_BUSY_TIMEOUT_MS must be > 0.")
        if self.bus.async_max_workers <= 0:
            raise ValueError("TALES_ASYNC_MAX_WORKERS must be > 0.")
        if self.worker.poll_interval_seconds <= 0:
            raise ValueError("TALES_WORKER_POLL_INTERVAL_SECONDS must be > 0.")
        if self.worker.stale_running_seconds <= 0:
            raise ValueError("TALES_WORKER_STALE_RUNNING_SECONDS must be > 0.")
        if not self.worker.worker_id.strip():
            raise ValueError("TALES_WORKER_ID must not be blank.")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"Invalid integer value for {name}: {value!r}") from exc
