"""Command bus facade: synchronous, fire-and-forget and deferred execution."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from types import TracebackType

from sqlalchemy.exc import SQLAlchemyError

from tales.actor import Actor
from tales.bus.executor import Executor
from tales.commands.base import Command
from tales.errors import StorageError
from tales.events import Event
from tales.models import TaskCreate
from tales.providers import Clock, IdGenerator
from tales.storage.database import Database
from tales.storage.tasks import TaskStore

logger = logging.getLogger(__name__)


class CommandBus:
    """Entry point for callers that want a command run or scheduled."""

    def __init__(
        self,
        database: Database,
        clock: Clock,
        ids: IdGenerator,
        *,
        async_max_workers: int = 4,
    ) -> None:
        self.database = database
        self.clock = clock
        self.ids = ids
        self.executor = Executor(database, clock, ids)
        self.tasks = TaskStore(database)
        self._pool = ThreadPoolExecutor(
            max_workers=async_max_workers,
            thread_name_prefix="tales-async",
        )

    def execute(self, actor: Actor, command: Command) -> Event | None:
        return self.executor.execute(actor, command)

    def async_execute(self, actor: Actor, command: Command) -> None:
        """Run the command in the background; the caller gets no confirmation.

        Failures are logged and otherwise dropped.
        """

        self._pool.submit(self._run_detached, actor, command)

    def dispatch(
        self,
        actor: Actor,
        command: Command,
        schedule_to: datetime | None = None,
    ) -> str:
        """Persist the command as a pending task and return the task id."""

        self.executor.authorize(actor, command)
        now = self.clock.now()
        try:
            task = self.tasks.create(
                TaskCreate(
                    task_id=self.ids.new_id(),
                    command_kind=command.kind.value,
                    payload=command.to_payload(),
                    actor_kind=actor.kind.value,
                    actor_id=actor.user_id,
                    scheduled_at=schedule_to or now,
                ),
                now=now,
            )
        except SQLAlchemyError as exc:
            logger.exception("Dispatch of %s by %s hit a storage error", command.kind.value, actor)
            raise StorageError(f"Storage failure while dispatching {command.kind.value}.") from exc
        logger.info(
            "Dispatched %s by %s as task %s for %s",
            command.kind.value,
            actor,
            task.task_id,
            task.scheduled_at.isoformat(),
        )
        return task.task_id

    def _run_detached(self, actor: Actor, command: Command) -> None:
        try:
            self.executor.execute(actor, command)
        except Exception:
            logger.exception("Async %s by %s failed", command.kind.value, actor)

    def close(self, *, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait)

    def __enter__(self) -> CommandBus:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()

