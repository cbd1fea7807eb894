"""Queue worker that executes deferred commands."""

from __future__ import annotations

import logging
import signal
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import timedelta

from sqlmodel import Session

from tales.actor import Actor
from tales.bus.executor import Executor
from tales.commands.base import Command, command_from_payload
from tales.errors import CommandBusError
from tales.models import TaskView
from tales.providers import Clock
from tales.storage.database import Database
from tales.storage.tasks import TaskStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class WorkerRunSummary:
    """Aggregate worker counters for CLI reporting."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    idle_polls: int = 0

    def add(self, other: WorkerRunSummary) -> None:
        self.processed += other.processed
        self.succeeded += other.succeeded
        self.failed += other.failed
        self.idle_polls += other.idle_polls


class TaskWorker:
    """Consumes due tasks and runs their commands through the executor.

    A task is marked succeeded in the same transaction as its command, so a
    crash between the two cannot run the command twice. Failed tasks are not
    retried automatically; see :meth:`TaskStore.retry`.
    """

    def __init__(  # noqa: PLR0913
        self,
        database: Database,
        executor: Executor,
        clock: Clock,
        *,
        worker_id: str,
        poll_interval_seconds: float = 2.0,
        stale_running_seconds: int = 1800,
    ) -> None:
        self.database = database
        self.executor = executor
        self.clock = clock
        self.tasks = TaskStore(database)
        self.worker_id = worker_id
        self.poll_interval_seconds = poll_interval_seconds
        self.stale_running_seconds = stale_running_seconds
        self._stop_requested = False

    def run_once(self) -> WorkerRunSummary:
        """Process at most one due task."""

        summary = WorkerRunSummary()
        if self._stop_requested:
            summary.idle_polls = 1
            return summary

        task = self._claim_task()
        if task is None:
            summary.idle_polls = 1
            return summary

        summary.processed = 1
        try:
            actor = Actor.from_row(task.actor_kind, task.actor_id)
            command = command_from_payload(task.command_kind, task.payload)
            self._execute(task=task, actor=actor, command=command)
        except (CommandBusError, ValueError) as exc:
            self._fail(task=task, error=exc)
            summary.failed = 1
            return summary
        except Exception as exc:  # noqa: BLE001
            logger.exception("Task %s (%s) crashed", task.task_id, task.command_kind)
            self._fail(task=task, error=exc)
            summary.failed = 1
            return summary

        summary.succeeded = 1
        logger.info("Task %s (%s) succeeded", task.task_id, task.command_kind)
        return summary

    def run_loop(
        self,
        *,
        max_tasks: int | None = None,
        max_idle_polls: int = 1,
    ) -> WorkerRunSummary:
        """Run until the queue stays idle or ``max_tasks`` have been processed.

        Args:
            max_tasks: Stop after processing this many tasks (None = unlimited).
            max_idle_polls: Consecutive empty polls before exiting.
        """

        aggregate = WorkerRunSummary()
        consecutive_idle = 0
        with self._signal_handlers():
            while True:
                if self._stop_requested:
                    return aggregate
                if max_tasks is not None and aggregate.processed >= max_tasks:
                    return aggregate

                summary = self.run_once()
                aggregate.add(summary)

                if summary.processed == 0:
                    consecutive_idle += 1
                    if consecutive_idle >= max_idle_polls:
                        return aggregate
                    self._sleep_with_stop(self.poll_interval_seconds)
                    continue
                consecutive_idle = 0

    def request_stop(self) -> None:
        self._stop_requested = True

    def _claim_task(self) -> TaskView | None:
        now = self.clock.now()
        if self.stale_running_seconds > 0:
            recovered = self.tasks.recover_stale_running(
                stale_after=timedelta(seconds=self.stale_running_seconds),
                now=now,
            )
            if recovered:
                logger.warning("Recovered %d stale running task(s)", recovered)
        return self.tasks.claim_next_due(worker_id=self.worker_id, now=now)

    def _execute(self, *, task: TaskView, actor: Actor, command: Command) -> None:
        def _mark_succeeded(session: Session) -> None:
            self.tasks.mark_succeeded(
                session=session,
                task_id=task.task_id,
                worker_id=self.worker_id,
                completed_at=self.clock.now(),
            )

        self.executor.execute(actor, command, before_commit=_mark_succeeded)

    def _fail(self, *, task: TaskView, error: Exception) -> None:
        summary = f"{_failure_code(error)}: {error}"
        marked = self.tasks.mark_failed(
            task_id=task.task_id,
            worker_id=self.worker_id,
            error_summary=summary,
            completed_at=self.clock.now(),
        )
        if not marked:
            logger.warning("Task %s was no longer owned by %s", task.task_id, self.worker_id)
        logger.error("Task %s (%s) failed: %s", task.task_id, task.command_kind, summary)

    def _sleep_with_stop(self, seconds: float) -> None:
        deadline = time.monotonic() + max(0.0, seconds)
        while not self._stop_requested and time.monotonic() < deadline:
            time.sleep(min(0.1, max(0.0, deadline - time.monotonic())))

    @contextmanager
    def _signal_handlers(self) -> Iterator[None]:
        def _handler(signum: int, _: object | None) -> None:
            logger.info("Received %s, stopping after the current task", signal.Signals(signum).name)
            self.request_stop()

        try:
            original_sigint = signal.signal(signal.SIGINT, _handler)
            original_sigterm = signal.signal(signal.SIGTERM, _handler)
        except ValueError:
            # Signal handlers can only be installed in main thread.
            yield
            return
        try:
            yield
        finally:
            signal.signal(signal.SIGINT, original_sigint)
            signal.signal(signal.SIGTERM, original_sigterm)


def _failure_code(error: Exception) -> str:
    if isinstance(error, CommandBusError):
        return error.code
    if isinstance(error, ValueError):
        return "invalid_task"
    return "unexpected_error"
