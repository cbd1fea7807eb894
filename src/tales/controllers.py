"""Controllers for the tales CLI commands."""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from tales.actor import Actor
from tales.bus.bus import CommandBus
from tales.bus.worker import TaskWorker
from tales.commands.base import command_from_payload
from tales.config import Settings
from tales.errors import FragmentNotFound, InvalidStateError
from tales.models import EventView, TaskStatus, TaskView
from tales.providers import SystemClock, UuidGenerator
from tales.storage import events, fragments, social, users
from tales.storage.database import Database
from tales.storage.tasks import TaskStore


class BusMode(str, Enum):
    EXECUTE = "execute"
    ASYNC = "async"
    DISPATCH = "dispatch"


@dataclass(slots=True)
class BusCommandInput:
    """CLI input for any command routed through the bus."""

    db_path: Path | None
    actor_id: str | None
    system: bool
    mode: BusMode
    schedule_at: datetime | None
    command_kind: str
    payload: dict[str, Any]


@dataclass(slots=True)
class UserRegisterCommand:
    """CLI input for user registration."""

    db_path: Path | None
    user_id: str
    name: str | None


@dataclass(slots=True)
class FragmentShowCommand:
    db_path: Path | None
    fragment_id: str


@dataclass(slots=True)
class EventsListCommand:
    db_path: Path | None
    kind: str | None
    limit: int


@dataclass(slots=True)
class TasksListCommand:
    db_path: Path | None
    status: str | None
    limit: int


@dataclass(slots=True)
class TaskRetryCommand:
    db_path: Path | None
    task_id: str


@dataclass(slots=True)
class WorkerRunCommand:
    """CLI input for worker execution."""

    db_path: Path | None
    once: bool
    max_tasks: int | None
    max_idle_polls: int = 1


class TalesCliController:
    """Coordinates bus, worker and read-side CLI operations."""

    def run_command(self, command: BusCommandInput) -> list[str]:
        actor = Actor.system() if command.system else Actor.user(command.actor_id or "")
        bus_command = command_from_payload(command.command_kind, command.payload)
        settings = _settings(command.db_path)
        with (
            _database(settings) as database,
            CommandBus(
                database,
                SystemClock(),
                UuidGenerator(),
                async_max_workers=settings.bus.async_max_workers,
            ) as bus,
        ):
            if command.mode is BusMode.DISPATCH:
                task_id = bus.dispatch(actor, bus_command, schedule_to=command.schedule_at)
                return [f"Task dispatched: task_id={task_id} kind={bus_command.kind.value}"]
            if command.mode is BusMode.ASYNC:
                bus.async_execute(actor, bus_command)
                return [f"Submitted {bus_command.kind.value} for background execution."]

            event = bus.execute(actor, bus_command)

        if event is None:
            return [f"{bus_command.kind.value}: nothing changed."]
        return [
            f"Event recorded: {event.kind.value}",
            json.dumps(event.to_payload(), ensure_ascii=False, sort_keys=True),
        ]

    def register_user(self, command: UserRegisterCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _database(settings) as database, database.session() as session:
            if users.find(session, command.user_id) is not None:
                raise InvalidStateError(f"User {command.user_id} is already registered.")
            user = users.create(session, user_id=command.user_id, display_name=command.name)
            session.commit()
        return [f"User registered: user_id={user.user_id} name={user.display_name}"]

    def show_fragment(self, command: FragmentShowCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _database(settings) as database, database.session() as session:
            fragment = fragments.find(session, command.fragment_id)
            if fragment is None:
                raise FragmentNotFound(
                    f"Fragment not found: {command.fragment_id}",
                    entity_id=command.fragment_id,
                )
            likes = social.count_likes(session, fragment.id)
            children = fragments.list_children(session, fragment.id)
            reviews = fragments.list_reviews(session, fragment.id)

        lines = [
            f"Fragment: {fragment.id}",
            f"Author: {fragment.author_id}",
            f"State: {fragment.state.value}",
            f"Parent: {fragment.parent_id or '-'}",
            f"Path: {' > '.join(fragment.path) if fragment.path else '-'}",
            f"End: {'yes' if fragment.end else 'no'}",
            f"Likes: {likes}",
            f"Created: {fragment.created_at.isoformat()}",
            f"Modified: {fragment.last_modified_at.isoformat()}",
        ]
        if children:
            lines.append("Forks:")
            lines.extend(
                f"- {child.id} {child.state.value} by {child.author_id}" for child in children
            )
        if reviews:
            lines.append("Reviews:")
            lines.extend(
                f"- {review.created_at.isoformat()} {review.reviewer_id} "
                f"{review.action.value}" + (f": {review.comment}" if review.comment else "")
                for review in reviews
            )
        lines.append("")
        lines.append(fragment.content)
        return lines

    def list_events(self, command: EventsListCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _database(settings) as database, database.session() as session:
            rows = events.list_events(session, kind=command.kind, limit=command.limit)
        if not rows:
            return ["No events found."]
        return [_event_line(row) for row in rows]

    def list_tasks(self, command: TasksListCommand) -> list[str]:
        settings = _settings(command.db_path)
        status = TaskStatus(command.status) if command.status is not None else None
        with _database(settings) as database:
            tasks = TaskStore(database).list_tasks(status=status, limit=command.limit)
        if not tasks:
            return ["No tasks found."]
        return [_task_line(task) for task in tasks]

    def retry_task(self, command: TaskRetryCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _database(settings) as database:
            task = TaskStore(database).retry(command.task_id, now=SystemClock().now())
        return [f"Task requeued: task_id={task.task_id} status={task.status.value}"]

    def run_worker(self, command: WorkerRunCommand) -> list[str]:
        settings = _settings(command.db_path)
        clock = SystemClock()
        with _database(settings) as database, CommandBus(database, clock, UuidGenerator()) as bus:
            worker = TaskWorker(
                database,
                bus.executor,
                clock,
                worker_id=settings.worker.worker_id,
                poll_interval_seconds=settings.worker.poll_interval_seconds,
                stale_running_seconds=settings.worker.stale_running_seconds,
            )
            summary = (
                worker.run_once()
                if command.once
                else worker.run_loop(
                    max_tasks=command.max_tasks,
                    max_idle_polls=command.max_idle_polls,
                )
            )

        return [
            "Worker summary: "
            f"processed={summary.processed} succeeded={summary.succeeded} "
            f"failed={summary.failed} idle_polls={summary.idle_polls}",
        ]


def _settings(db_path: Path | None) -> Settings:
    settings = Settings.from_env(db_path=db_path)
    settings.validate()
    return settings


@contextmanager
def _database(settings: Settings) -> Iterator[Database]:
    database = Database(settings.db_path, sqlite_busy_timeout_ms=settings.sqlite_busy_timeout_ms)
    database.init_schema()
    try:
        yield database
    finally:
        database.close()


def _event_line(row: EventView) -> str:
    actor = row.actor_kind if row.actor_id is None else f"{row.actor_kind}:{row.actor_id}"
    fragment_id = row.payload.get("fragment_id")
    target = f" fragment={fragment_id}" if fragment_id else ""
    return f"{row.timestamp.isoformat()} {row.kind} actor={actor}{target} id={row.event_id}"


def _task_line(task: TaskView) -> str:
    actor = task.actor_kind if task.actor_id is None else f"{task.actor_kind}:{task.actor_id}"
    line = (
        f"{task.task_id} {task.command_kind} status={task.status.value} actor={actor} "
        f"scheduled_at={task.scheduled_at.isoformat()}"
    )
    if task.error_summary:
        line += f" error={task.error_summary}"
    return line
