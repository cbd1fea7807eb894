"""CLI entrypoint for tales."""

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, TypeVar

import rich_click as click

from tales import __version__
from tales.commands.base import CommandKind
from tales.controllers import (
    BusCommandInput,
    BusMode,
    EventsListCommand,
    FragmentShowCommand,
    TalesCliController,
    TaskRetryCommand,
    TasksListCommand,
    UserRegisterCommand,
    WorkerRunCommand,
)
from tales.errors import CommandBusError
from tales.events import EventKind
from tales.models import ReviewAction, TaskStatus
from tales.storage.common import from_iso

click.rich_click.USE_MARKDOWN = True
CONTROLLER = TalesCliController()

F = TypeVar("F", bound=Callable[..., Any])


@click.group()
@click.version_option(version=__version__, prog_name="tales")
def tales() -> None:
    """Collaborative fragments command bus CLI."""


@tales.group()
def users() -> None:
    """User registration."""


@users.command("register")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--user-id", required=True, help="New user id.")
@click.option("--name", default=None, help="Display name; defaults to the user id.")
def users_register(db_path: Path | None, user_id: str, name: str | None) -> None:
    """Register a user."""

    with _command_errors():
        _emit_lines(
            CONTROLLER.register_user(
                UserRegisterCommand(db_path=db_path, user_id=user_id, name=name),
            ),
        )


def _bus_options(func: F) -> F:
    """Options shared by every command routed through the bus."""

    options = [
        click.option(
            "--db-path",
            type=click.Path(path_type=Path),
            default=None,
            help="SQLite DB path.",
        ),
        click.option("--actor", "actor_id", default=None, help="Acting user id."),
        click.option(
            "--system",
            is_flag=True,
            default=False,
            help="Act as the system instead of a user.",
        ),
        click.option(
            "--mode",
            type=click.Choice([mode.value for mode in BusMode], case_sensitive=False),
            default=BusMode.EXECUTE.value,
            show_default=True,
            help="Run now, run in the background, or persist as a task.",
        ),
        click.option(
            "--schedule-at",
            default=None,
            help="ISO timestamp for dispatch mode; defaults to now.",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@tales.group()
def fragments() -> None:
    """Fragment lifecycle commands."""


@fragments.command("create")
@_bus_options
@click.option("--fragment-id", required=True, help="New fragment id.")
@click.option("--content", required=True, help="Fragment text.")
def fragments_create(fragment_id: str, content: str, **bus: Any) -> None:
    """Create a root fragment in draft."""

    _run_bus(
        CommandKind.CREATE_FRAGMENT,
        {"fragment_id": fragment_id, "content": content},
        **bus,
    )


@fragments.command("update")
@_bus_options
@click.option("--fragment-id", required=True, help="Fragment id.")
@click.option("--content", required=True, help="New fragment text.")
@click.option("--end/--no-end", default=False, show_default=True, help="Mark as story end.")
def fragments_update(fragment_id: str, content: str, end: bool, **bus: Any) -> None:
    """Rewrite an editable fragment."""

    _run_bus(
        CommandKind.UPDATE_FRAGMENT,
        {"fragment_id": fragment_id, "content": content, "end": end},
        **bus,
    )


@fragments.command("fork")
@_bus_options
@click.option("--fragment-id", required=True, help="New fork id.")
@click.option("--parent-id", required=True, help="Published fragment to continue.")
@click.option("--content", required=True, help="Fork text.")
@click.option("--end/--no-end", default=False, show_default=True, help="Mark as story end.")
def fragments_fork(
    fragment_id: str,
    parent_id: str,
    content: str,
    end: bool,
    **bus: Any,
) -> None:
    """Fork a published fragment."""

    _run_bus(
        CommandKind.FORK_FRAGMENT,
        {
            "fragment_id": fragment_id,
            "parent_fragment_id": parent_id,
            "content": content,
            "end": end,
        },
        **bus,
    )


@fragments.command("submit")
@_bus_options
@click.option("--fragment-id", required=True, help="Fork id.")
def fragments_submit(fragment_id: str, **bus: Any) -> None:
    """Submit a fork for review by the parent author."""

    _run_bus(CommandKind.SUBMIT_FORK, {"fragment_id": fragment_id}, **bus)


@fragments.command("publish")
@_bus_options
@click.option("--fragment-id", required=True, help="Fragment id.")
def fragments_publish(fragment_id: str, **bus: Any) -> None:
    """Publish a draft root or an approved fork."""

    _run_bus(CommandKind.PUBLISH_FRAGMENT, {"fragment_id": fragment_id}, **bus)


@fragments.command("review")
@_bus_options
@click.option("--review-id", required=True, help="New review id.")
@click.option("--fragment-id", required=True, help="Submitted fork id.")
@click.option(
    "--action",
    type=click.Choice([action.value for action in ReviewAction], case_sensitive=False),
    required=True,
    help="Review decision.",
)
@click.option("--comment", default=None, help="Optional note for the fork author.")
def fragments_review(
    review_id: str,
    fragment_id: str,
    action: str,
    comment: str | None,
    **bus: Any,
) -> None:
    """Approve, reject or request changes on a submitted fork."""

    _run_bus(
        CommandKind.REVIEW_FORK,
        {
            "review_id": review_id,
            "fragment_id": fragment_id,
            "action": action.lower(),
            "comment": comment,
        },
        **bus,
    )


@fragments.command("show")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.argument("fragment_id")
def fragments_show(db_path: Path | None, fragment_id: str) -> None:
    """Show one fragment with its forks and reviews."""

    with _command_errors():
        _emit_lines(
            CONTROLLER.show_fragment(
                FragmentShowCommand(db_path=db_path, fragment_id=fragment_id),
            ),
        )


@tales.group()
def social() -> None:
    """Likes and follows."""


@social.command("like")
@_bus_options
@click.option("--fragment-id", required=True, help="Published fragment id.")
def social_like(fragment_id: str, **bus: Any) -> None:
    """Like a published fragment."""

    _run_bus(CommandKind.LIKE_FRAGMENT, {"fragment_id": fragment_id}, **bus)


@social.command("dislike")
@_bus_options
@click.option("--fragment-id", required=True, help="Published fragment id.")
def social_dislike(fragment_id: str, **bus: Any) -> None:
    """Withdraw a like."""

    _run_bus(CommandKind.DISLIKE_FRAGMENT, {"fragment_id": fragment_id}, **bus)


@social.command("follow")
@_bus_options
@click.option("--user-id", "followee_id", required=True, help="User to follow.")
def social_follow(followee_id: str, **bus: Any) -> None:
    """Follow a user."""

    _run_bus(CommandKind.FOLLOW_USER, {"followee_id": followee_id}, **bus)


@social.command("unfollow")
@_bus_options
@click.option("--user-id", "followee_id", required=True, help="User to unfollow.")
def social_unfollow(followee_id: str, **bus: Any) -> None:
    """Stop following a user."""

    _run_bus(CommandKind.UNFOLLOW_USER, {"followee_id": followee_id}, **bus)


@tales.group("events")
def events_group() -> None:
    """Recorded domain events."""


@events_group.command("list")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--kind",
    type=click.Choice([kind.value for kind in EventKind], case_sensitive=False),
    default=None,
    help="Optional event kind filter.",
)
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=1000),
    default=100,
    show_default=True,
    help="Max events to print.",
)
def events_list(db_path: Path | None, kind: str | None, limit: int) -> None:
    """List events in the order they were recorded."""

    _emit_lines(
        CONTROLLER.list_events(
            EventsListCommand(
                db_path=db_path,
                kind=kind.lower() if kind is not None else None,
                limit=limit,
            ),
        ),
    )


@tales.group()
def tasks() -> None:
    """Deferred command tasks."""


@tasks.command("list")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--status",
    type=click.Choice([status.value for status in TaskStatus], case_sensitive=False),
    default=None,
    help="Optional status filter.",
)
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=500),
    default=50,
    show_default=True,
    help="Max tasks to print.",
)
def tasks_list(db_path: Path | None, status: str | None, limit: int) -> None:
    """List tasks by schedule time."""

    _emit_lines(
        CONTROLLER.list_tasks(
            TasksListCommand(
                db_path=db_path,
                status=status.lower() if status is not None else None,
                limit=limit,
            ),
        ),
    )


@tasks.command("retry")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.argument("task_id")
def tasks_retry(db_path: Path | None, task_id: str) -> None:
    """Manually re-queue a failed task."""

    with _command_errors():
        _emit_lines(CONTROLLER.retry_task(TaskRetryCommand(db_path=db_path, task_id=task_id)))


@tales.group()
def worker() -> None:
    """Deferred task consumer."""


@worker.command("run")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--once/--loop",
    default=False,
    show_default=True,
    help="Run one claim-execute cycle or loop until idle.",
)
@click.option(
    "--max-tasks",
    type=click.IntRange(min=1),
    default=None,
    help="Optional cap for processed tasks in loop mode.",
)
@click.option(
    "--max-idle-polls",
    type=click.IntRange(min=1),
    default=1,
    show_default=True,
    help="Consecutive empty polls before the loop exits.",
)
def worker_run(
    db_path: Path | None,
    once: bool,
    max_tasks: int | None,
    max_idle_polls: int,
) -> None:
    """Run the task worker."""

    _emit_lines(
        CONTROLLER.run_worker(
            WorkerRunCommand(
                db_path=db_path,
                once=once,
                max_tasks=max_tasks,
                max_idle_polls=max_idle_polls,
            ),
        ),
    )


def _run_bus(  # noqa: PLR0913
    command_kind: CommandKind,
    payload: dict[str, Any],
    *,
    db_path: Path | None,
    actor_id: str | None,
    system: bool,
    mode: str,
    schedule_at: str | None,
) -> None:
    if system == (actor_id is not None):
        raise click.UsageError("Pass exactly one of --actor USER_ID or --system.")
    bus_mode = BusMode(mode.lower())
    if schedule_at is not None and bus_mode is not BusMode.DISPATCH:
        raise click.UsageError("--schedule-at only applies to --mode dispatch.")

    with _command_errors():
        _emit_lines(
            CONTROLLER.run_command(
                BusCommandInput(
                    db_path=db_path,
                    actor_id=actor_id,
                    system=system,
                    mode=bus_mode,
                    schedule_at=_parse_schedule(schedule_at),
                    command_kind=command_kind.value,
                    payload=payload,
                ),
            ),
        )


def _parse_schedule(value: str | None) -> datetime | None:
    if value is None:
        return None
    try:
        return from_iso(value)
    except ValueError as exc:
        raise click.BadParameter(
            f"Invalid ISO timestamp: {value!r}",
            param_hint="--schedule-at",
        ) from exc


@contextmanager
def _command_errors() -> Iterator[None]:
    try:
        yield
    except CommandBusError as exc:
        raise click.ClickException(f"{exc.code}: {exc.message}") from exc


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    tales()
