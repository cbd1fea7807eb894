from __future__ import annotations

import allure
import pytest

from conftest import FixedClock
from tales.actor import Actor
from tales.bus.bus import CommandBus
from tales.bus.worker import TaskWorker
from tales.bus.context import CommandContext
from tales.commands import CreateFragmentCommand, PublishFragmentCommand
from tales.commands.base import COMMAND_TYPES, CommandKind
from tales.errors import InvalidStateError, TaskNotFound
from tales.events import Event
from tales.models import FragmentState, TaskCreate, TaskStatus
from tales.storage import events, fragments
from tales.storage.database import Database
from tales.storage.tasks import TaskStore

pytestmark = [
    allure.epic("Command Bus"),
    allure.feature("Deferred Task Worker"),
]


class _CrashingCreate(CreateFragmentCommand):
    def handle(self, ctx: CommandContext) -> Event | None:
        raise RuntimeError("disk on fire")


def _worker(
    bus: CommandBus,
    clock: FixedClock,
    *,
    worker_id: str = "worker-test",
    stale_running_seconds: int = 600,
) -> TaskWorker:
    return TaskWorker(
        bus.database,
        bus.executor,
        clock,
        worker_id=worker_id,
        poll_interval_seconds=0.01,
        stale_running_seconds=stale_running_seconds,
    )


def test_worker_executes_due_task_and_marks_it_succeeded(
    bus: CommandBus,
    database: Database,
    clock: FixedClock,
    people: tuple[Actor, Actor, Actor],
) -> None:
    alice, _, _ = people
    task_id = bus.dispatch(alice, CreateFragmentCommand(fragment_id="f1", content="Deferred"))
    clock.advance(seconds=10)

    summary = _worker(bus, clock).run_once()

    assert (summary.processed, summary.succeeded, summary.failed) == (1, 1, 0)
    task = TaskStore(database).get(task_id)
    assert task is not None
    assert task.status is TaskStatus.SUCCEEDED
    assert task.worker_id == "worker-test"
    assert task.completed_at == clock.now()
    with database.session() as session:
        fragment = fragments.find(session, "f1")
        rows = events.list_events(session)
    assert fragment is not None
    assert fragment.state is FragmentState.DRAFT
    assert [(row.kind, row.actor_id) for row in rows] == [("fragment_created", "alice")]


def test_failed_command_marks_task_failed_without_retry(
    bus: CommandBus,
    database: Database,
    clock: FixedClock,
    people: tuple[Actor, Actor, Actor],
) -> None:
    alice, _, _ = people
    task_id = bus.dispatch(alice, PublishFragmentCommand(fragment_id="missing"))
    worker = _worker(bus, clock)

    first = worker.run_once()
    second = worker.run_once()

    assert (first.processed, first.failed) == (1, 1)
    assert (second.processed, second.idle_polls) == (0, 1)
    task = TaskStore(database).get(task_id)
    assert task is not None
    assert task.status is TaskStatus.FAILED
    assert task.completed_at == clock.now()
    assert task.error_summary is not None
    assert task.error_summary.startswith("fragment_not_found:")
    with database.session() as session:
        assert events.list_events(session) == []


def test_manual_retry_requeues_failed_task(
    bus: CommandBus,
    database: Database,
    clock: FixedClock,
    people: tuple[Actor, Actor, Actor],
) -> None:
    alice, _, _ = people
    task_id = bus.dispatch(alice, PublishFragmentCommand(fragment_id="f1"))
    worker = _worker(bus, clock)
    worker.run_once()
    store = TaskStore(database)

    bus.execute(alice, CreateFragmentCommand(fragment_id="f1", content="Now it exists"))
    clock.advance(minutes=1)
    retried = store.retry(task_id, now=clock.now())

    assert retried.status is TaskStatus.PENDING
    assert retried.error_summary is None
    assert retried.completed_at is None
    assert worker.run_once().succeeded == 1
    with pytest.raises(InvalidStateError):
        store.retry(task_id, now=clock.now())
    with pytest.raises(TaskNotFound):
        store.retry("ghost", now=clock.now())


def test_future_task_waits_for_schedule(
    bus: CommandBus,
    clock: FixedClock,
    people: tuple[Actor, Actor, Actor],
) -> None:
    alice, _, _ = people
    bus.dispatch(
        alice,
        CreateFragmentCommand(fragment_id="f1", content="Tomorrow"),
        schedule_to=clock.now().replace(hour=23),
    )
    worker = _worker(bus, clock)

    assert worker.run_once().idle_polls == 1
    clock.advance(hours=12)
    assert worker.run_once().succeeded == 1


def test_stale_running_task_is_recovered(
    bus: CommandBus,
    database: Database,
    clock: FixedClock,
    people: tuple[Actor, Actor, Actor],
) -> None:
    alice, _, _ = people
    task_id = bus.dispatch(alice, CreateFragmentCommand(fragment_id="f1", content="Orphan"))
    store = TaskStore(database)
    claimed = store.claim_next_due(worker_id="crashed-worker", now=clock.now())
    assert claimed is not None
    assert claimed.status is TaskStatus.RUNNING

    worker = _worker(bus, clock, stale_running_seconds=60)
    assert worker.run_once().processed == 0

    clock.advance(minutes=5)
    assert worker.run_once().succeeded == 1
    task = store.get(task_id)
    assert task is not None
    assert task.worker_id == "worker-test"


def test_undecodable_task_fails(
    bus: CommandBus,
    database: Database,
    clock: FixedClock,
) -> None:
    store = TaskStore(database)
    store.create(
        TaskCreate(
            task_id="bad-kind",
            command_kind="teleport_fragment",
            payload={},
            actor_kind="user",
            actor_id="alice",
            scheduled_at=clock.now(),
        ),
        now=clock.now(),
    )
    clock.advance(seconds=1)
    store.create(
        TaskCreate(
            task_id="system-actor",
            command_kind="publish_fragment",
            payload={"fragment_id": "f1"},
            actor_kind="system",
            actor_id=None,
            scheduled_at=clock.now(),
        ),
        now=clock.now(),
    )

    summary = _worker(bus, clock).run_loop(max_idle_polls=1)

    assert (summary.processed, summary.failed, summary.idle_polls) == (2, 2, 1)
    bad_kind = store.get("bad-kind")
    system_actor = store.get("system-actor")
    assert bad_kind is not None
    assert system_actor is not None
    assert bad_kind.error_summary is not None
    assert bad_kind.error_summary.startswith("invalid_command:")
    assert system_actor.error_summary is not None
    assert system_actor.error_summary.startswith("actor_not_supported:")


def test_run_loop_respects_max_tasks(
    bus: CommandBus,
    clock: FixedClock,
    people: tuple[Actor, Actor, Actor],
) -> None:
    alice, _, _ = people
    for index in range(3):
        bus.dispatch(alice, CreateFragmentCommand(fragment_id=f"f{index}", content="Queued"))
        clock.advance(seconds=1)
    worker = _worker(bus, clock)

    summary = worker.run_loop(max_tasks=2)

    assert (summary.processed, summary.succeeded) == (2, 2)
    worker.request_stop()
    assert worker.run_loop().processed == 0


def test_crashing_handler_fails_task_once(
    bus: CommandBus,
    database: Database,
    clock: FixedClock,
    people: tuple[Actor, Actor, Actor],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    alice, _, _ = people
    task_id = bus.dispatch(alice, CreateFragmentCommand(fragment_id="f1", content="Doomed"))
    bus.dispatch(alice, PublishFragmentCommand(fragment_id="f1"))
    monkeypatch.setitem(COMMAND_TYPES, CommandKind.CREATE_FRAGMENT, _CrashingCreate)
    worker = _worker(bus, clock, stale_running_seconds=60)

    summary = worker.run_loop(max_idle_polls=1)

    assert (summary.processed, summary.failed, summary.idle_polls) == (2, 2, 1)
    store = TaskStore(database)
    task = store.get(task_id)
    assert task is not None
    assert task.status is TaskStatus.FAILED
    assert task.error_summary == "unexpected_error: disk on fire"
    with database.session() as session:
        assert fragments.find(session, "f1") is None
        assert events.list_events(session) == []

    clock.advance(minutes=5)
    assert worker.run_once().idle_polls == 1
    task = store.get(task_id)
    assert task is not None
    assert task.status is TaskStatus.FAILED
