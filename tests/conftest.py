"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from tales.actor import Actor
from tales.bus.bus import CommandBus
from tales.commands import (
    CreateFragmentCommand,
    FollowUserCommand,
    ForkFragmentCommand,
    PublishFragmentCommand,
    SubmitForkCommand,
)
from tales.storage import users
from tales.storage.database import Database

START = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)


class FixedClock:
    """Clock that only moves when a test says so."""

    def __init__(self, start: datetime = START) -> None:
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **delta: float) -> datetime:
        self.current += timedelta(**delta)
        return self.current


class SequenceIds:
    def __init__(self, prefix: str = "id") -> None:
        self.prefix = prefix
        self.counter = 0

    def new_id(self) -> str:
        self.counter += 1
        return f"{self.prefix}-{self.counter}"


@pytest.fixture()
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture()
def ids() -> SequenceIds:
    return SequenceIds()


@pytest.fixture()
def database(tmp_path: Path) -> Iterator[Database]:
    db = Database(tmp_path / "tales.db")
    db.init_schema()
    yield db
    db.close()


@pytest.fixture()
def bus(database: Database, clock: FixedClock, ids: SequenceIds) -> Iterator[CommandBus]:
    with CommandBus(database, clock, ids, async_max_workers=2) as command_bus:
        yield command_bus


@pytest.fixture()
def people(database: Database) -> tuple[Actor, Actor, Actor]:
    """Registered users alice, bob and carol."""

    register_users(database, "alice", "bob", "carol")
    return Actor.user("alice"), Actor.user("bob"), Actor.user("carol")


def register_users(database: Database, *user_ids: str) -> None:
    with database.session() as session:
        for user_id in user_ids:
            users.create(session, user_id=user_id, display_name=user_id.title())
        session.commit()


def befriend(bus: CommandBus, first: Actor, second: Actor) -> None:
    bus.execute(first, FollowUserCommand(followee_id=second.require_user_id()))
    bus.execute(second, FollowUserCommand(followee_id=first.require_user_id()))


def published_root(bus: CommandBus, author: Actor, fragment_id: str = "root") -> str:
    bus.execute(author, CreateFragmentCommand(fragment_id=fragment_id, content="Once upon a time"))
    bus.execute(author, PublishFragmentCommand(fragment_id=fragment_id))
    return fragment_id


def submitted_fork(
    bus: CommandBus,
    *,
    parent_author: Actor,
    forker: Actor,
    parent_id: str = "root",
    fork_id: str = "fork",
) -> str:
    """Published root by ``parent_author`` and a submitted fork by ``forker``."""

    published_root(bus, parent_author, parent_id)
    befriend(bus, parent_author, forker)
    bus.execute(
        forker,
        ForkFragmentCommand(fragment_id=fork_id, parent_fragment_id=parent_id, content="Branch"),
    )
    bus.execute(forker, SubmitForkCommand(fragment_id=fork_id))
    return fork_id
