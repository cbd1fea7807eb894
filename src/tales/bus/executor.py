"""Runs one command inside one storage transaction."""

from __future__ import annotations

import logging
from collections.abc import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from tales.actor import Actor
from tales.bus.context import CommandContext
from tales.commands.base import Command
from tales.errors import ActorNotSupported, CommandBusError, StorageError
from tales.events import Event
from tales.providers import Clock, IdGenerator
from tales.storage import events
from tales.storage.database import Database

logger = logging.getLogger(__name__)

BeforeCommit = Callable[[Session], None]


class Executor:
    """Authorize, handle, record the event and commit, or roll everything back.

    The event row is written through the handler's session, so a command's
    state changes and its event are committed together or not at all.
    """

    def __init__(self, database: Database, clock: Clock, ids: IdGenerator) -> None:
        self.database = database
        self.clock = clock
        self.ids = ids

    def authorize(self, actor: Actor, command: Command) -> None:
        if not command.supports(actor):
            logger.error(
                "Actor %s is not allowed to run %s",
                actor,
                command.kind.value,
            )
            raise ActorNotSupported(
                f"Actor {actor} cannot run {command.kind.value}.",
                actor_kind=actor.kind.value,
                command_kind=command.kind.value,
            )

    def execute(
        self,
        actor: Actor,
        command: Command,
        *,
        before_commit: BeforeCommit | None = None,
    ) -> Event | None:
        """Execute ``command`` for ``actor`` and return the recorded event, if any."""

        self.authorize(actor, command)

        with self.database.session() as session:
            try:
                ctx = CommandContext(
                    engine=self.database.engine,
                    session=session,
                    actor=actor,
                    clock_provider=self.clock,
                    id_provider=self.ids,
                )
                event = command.handle(ctx)
                if event is not None:
                    events.append(
                        session,
                        event_id=self.ids.new_id(),
                        kind=event.kind.value,
                        payload=event.to_payload(),
                        actor_kind=event.actor.kind.value,
                        actor_id=event.actor.user_id,
                        timestamp=event.timestamp,
                    )
                if before_commit is not None:
                    before_commit(session)
                session.commit()
            except CommandBusError as exc:
                session.rollback()
                logger.error(
                    "Command %s by %s failed: %s: %s",
                    command.kind.value,
                    actor,
                    exc.code,
                    exc.message,
                )
                raise
            except SQLAlchemyError as exc:
                session.rollback()
                logger.exception("Command %s by %s hit a storage error", command.kind.value, actor)
                raise StorageError(f"Storage failure while running {command.kind.value}.") from exc
            except Exception:
                session.rollback()
                logger.exception("Command %s by %s failed unexpectedly", command.kind.value, actor)
                raise

        if event is None:
            logger.info("Command %s by %s changed nothing", command.kind.value, actor)
        else:
            logger.info(
                "Command %s by %s recorded %s",
                command.kind.value,
                actor,
                event.kind.value,
            )
        return event
