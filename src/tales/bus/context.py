"""Per-command execution context."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.engine import Engine
from sqlmodel import Session

from tales.actor import Actor
from tales.providers import Clock, IdGenerator


@dataclass(slots=True)
class CommandContext:
    """What a handler may touch while its transaction is open.

    The context never commits or rolls back; the executor owns the session
    lifecycle.
    """

    engine: Engine
    session: Session
    actor: Actor
    clock_provider: Clock
    id_provider: IdGenerator

    def pool(self) -> Engine:
        return self.engine

    def tx(self) -> Session:
        return self.session

    def clock(self) -> Clock:
        return self.clock_provider

    def ids(self) -> IdGenerator:
        return self.id_provider

    def now(self) -> datetime:
        return self.clock_provider.now()

    def user_id(self) -> str:
        return self.actor.require_user_id()
