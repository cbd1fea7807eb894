"""Error taxonomy for the command bus.

Every error a command can raise derives from :class:`CommandBusError` and
carries a stable ``code`` so that transports can render precise responses.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class CommandBusError(Exception):
    """Base command bus error."""

    message: str
    code: str = "command_bus_error"

    def __str__(self) -> str:
        return self.message


@dataclass(slots=True)
class ActorNotSupported(CommandBusError):
    """The actor's role may not issue this command kind."""

    code: str = "actor_not_supported"
    actor_kind: str | None = None
    command_kind: str | None = None


@dataclass(slots=True)
class CommandValidationError(CommandBusError):
    """Malformed command payload, raised before any transaction is opened."""

    code: str = "invalid_command"
    field_name: str | None = None


@dataclass(slots=True)
class NotFoundError(CommandBusError):
    """A referenced aggregate does not exist."""

    code: str = "not_found"
    entity: str = "entity"
    entity_id: str | None = None


@dataclass(slots=True)
class FragmentNotFound(NotFoundError):
    code: str = "fragment_not_found"
    entity: str = "fragment"


@dataclass(slots=True)
class ParentFragmentNotFound(NotFoundError):
    code: str = "parent_fragment_not_found"
    entity: str = "parent_fragment"


@dataclass(slots=True)
class ForkNotFound(NotFoundError):
    code: str = "fork_not_found"
    entity: str = "fork"


@dataclass(slots=True)
class UserNotFound(NotFoundError):
    code: str = "user_not_found"
    entity: str = "user"


@dataclass(slots=True)
class TaskNotFound(NotFoundError):
    code: str = "task_not_found"
    entity: str = "task"


@dataclass(slots=True)
class InvalidStateError(CommandBusError):
    """The aggregate exists but its state does not accept the command."""

    code: str = "invalid_state"


@dataclass(slots=True)
class ForbiddenError(CommandBusError):
    """The actor lacks the relationship the command requires."""

    code: str = "forbidden"


@dataclass(slots=True)
class StorageError(CommandBusError):
    """Opaque persistence failure; the transaction has been rolled back."""

    code: str = "storage_error"
