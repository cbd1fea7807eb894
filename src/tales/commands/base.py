"""Command contract, kind registry and payload helpers."""

from __future__ import annotations

from dataclasses import dataclass, fields
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar, TypeVar

from tales.actor import Actor
from tales.errors import CommandValidationError

if TYPE_CHECKING:
    from tales.bus.context import CommandContext
    from tales.events import Event


class CommandKind(str, Enum):
    CREATE_FRAGMENT = "create_fragment"
    UPDATE_FRAGMENT = "update_fragment"
    FORK_FRAGMENT = "fork_fragment"
    SUBMIT_FORK = "submit_fork"
    PUBLISH_FRAGMENT = "publish_fragment"
    REVIEW_FORK = "review_fork"
    LIKE_FRAGMENT = "like_fragment"
    DISLIKE_FRAGMENT = "dislike_fragment"
    FOLLOW_USER = "follow_user"
    UNFOLLOW_USER = "unfollow_user"


@dataclass(frozen=True, slots=True)
class Command:
    """Intent to change state, executed in exactly one transaction.

    ``handle`` returns the event describing the change, or ``None`` when the
    command turned out to be a no-op. Handlers read and write only through
    ``ctx.tx()`` and never commit.
    """

    kind: ClassVar[CommandKind]

    def supports(self, actor: Actor) -> bool:
        return actor.is_user

    def handle(self, ctx: CommandContext) -> Event | None:
        raise NotImplementedError

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        for item in fields(self):
            value = getattr(self, item.name)
            payload[item.name] = value.value if isinstance(value, Enum) else value
        return payload

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> Command:
        known = {item.name for item in fields(cls)}
        unknown = sorted(set(payload) - known)
        if unknown:
            raise CommandValidationError(
                f"Unknown fields for {cls.kind.value}: {', '.join(unknown)}",
                field_name=unknown[0],
            )
        try:
            return cls(**payload)
        except TypeError as exc:
            raise CommandValidationError(f"Malformed {cls.kind.value} payload: {exc}") from exc


CommandT = TypeVar("CommandT", bound=type[Command])

COMMAND_TYPES: dict[CommandKind, type[Command]] = {}


def register(command_type: CommandT) -> CommandT:
    """Class decorator adding a command variant to the kind registry."""

    COMMAND_TYPES[command_type.kind] = command_type
    return command_type


def command_from_payload(kind: str, payload: dict[str, Any]) -> Command:
    """Rebuild the exact command variant persisted under ``kind``."""

    try:
        command_kind = CommandKind(kind)
    except ValueError as exc:
        raise CommandValidationError(
            f"Unknown command kind: {kind}",
            field_name="kind",
        ) from exc
    command_type = COMMAND_TYPES.get(command_kind)
    if command_type is None:
        raise CommandValidationError(f"No handler registered for {kind}", field_name="kind")
    return command_type.from_payload(payload)


def require_id(value: object, field_name: str) -> None:
    if not isinstance(value, str) or not value.strip():
        raise CommandValidationError(
            f"{field_name} must be a non-empty string.",
            field_name=field_name,
        )


def require_content(value: object, field_name: str = "content") -> None:
    if not isinstance(value, str) or not value.strip():
        raise CommandValidationError(
            f"{field_name} must be non-empty text.",
            field_name=field_name,
        )


def require_flag(value: object, field_name: str) -> None:
    if not isinstance(value, bool):
        raise CommandValidationError(f"{field_name} must be a boolean.", field_name=field_name)
