"""Identity attributed to commands and events."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from tales.errors import ActorNotSupported


class ActorKind(str, Enum):
    """Who issues a command."""

    USER = "user"
    SYSTEM = "system"


@dataclass(frozen=True, slots=True)
class Actor:
    """Either a registered user or the system itself.

    Build instances with :meth:`user` or :meth:`system`; a system actor never
    carries a user id.
    """

    kind: ActorKind
    user_id: str | None = None

    def __post_init__(self) -> None:
        if self.kind is ActorKind.USER and not self.user_id:
            raise ValueError("User actor requires a user id.")
        if self.kind is ActorKind.SYSTEM and self.user_id is not None:
            raise ValueError("System actor cannot carry a user id.")

    @classmethod
    def user(cls, user_id: str) -> Actor:
        return cls(kind=ActorKind.USER, user_id=user_id)

    @classmethod
    def system(cls) -> Actor:
        return cls(kind=ActorKind.SYSTEM)

    @classmethod
    def from_row(cls, actor_kind: str, actor_id: str | None) -> Actor:
        """Rebuild an actor from the persisted ``(actor_kind, actor_id)`` pair."""

        return cls(kind=ActorKind(actor_kind), user_id=actor_id)

    @property
    def is_user(self) -> bool:
        return self.kind is ActorKind.USER

    def require_user_id(self) -> str:
        if self.user_id is None:
            raise ActorNotSupported(
                f"Actor {self} has no user identity.",
                actor_kind=self.kind.value,
            )
        return self.user_id

    def to_payload(self) -> dict[str, str | None]:
        return {"kind": self.kind.value, "user_id": self.user_id}

    def __str__(self) -> str:
        if self.user_id is None:
            return self.kind.value
        return f"{self.kind.value}:{self.user_id}"
