"""Domain events emitted by successful commands.

Every event carries the affected aggregate ids, the time the change happened
and the actor that caused it. Payloads are plain JSON-ready dicts; timestamps
travel as ISO strings.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar

from tales.actor import Actor
from tales.storage.common import from_iso


class EventKind(str, Enum):
    FRAGMENT_CREATED = "fragment_created"
    FRAGMENT_FORKED = "fragment_forked"
    FRAGMENT_UPDATED = "fragment_updated"
    FRAGMENT_PUBLISHED = "fragment_published"
    FORK_SUBMITTED = "fork_submitted"
    FORK_REVIEWED = "fork_reviewed"
    FRAGMENT_LIKED = "fragment_liked"
    FRAGMENT_DISLIKED = "fragment_disliked"
    USER_FOLLOWED = "user_followed"
    USER_UNFOLLOWED = "user_unfollowed"


@dataclass(frozen=True, slots=True, kw_only=True)
class Event:
    """Base class of the closed event set."""

    kind: ClassVar[EventKind]

    timestamp: datetime
    actor: Actor

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        for item in fields(self):
            value = getattr(self, item.name)
            if isinstance(value, datetime):
                value = value.isoformat()
            elif isinstance(value, Actor):
                value = value.to_payload()
            elif isinstance(value, tuple):
                value = list(value)
            payload[item.name] = value
        return payload

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> Event:
        values = dict(payload)
        values["timestamp"] = from_iso(str(values["timestamp"]))
        actor = values["actor"]
        values["actor"] = Actor.from_row(actor["kind"], actor.get("user_id"))
        return cls(**values)


@dataclass(frozen=True, slots=True, kw_only=True)
class FragmentCreatedEvent(Event):
    kind: ClassVar[EventKind] = EventKind.FRAGMENT_CREATED

    fragment_id: str
    author_id: str
    content: str
    end: bool = False


@dataclass(frozen=True, slots=True, kw_only=True)
class FragmentForkedEvent(Event):
    kind: ClassVar[EventKind] = EventKind.FRAGMENT_FORKED

    fragment_id: str
    author_id: str
    parent_fragment_id: str
    content: str
    end: bool
    path: tuple[str, ...]

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> Event:
        values = dict(payload)
        values["path"] = tuple(values.get("path") or ())
        return super(FragmentForkedEvent, cls).from_payload(values)


@dataclass(frozen=True, slots=True, kw_only=True)
class FragmentUpdatedEvent(Event):
    kind: ClassVar[EventKind] = EventKind.FRAGMENT_UPDATED

    fragment_id: str
    content: str
    end: bool


@dataclass(frozen=True, slots=True, kw_only=True)
class FragmentPublishedEvent(Event):
    kind: ClassVar[EventKind] = EventKind.FRAGMENT_PUBLISHED

    fragment_id: str


@dataclass(frozen=True, slots=True, kw_only=True)
class ForkSubmittedEvent(Event):
    kind: ClassVar[EventKind] = EventKind.FORK_SUBMITTED

    fragment_id: str


@dataclass(frozen=True, slots=True, kw_only=True)
class ForkReviewedEvent(Event):
    """Review decision; ``state`` is the fork state after the review."""

    kind: ClassVar[EventKind] = EventKind.FORK_REVIEWED

    review_id: str
    fragment_id: str
    reviewer_id: str
    action: str
    state: str
    comment: str | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class FragmentLikedEvent(Event):
    kind: ClassVar[EventKind] = EventKind.FRAGMENT_LIKED

    fragment_id: str
    user_id: str


@dataclass(frozen=True, slots=True, kw_only=True)
class FragmentDislikedEvent(Event):
    kind: ClassVar[EventKind] = EventKind.FRAGMENT_DISLIKED

    fragment_id: str
    user_id: str


@dataclass(frozen=True, slots=True, kw_only=True)
class UserFollowedEvent(Event):
    kind: ClassVar[EventKind] = EventKind.USER_FOLLOWED

    follower_id: str
    followee_id: str


@dataclass(frozen=True, slots=True, kw_only=True)
class UserUnfollowedEvent(Event):
    kind: ClassVar[EventKind] = EventKind.USER_UNFOLLOWED

    follower_id: str
    followee_id: str


EVENT_TYPES: dict[EventKind, type[Event]] = {
    event_type.kind: event_type
    for event_type in (
        FragmentCreatedEvent,
        FragmentForkedEvent,
        FragmentUpdatedEvent,
        FragmentPublishedEvent,
        ForkSubmittedEvent,
        ForkReviewedEvent,
        FragmentLikedEvent,
        FragmentDislikedEvent,
        UserFollowedEvent,
        UserUnfollowedEvent,
    )
}


def event_from_payload(kind: str, payload: dict[str, Any]) -> Event:
    """Rebuild the exact event variant recorded under ``kind``."""

    try:
        event_type = EVENT_TYPES[EventKind(kind)]
    except ValueError as exc:
        raise ValueError(f"Unknown event kind: {kind}") from exc
    return event_type.from_payload(payload)
