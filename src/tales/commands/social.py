"""Likes and follows. Repeating a command that is already satisfied is a no-op."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, ClassVar

from tales.commands.base import Command, CommandKind, register, require_id
from tales.errors import ForbiddenError, FragmentNotFound, InvalidStateError, UserNotFound
from tales.events import (
    Event,
    FragmentDislikedEvent,
    FragmentLikedEvent,
    UserFollowedEvent,
    UserUnfollowedEvent,
)
from tales.models import Follow, Fragment, Like
from tales.storage import fragments, social, users

if TYPE_CHECKING:
    from tales.bus.context import CommandContext

logger = logging.getLogger(__name__)


def _load_published(ctx: CommandContext, fragment_id: str) -> Fragment:
    fragment = fragments.find(ctx.tx(), fragment_id)
    if fragment is None:
        raise FragmentNotFound(f"Fragment not found: {fragment_id}", entity_id=fragment_id)
    if not fragment.is_published:
        raise InvalidStateError(f"Fragment {fragment_id} is not published.")
    return fragment


@register
@dataclass(frozen=True, slots=True)
class LikeFragmentCommand(Command):
    kind: ClassVar[CommandKind] = CommandKind.LIKE_FRAGMENT

    fragment_id: str

    def __post_init__(self) -> None:
        require_id(self.fragment_id, "fragment_id")

    def handle(self, ctx: CommandContext) -> Event | None:
        user_id = ctx.user_id()
        fragment = _load_published(ctx, self.fragment_id)
        if social.find_like(ctx.tx(), user_id, fragment.id) is not None:
            logger.debug("User %s already likes %s", user_id, fragment.id)
            return None

        now = ctx.now()
        social.save_like(ctx.tx(), Like(user_id=user_id, fragment_id=fragment.id, created_at=now))
        return FragmentLikedEvent(
            timestamp=now,
            actor=ctx.actor,
            fragment_id=fragment.id,
            user_id=user_id,
        )


@register
@dataclass(frozen=True, slots=True)
class DislikeFragmentCommand(Command):
    """Withdraw a like."""

    kind: ClassVar[CommandKind] = CommandKind.DISLIKE_FRAGMENT

    fragment_id: str

    def __post_init__(self) -> None:
        require_id(self.fragment_id, "fragment_id")

    def handle(self, ctx: CommandContext) -> Event | None:
        user_id = ctx.user_id()
        fragment = _load_published(ctx, self.fragment_id)
        if not social.delete_like(ctx.tx(), user_id, fragment.id):
            logger.debug("User %s does not like %s", user_id, fragment.id)
            return None
        return FragmentDislikedEvent(
            timestamp=ctx.now(),
            actor=ctx.actor,
            fragment_id=fragment.id,
            user_id=user_id,
        )


@register
@dataclass(frozen=True, slots=True)
class FollowUserCommand(Command):
    kind: ClassVar[CommandKind] = CommandKind.FOLLOW_USER

    followee_id: str

    def __post_init__(self) -> None:
        require_id(self.followee_id, "followee_id")

    def handle(self, ctx: CommandContext) -> Event | None:
        follower_id = ctx.user_id()
        session = ctx.tx()
        if not users.exists(session, self.followee_id):
            raise UserNotFound(f"User not found: {self.followee_id}", entity_id=self.followee_id)
        if follower_id == self.followee_id:
            raise ForbiddenError(f"User {follower_id} cannot follow themselves.")
        if social.find_follow(session, follower_id, self.followee_id) is not None:
            logger.debug("User %s already follows %s", follower_id, self.followee_id)
            return None

        now = ctx.now()
        social.save_follow(
            session,
            Follow(follower_id=follower_id, followee_id=self.followee_id, created_at=now),
        )
        return UserFollowedEvent(
            timestamp=now,
            actor=ctx.actor,
            follower_id=follower_id,
            followee_id=self.followee_id,
        )


@register
@dataclass(frozen=True, slots=True)
class UnfollowUserCommand(Command):
    kind: ClassVar[CommandKind] = CommandKind.UNFOLLOW_USER

    followee_id: str

    def __post_init__(self) -> None:
        require_id(self.followee_id, "followee_id")

    def handle(self, ctx: CommandContext) -> Event | None:
        follower_id = ctx.user_id()
        if not social.delete_follow(ctx.tx(), follower_id, self.followee_id):
            logger.debug("User %s does not follow %s", follower_id, self.followee_id)
            return None
        return UserUnfollowedEvent(
            timestamp=ctx.now(),
            actor=ctx.actor,
            follower_id=follower_id,
            followee_id=self.followee_id,
        )
