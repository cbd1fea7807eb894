"""Fragment lifecycle commands: create, update, fork, submit, review, publish."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, ClassVar

from tales.commands.base import (
    Command,
    CommandKind,
    register,
    require_content,
    require_flag,
    require_id,
)
from tales.errors import (
    CommandValidationError,
    ForbiddenError,
    ForkNotFound,
    FragmentNotFound,
    InvalidStateError,
    ParentFragmentNotFound,
)
from tales.events import (
    Event,
    ForkReviewedEvent,
    ForkSubmittedEvent,
    FragmentCreatedEvent,
    FragmentForkedEvent,
    FragmentPublishedEvent,
    FragmentUpdatedEvent,
)
from tales.models import Fragment, FragmentState, Review, ReviewAction
from tales.storage import fragments, social

if TYPE_CHECKING:
    from tales.bus.context import CommandContext

logger = logging.getLogger(__name__)


def _load(ctx: CommandContext, fragment_id: str) -> Fragment:
    fragment = fragments.find(ctx.tx(), fragment_id)
    if fragment is None:
        raise FragmentNotFound(f"Fragment not found: {fragment_id}", entity_id=fragment_id)
    return fragment


def _ensure_new(ctx: CommandContext, fragment_id: str) -> None:
    if fragments.find(ctx.tx(), fragment_id) is not None:
        raise InvalidStateError(f"Fragment {fragment_id} already exists.")


def _ensure_author(fragment: Fragment, user_id: str) -> None:
    if not fragment.is_author(user_id):
        raise ForbiddenError(f"User {user_id} is not the author of fragment {fragment.id}.")


@register
@dataclass(frozen=True, slots=True)
class CreateFragmentCommand(Command):
    """Start a new root fragment in draft."""

    kind: ClassVar[CommandKind] = CommandKind.CREATE_FRAGMENT

    fragment_id: str
    content: str

    def __post_init__(self) -> None:
        require_id(self.fragment_id, "fragment_id")
        require_content(self.content)

    def handle(self, ctx: CommandContext) -> Event | None:
        author_id = ctx.user_id()
        _ensure_new(ctx, self.fragment_id)
        now = ctx.now()
        fragment = fragments.save(
            ctx.tx(),
            Fragment(
                id=self.fragment_id,
                author_id=author_id,
                content=self.content,
                state=FragmentState.DRAFT,
                created_at=now,
                last_modified_at=now,
            ),
        )
        return FragmentCreatedEvent(
            timestamp=now,
            actor=ctx.actor,
            fragment_id=fragment.id,
            author_id=author_id,
            content=fragment.content,
            end=fragment.end,
        )


@register
@dataclass(frozen=True, slots=True)
class UpdateFragmentCommand(Command):
    """Rewrite the content of an editable fragment.

    Only forks may be marked as the end of a story.
    """

    kind: ClassVar[CommandKind] = CommandKind.UPDATE_FRAGMENT

    fragment_id: str
    content: str
    end: bool = False

    def __post_init__(self) -> None:
        require_id(self.fragment_id, "fragment_id")
        require_content(self.content)
        require_flag(self.end, "end")

    def handle(self, ctx: CommandContext) -> Event | None:
        user_id = ctx.user_id()
        fragment = _load(ctx, self.fragment_id)
        _ensure_author(fragment, user_id)
        if self.end and not fragment.is_fork:
            raise InvalidStateError(f"Root fragment {fragment.id} cannot be marked as end.")
        if not fragment.is_editable:
            raise InvalidStateError(
                f"Fragment {fragment.id} is {fragment.state.value} and cannot be edited.",
            )

        now = ctx.now()
        updated = fragments.update(
            ctx.tx(),
            fragment.with_content(self.content, end=self.end, modified_at=now),
        )
        return FragmentUpdatedEvent(
            timestamp=now,
            actor=ctx.actor,
            fragment_id=updated.id,
            content=updated.content,
            end=updated.end,
        )


@register
@dataclass(frozen=True, slots=True)
class ForkFragmentCommand(Command):
    """Continue a published fragment written by someone the forker follows back."""

    kind: ClassVar[CommandKind] = CommandKind.FORK_FRAGMENT

    fragment_id: str
    parent_fragment_id: str
    content: str
    end: bool = False

    def __post_init__(self) -> None:
        require_id(self.fragment_id, "fragment_id")
        require_id(self.parent_fragment_id, "parent_fragment_id")
        require_content(self.content)
        require_flag(self.end, "end")
        if self.fragment_id == self.parent_fragment_id:
            raise CommandValidationError(
                "A fragment cannot fork itself.",
                field_name="parent_fragment_id",
            )

    def handle(self, ctx: CommandContext) -> Event | None:
        forker_id = ctx.user_id()
        session = ctx.tx()
        parent = fragments.find(session, self.parent_fragment_id)
        if parent is None:
            raise ParentFragmentNotFound(
                f"Parent fragment not found: {self.parent_fragment_id}",
                entity_id=self.parent_fragment_id,
            )
        if not parent.is_published:
            raise InvalidStateError(f"Parent fragment {parent.id} is not published.")
        if parent.is_author(forker_id):
            raise ForbiddenError(f"User {forker_id} cannot fork their own fragment {parent.id}.")
        if parent.end:
            raise ForbiddenError(f"Fragment {parent.id} ends its story and cannot be forked.")
        if not social.follow_each_other(session, forker_id, parent.author_id):
            raise ForbiddenError(
                f"Users {forker_id} and {parent.author_id} must follow each other to fork.",
            )
        _ensure_new(ctx, self.fragment_id)

        now = ctx.now()
        fork = fragments.save(
            session,
            Fragment(
                id=self.fragment_id,
                author_id=forker_id,
                content=self.content,
                state=FragmentState.DRAFT,
                parent_id=parent.id,
                path=parent.fork_path(),
                end=self.end,
                created_at=now,
                last_modified_at=now,
            ),
        )
        return FragmentForkedEvent(
            timestamp=now,
            actor=ctx.actor,
            fragment_id=fork.id,
            author_id=forker_id,
            parent_fragment_id=parent.id,
            content=fork.content,
            end=fork.end,
            path=fork.path,
        )


@register
@dataclass(frozen=True, slots=True)
class SubmitForkCommand(Command):
    """Hand a fork to the parent author for review."""

    kind: ClassVar[CommandKind] = CommandKind.SUBMIT_FORK

    fragment_id: str

    def __post_init__(self) -> None:
        require_id(self.fragment_id, "fragment_id")

    def handle(self, ctx: CommandContext) -> Event | None:
        user_id = ctx.user_id()
        fork = fragments.find(ctx.tx(), self.fragment_id)
        if fork is None:
            raise ForkNotFound(f"Fork not found: {self.fragment_id}", entity_id=self.fragment_id)
        _ensure_author(fork, user_id)
        if not fork.is_submittable:
            raise InvalidStateError(
                f"Fragment {fork.id} ({fork.state.value}) cannot be submitted for review.",
            )

        now = ctx.now()
        fragments.update(ctx.tx(), fork.with_state(FragmentState.SUBMITTED, modified_at=now))
        return ForkSubmittedEvent(timestamp=now, actor=ctx.actor, fragment_id=fork.id)


@register
@dataclass(frozen=True, slots=True)
class PublishFragmentCommand(Command):
    """Make a draft root, or an approved fork, public."""

    kind: ClassVar[CommandKind] = CommandKind.PUBLISH_FRAGMENT

    fragment_id: str

    def __post_init__(self) -> None:
        require_id(self.fragment_id, "fragment_id")

    def handle(self, ctx: CommandContext) -> Event | None:
        user_id = ctx.user_id()
        fragment = _load(ctx, self.fragment_id)
        _ensure_author(fragment, user_id)
        if not fragment.is_publishable:
            raise InvalidStateError(
                f"Fragment {fragment.id} ({fragment.state.value}) cannot be published.",
            )

        now = ctx.now()
        fragments.update(
            ctx.tx(),
            fragment.with_state(FragmentState.PUBLISHED, modified_at=now),
        )
        return FragmentPublishedEvent(timestamp=now, actor=ctx.actor, fragment_id=fragment.id)


@register
@dataclass(frozen=True, slots=True)
class ReviewForkCommand(Command):
    """Parent author's decision on a submitted fork."""

    kind: ClassVar[CommandKind] = CommandKind.REVIEW_FORK

    review_id: str
    fragment_id: str
    action: ReviewAction
    comment: str | None = None

    def __post_init__(self) -> None:
        require_id(self.review_id, "review_id")
        require_id(self.fragment_id, "fragment_id")
        try:
            action = ReviewAction(self.action)
        except ValueError as exc:
            raise CommandValidationError(
                f"Unknown review action: {self.action}",
                field_name="action",
            ) from exc
        object.__setattr__(self, "action", action)
        if self.comment is not None and not isinstance(self.comment, str):
            raise CommandValidationError("comment must be text.", field_name="comment")

    def handle(self, ctx: CommandContext) -> Event | None:
        reviewer_id = ctx.user_id()
        session = ctx.tx()
        fork = _load(ctx, self.fragment_id)
        if not fork.is_fork:
            raise InvalidStateError(f"Fragment {fork.id} is not a fork.")
        if not fork.is_submitted:
            raise InvalidStateError(
                f"Fork {fork.id} is {fork.state.value}; only submitted forks can be reviewed.",
            )
        parent = fragments.find_parent(session, fork)
        if parent is None:
            raise ParentFragmentNotFound(
                f"Parent fragment not found: {fork.parent_id}",
                entity_id=fork.parent_id,
            )
        if not parent.is_author(reviewer_id):
            raise ForbiddenError(
                f"Only the author of {parent.id} may review fork {fork.id}.",
            )

        now = ctx.now()
        new_state = self.action.resulting_state
        fragments.save_review(
            session,
            Review(
                id=self.review_id,
                fragment_id=fork.id,
                reviewer_id=reviewer_id,
                action=self.action,
                comment=self.comment,
                created_at=now,
            ),
        )
        fragments.update(session, fork.with_state(new_state, modified_at=now))
        logger.info("Fork %s reviewed by %s: %s", fork.id, reviewer_id, self.action.value)
        return ForkReviewedEvent(
            timestamp=now,
            actor=ctx.actor,
            review_id=self.review_id,
            fragment_id=fork.id,
            reviewer_id=reviewer_id,
            action=self.action.value,
            comment=self.comment,
            state=new_state.value,
        )
