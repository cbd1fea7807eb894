"""Domain models for fragments, reviews, social relations, events and tasks."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any


class FragmentState(str, Enum):
    """Lifecycle states of a fragment."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    WAITING_CHANGES = "waiting_changes"
    PUBLISHED = "published"


REVIEW_ONLY_STATES = frozenset(
    {
        FragmentState.SUBMITTED,
        FragmentState.APPROVED,
        FragmentState.REJECTED,
        FragmentState.WAITING_CHANGES,
    },
)


class ReviewAction(str, Enum):
    """Decision a parent author takes on a submitted fork."""

    APPROVE = "approve"
    REJECT = "reject"
    REQUEST_CHANGES = "request_changes"

    @property
    def resulting_state(self) -> FragmentState:
        return _REVIEW_TRANSITIONS[self]


_REVIEW_TRANSITIONS = {
    ReviewAction.APPROVE: FragmentState.APPROVED,
    ReviewAction.REJECT: FragmentState.REJECTED,
    ReviewAction.REQUEST_CHANGES: FragmentState.WAITING_CHANGES,
}


@dataclass(frozen=True, slots=True)
class Fragment:
    """Versioned piece of content; a fork when it has a parent.

    ``path`` lists ancestor ids from the root to the immediate parent and is
    fixed when the fork is created.
    """

    id: str
    author_id: str
    content: str
    state: FragmentState
    created_at: datetime
    last_modified_at: datetime
    parent_id: str | None = None
    path: tuple[str, ...] = ()
    end: bool = False

    def __post_init__(self) -> None:
        if (self.parent_id is not None) != bool(self.path):
            raise ValueError(
                f"Fragment {self.id}: parent_id and path must be set together.",
            )
        if self.parent_id is not None and self.path[-1] != self.parent_id:
            raise ValueError(f"Fragment {self.id}: path must end with the parent id.")
        if self.is_root and self.state in REVIEW_ONLY_STATES:
            raise ValueError(
                f"Fragment {self.id}: root fragments cannot be in state {self.state.value}.",
            )

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    @property
    def is_fork(self) -> bool:
        return self.parent_id is not None

    @property
    def is_draft(self) -> bool:
        return self.state is FragmentState.DRAFT

    @property
    def is_published(self) -> bool:
        return self.state is FragmentState.PUBLISHED

    @property
    def is_submitted(self) -> bool:
        return self.state is FragmentState.SUBMITTED

    @property
    def is_editable(self) -> bool:
        return self.state in {FragmentState.DRAFT, FragmentState.WAITING_CHANGES}

    @property
    def is_publishable(self) -> bool:
        if self.is_fork:
            return self.state is FragmentState.APPROVED
        return self.is_draft

    @property
    def is_submittable(self) -> bool:
        return self.is_fork and self.is_editable

    def is_author(self, user_id: str) -> bool:
        return self.author_id == user_id

    def fork_path(self) -> tuple[str, ...]:
        """Ancestry for a new fork of this fragment."""

        return (*self.path, self.id)

    def with_state(self, state: FragmentState, *, modified_at: datetime) -> Fragment:
        return replace(self, state=state, last_modified_at=modified_at)

    def with_content(self, content: str, *, end: bool, modified_at: datetime) -> Fragment:
        return replace(self, content=content, end=end, last_modified_at=modified_at)


@dataclass(frozen=True, slots=True)
class Review:
    """A parent author's decision on one fork."""

    id: str
    fragment_id: str
    reviewer_id: str
    action: ReviewAction
    created_at: datetime
    comment: str | None = None


@dataclass(frozen=True, slots=True)
class Follow:
    follower_id: str
    followee_id: str
    created_at: datetime


@dataclass(frozen=True, slots=True)
class Like:
    user_id: str
    fragment_id: str
    created_at: datetime


@dataclass(slots=True)
class UserView:
    user_id: str
    display_name: str
    created_at: datetime


@dataclass(slots=True)
class EventView:
    """Persisted event row."""

    event_id: str
    kind: str
    actor_kind: str
    actor_id: str | None
    timestamp: datetime
    payload: dict[str, Any] = field(default_factory=dict)


class TaskStatus(str, Enum):
    """Lifecycle of a deferred command."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(slots=True)
class TaskCreate:
    """Input payload for persisting a deferred command."""

    task_id: str
    command_kind: str
    payload: dict[str, Any]
    actor_kind: str
    actor_id: str | None
    scheduled_at: datetime


@dataclass(slots=True)
class TaskView:
    """Readable task view for CLI and worker logic."""

    task_id: str
    command_kind: str
    payload: dict[str, Any]
    actor_kind: str
    actor_id: str | None
    status: TaskStatus
    created_at: datetime
    scheduled_at: datetime
    started_at: datetime | None
    completed_at: datetime | None
    worker_id: str | None
    error_summary: str | None
