"""SQLModel ORM tables for fragments, social graph, events and tasks."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    PrimaryKeyConstraint,
    String,
    Text,
)
from sqlmodel import Field, SQLModel


class AppUser(SQLModel, table=True):
    __tablename__ = "users"  # type: ignore[bad-override]

    user_id: str = Field(primary_key=True, index=True)
    display_name: str = Field(index=True)
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class FragmentRow(SQLModel, table=True):
    __tablename__ = "fragments"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_fragments_parent", "parent_id"),)

    id: str = Field(primary_key=True)
    author_id: str = Field(
        sa_column=Column(
            String,
            ForeignKey("users.user_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    content: str = Field(sa_column=Column(Text, nullable=False))
    state: str = Field(index=True)
    parent_id: str | None = Field(default=None, foreign_key="fragments.id")
    path_json: str = Field(sa_column=Column(Text, nullable=False, server_default="[]"))
    is_end: bool = False
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    last_modified_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )


class ReviewRow(SQLModel, table=True):
    __tablename__ = "reviews"  # type: ignore[bad-override]

    id: str = Field(primary_key=True)
    fragment_id: str = Field(foreign_key="fragments.id", index=True)
    reviewer_id: str = Field(foreign_key="users.user_id", index=True)
    action: str
    comment: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class FollowRow(SQLModel, table=True):
    __tablename__ = "follows"  # type: ignore[bad-override]
    __table_args__ = (
        PrimaryKeyConstraint("follower_id", "followee_id", name="pk_follows"),
        Index("idx_follows_followee", "followee_id"),
    )

    follower_id: str = Field(foreign_key="users.user_id")
    followee_id: str = Field(foreign_key="users.user_id")
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class LikeRow(SQLModel, table=True):
    __tablename__ = "likes"  # type: ignore[bad-override]
    __table_args__ = (
        PrimaryKeyConstraint("user_id", "fragment_id", name="pk_likes"),
        Index("idx_likes_fragment", "fragment_id"),
    )

    user_id: str = Field(foreign_key="users.user_id")
    fragment_id: str = Field(foreign_key="fragments.id")
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class EventRow(SQLModel, table=True):
    __tablename__ = "events"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_events_kind_timestamp", "kind", "timestamp"),)

    id: str = Field(primary_key=True)
    kind: str = Field(index=True)
    payload_json: str = Field(sa_column=Column(Text, nullable=False))
    actor_kind: str
    actor_id: str | None = None
    timestamp: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class TaskRow(SQLModel, table=True):
    __tablename__ = "tasks"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_tasks_status_scheduled", "status", "scheduled_at"),)

    id: str = Field(primary_key=True)
    command_kind: str = Field(index=True)
    payload_json: str = Field(sa_column=Column(Text, nullable=False))
    actor_kind: str
    actor_id: str | None = None
    status: str = Field(default="pending")
    worker_id: str | None = None
    error_summary: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    scheduled_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    started_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    completed_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
