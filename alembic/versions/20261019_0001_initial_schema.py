"""Initial schema: users, fragments, reviews, social graph, events and tasks."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("display_name", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("user_id"),
    )
    op.create_index("ix_users_user_id", "users", ["user_id"], unique=False)
    op.create_index("ix_users_display_name", "users", ["display_name"], unique=False)

    op.create_table(
        "fragments",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("author_id", sa.String(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("state", sa.String(), nullable=False),
        sa.Column("parent_id", sa.String(), nullable=True),
        sa.Column("path_json", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("is_end", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_modified_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["author_id"], ["users.user_id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["parent_id"], ["fragments.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_fragments_author_id", "fragments", ["author_id"], unique=False)
    op.create_index("ix_fragments_state", "fragments", ["state"], unique=False)
    op.create_index("idx_fragments_parent", "fragments", ["parent_id"], unique=False)

    op.create_table(
        "reviews",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("fragment_id", sa.String(), nullable=False),
        sa.Column("reviewer_id", sa.String(), nullable=False),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["fragment_id"], ["fragments.id"]),
        sa.ForeignKeyConstraint(["reviewer_id"], ["users.user_id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_reviews_fragment_id", "reviews", ["fragment_id"], unique=False)
    op.create_index("ix_reviews_reviewer_id", "reviews", ["reviewer_id"], unique=False)

    op.create_table(
        "follows",
        sa.Column("follower_id", sa.String(), nullable=False),
        sa.Column("followee_id", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["follower_id"], ["users.user_id"]),
        sa.ForeignKeyConstraint(["followee_id"], ["users.user_id"]),
        sa.PrimaryKeyConstraint("follower_id", "followee_id", name="pk_follows"),
    )
    op.create_index("idx_follows_followee", "follows", ["followee_id"], unique=False)

    op.create_table(
        "likes",
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("fragment_id", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.user_id"]),
        sa.ForeignKeyConstraint(["fragment_id"], ["fragments.id"]),
        sa.PrimaryKeyConstraint("user_id", "fragment_id", name="pk_likes"),
    )
    op.create_index("idx_likes_fragment", "likes", ["fragment_id"], unique=False)

    op.create_table(
        "events",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("kind", sa.String(), nullable=False),
        sa.Column("payload_json", sa.Text(), nullable=False),
        sa.Column("actor_kind", sa.String(), nullable=False),
        sa.Column("actor_id", sa.String(), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_events_kind", "events", ["kind"], unique=False)
    op.create_index("idx_events_kind_timestamp", "events", ["kind", "timestamp"], unique=False)

    op.create_table(
        "tasks",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("command_kind", sa.String(), nullable=False),
        sa.Column("payload_json", sa.Text(), nullable=False),
        sa.Column("actor_kind", sa.String(), nullable=False),
        sa.Column("actor_id", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("worker_id", sa.String(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error_summary", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_tasks_command_kind", "tasks", ["command_kind"], unique=False)
    op.create_index(
        "idx_tasks_status_scheduled",
        "tasks",
        ["status", "scheduled_at"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("idx_tasks_status_scheduled", table_name="tasks")
    op.drop_index("ix_tasks_command_kind", table_name="tasks")
    op.drop_table("tasks")
    op.drop_index("idx_events_kind_timestamp", table_name="events")
    op.drop_index("ix_events_kind", table_name="events")
    op.drop_table("events")
    op.drop_index("idx_likes_fragment", table_name="likes")
    op.drop_table("likes")
    op.drop_index("idx_follows_followee", table_name="follows")
    op.drop_table("follows")
    op.drop_index("ix_reviews_reviewer_id", table_name="reviews")
    op.drop_index("ix_reviews_fragment_id", table_name="reviews")
    op.drop_table("reviews")
    op.drop_index("idx_fragments_parent", table_name="fragments")
    op.drop_index("ix_fragments_state", table_name="fragments")
    op.drop_index("ix_fragments_author_id", table_name="fragments")
    op.drop_table("fragments")
    op.drop_index("ix_users_display_name", table_name="users")
    op.drop_index("ix_users_user_id", table_name="users")
    op.drop_table("users")
