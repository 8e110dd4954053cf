"""post actions schema

Revision ID: 5b2c1e7d9a40
Revises:
Create Date: 2026-10-18 09:12:44.318207

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "5b2c1e7d9a40"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_SLOT_HELD = "deleted_at IS NULL AND disagreed_at IS NULL"
_FLAG_SLOT_HELD = f"{_SLOT_HELD} AND post_action_type_id IN (3, 4, 7, 8)"
_ACTION_SLOT_HELD = f"{_SLOT_HELD} AND post_action_type_id NOT IN (3, 4, 7, 8)"


def upgrade() -> None:
    """Create users, topics, posts, post actions and their bookkeeping tables."""
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("username", sa.Text(), nullable=False),
        sa.Column("trust_level", sa.SmallInteger(), nullable=False),
        sa.Column("moderator", sa.Boolean(), nullable=False),
        sa.Column("admin", sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("username"),
    )
    op.create_table(
        "user_stats",
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("flags_agreed", sa.Integer(), nullable=False),
        sa.Column("flags_disagreed", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("user_id"),
    )
    op.create_table(
        "given_daily_likes",
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("given_date", sa.Date(), nullable=False),
        sa.Column("likes_given", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("user_id", "given_date"),
    )
    op.create_table(
        "topics",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("archetype", sa.Text(), nullable=False),
        sa.Column("subtype", sa.Text(), nullable=True),
        sa.Column("target_group_names", sa.Text(), nullable=True),
        sa.Column("target_usernames", sa.Text(), nullable=True),
        sa.Column("is_warning", sa.Boolean(), nullable=False),
        sa.Column("closed", sa.Boolean(), nullable=False),
        sa.Column("visible", sa.Boolean(), nullable=False),
        sa.Column("auto_open_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("like_count", sa.Integer(), nullable=False),
        sa.Column("posts_count", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "topic_users",
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("topic_id", sa.Integer(), nullable=False),
        sa.Column("liked", sa.Boolean(), nullable=False),
        sa.Column("bookmarked", sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(["topic_id"], ["topics.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("user_id", "topic_id"),
    )
    op.create_table(
        "posts",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("topic_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("post_number", sa.Integer(), nullable=False),
        sa.Column("raw", sa.Text(), nullable=False),
        sa.Column("post_type", sa.SmallInteger(), nullable=False),
        sa.Column("hidden", sa.Boolean(), nullable=False),
        sa.Column("hidden_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("hidden_reason_id", sa.SmallInteger(), nullable=True),
        sa.Column("like_count", sa.Integer(), nullable=False),
        sa.Column("like_score", sa.Integer(), nullable=False),
        sa.Column("bookmark_count", sa.Integer(), nullable=False),
        sa.Column("off_topic_count", sa.Integer(), nullable=False),
        sa.Column("inappropriate_count", sa.Integer(), nullable=False),
        sa.Column("spam_count", sa.Integer(), nullable=False),
        sa.Column("notify_moderators_count", sa.Integer(), nullable=False),
        sa.Column("notify_user_count", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_by_id", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["topic_id"], ["topics.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_posts_topic_id", "posts", ["topic_id"])
    op.create_table(
        "post_actions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("post_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("post_action_type_id", sa.SmallInteger(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_by_id", sa.Integer(), nullable=True),
        sa.Column("agreed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("agreed_by_id", sa.Integer(), nullable=True),
        sa.Column("disagreed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("disagreed_by_id", sa.Integer(), nullable=True),
        sa.Column("deferred_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deferred_by_id", sa.Integer(), nullable=True),
        sa.Column("targets_topic", sa.Boolean(), nullable=False),
        sa.Column("staff_took_action", sa.Boolean(), nullable=False),
        sa.Column("related_post_id", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["post_id"], ["posts.id"]),
        sa.ForeignKeyConstraint(["related_post_id"], ["posts.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_post_actions_post_id", "post_actions", ["post_id"])
    op.create_index(
        "ix_post_actions_user_id_type", "post_actions", ["user_id", "post_action_type_id"]
    )
    op.create_index(
        "idx_unique_actions",
        "post_actions",
        ["user_id", "post_action_type_id", "post_id"],
        unique=True,
        sqlite_where=sa.text(_ACTION_SLOT_HELD),
        postgresql_where=sa.text(_ACTION_SLOT_HELD),
    )
    op.create_index(
        "idx_unique_flags",
        "post_actions",
        ["user_id", "post_id", "targets_topic"],
        unique=True,
        sqlite_where=sa.text(_FLAG_SLOT_HELD),
        postgresql_where=sa.text(_FLAG_SLOT_HELD),
    )
    op.create_table(
        "user_actions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("action_type", sa.SmallInteger(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("acting_user_id", sa.Integer(), nullable=False),
        sa.Column("target_topic_id", sa.Integer(), nullable=True),
        sa.Column("target_post_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_unique_user_actions",
        "user_actions",
        ["action_type", "user_id", "acting_user_id", "target_post_id"],
        unique=True,
    )
    op.create_table(
        "deferred_jobs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("job_name", sa.Text(), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("run_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.VARCHAR(length=20), nullable=False),
        sa.Column("attempts", sa.SmallInteger(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_deferred_jobs_status_run_at", "deferred_jobs", ["status", "run_at"])


def downgrade() -> None:
    """Drop every table created by this revision."""
    op.drop_index("ix_deferred_jobs_status_run_at", table_name="deferred_jobs")
    op.drop_table("deferred_jobs")
    op.drop_index("idx_unique_user_actions", table_name="user_actions")
    op.drop_table("user_actions")
    op.drop_index("idx_unique_flags", table_name="post_actions")
    op.drop_index("idx_unique_actions", table_name="post_actions")
    op.drop_index("ix_post_actions_user_id_type", table_name="post_actions")
    op.drop_index("ix_post_actions_post_id", table_name="post_actions")
    op.drop_table("post_actions")
    op.drop_index("ix_posts_topic_id", table_name="posts")
    op.drop_table("posts")
    op.drop_table("topic_users")
    op.drop_table("topics")
    op.drop_table("given_daily_likes")
    op.drop_table("user_stats")
    op.drop_table("users")
