"""SQLAlchemy models for topics and per-user topic state."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from forum_stage.db.session import Base
from forum_stage.db.time import utcnow

ARCHETYPE_REGULAR = "regular"
ARCHETYPE_PRIVATE_MESSAGE = "private_message"

SUBTYPE_NOTIFY_MODERATORS = "notify_moderators"
SUBTYPE_NOTIFY_USER = "notify_user"
SUBTYPE_SYSTEM_MESSAGE = "system_message"


class Topic(Base):
    """Discussion thread grouping posts."""

    __tablename__ = "topics"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    user_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    archetype: Mapped[str] = mapped_column(Text, nullable=False, default=ARCHETYPE_REGULAR)
    subtype: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Private messages address a group and/or usernames; stored comma separated.
    target_group_names: Mapped[str | None] = mapped_column(Text, nullable=True)
    target_usernames: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_warning: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    closed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # False once every post in the topic is hidden.
    visible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    # Set when the topic was closed automatically; the reopen job fires at this time.
    auto_open_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    like_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    posts_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def is_private_message(self) -> bool:
        return self.archetype == ARCHETYPE_PRIVATE_MESSAGE


class TopicUser(Base):
    """Cached per-user flags answering "did I like/bookmark anything here"."""

    __tablename__ = "topic_users"

    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    topic_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("topics.id", ondelete="CASCADE"), primary_key=True
    )
    liked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    bookmarked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
