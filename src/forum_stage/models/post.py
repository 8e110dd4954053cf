"""SQLAlchemy models for posts and their denormalized action counters."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, SmallInteger, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from forum_stage.db.session import Base
from forum_stage.db.time import utcnow

POST_TYPE_REGULAR = 1
POST_TYPE_MODERATOR_ACTION = 2
POST_TYPE_SMALL_ACTION = 3
POST_TYPE_WHISPER = 4


class Post(Base):
    """Primary content entity produced by users.

    Action counters are denormalized here and rebuilt from ``post_actions``
    whenever an action on the post changes.
    """

    __tablename__ = "posts"
    __table_args__ = (Index("ix_posts_topic_id", "topic_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    topic_id: Mapped[int] = mapped_column(Integer, ForeignKey("topics.id"), nullable=False)
    user_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("users.id"), nullable=True)
    post_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    raw: Mapped[str] = mapped_column(Text, nullable=False)
    post_type: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=POST_TYPE_REGULAR)

    # Moderation visibility; hidden_at survives unhide so re-hiding is detectable.
    hidden: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    hidden_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    hidden_reason_id: Mapped[int | None] = mapped_column(SmallInteger, nullable=True)

    like_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    like_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    bookmark_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    off_topic_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    inappropriate_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    spam_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    notify_moderators_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    notify_user_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    deleted_by_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    topic = relationship("Topic", lazy="joined")
    user = relationship("User", lazy="joined")

    @property
    def url(self) -> str:
        return f"/t/{self.topic_id}/{self.post_number}"
