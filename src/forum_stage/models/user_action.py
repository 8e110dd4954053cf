"""Activity log entries shown on user profiles."""

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, SmallInteger
from sqlalchemy.orm import Mapped, mapped_column

from forum_stage.db.session import Base
from forum_stage.db.time import utcnow

USER_ACTION_LIKE = 1
USER_ACTION_WAS_LIKED = 2
USER_ACTION_BOOKMARK = 3


class UserAction(Base):
    """One line of a user's activity stream derived from a post action."""

    __tablename__ = "user_actions"
    __table_args__ = (
        Index(
            "idx_unique_user_actions",
            "action_type",
            "user_id",
            "acting_user_id",
            "target_post_id",
            unique=True,
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    action_type: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    # Owner of the stream entry; for WAS_LIKED this is the post author.
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    acting_user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    target_topic_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    target_post_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
