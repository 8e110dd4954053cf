"""Model recording one user's action (like, bookmark, flag, ...) on a post."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, SmallInteger, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from forum_stage.core.action_types import FLAG_TYPE_IDS, ActionType, get_spec, is_flag
from forum_stage.db.session import Base
from forum_stage.db.time import utcnow

# A row holds its uniqueness slot until it is trashed or disagreed with.
_SLOT_HELD = "deleted_at IS NULL AND disagreed_at IS NULL"
_FLAG_SLOT_HELD = (
    f"{_SLOT_HELD} AND post_action_type_id IN ({', '.join(str(i) for i in FLAG_TYPE_IDS)})"
)
_ACTION_SLOT_HELD = (
    f"{_SLOT_HELD} AND post_action_type_id NOT IN ({', '.join(str(i) for i in FLAG_TYPE_IDS)})"
)


class PostAction(Base):
    """Per-user action on a post.

    Rows are never hard-deleted: removal sets ``deleted_at`` and a later
    ``act`` for the same key recovers the row in place.
    """

    __tablename__ = "post_actions"
    __table_args__ = (
        Index("ix_post_actions_post_id", "post_id"),
        Index("ix_post_actions_user_id_type", "user_id", "post_action_type_id"),
        Index(
            "idx_unique_actions",
            "user_id",
            "post_action_type_id",
            "post_id",
            unique=True,
            sqlite_where=text(_ACTION_SLOT_HELD),
            postgresql_where=text(_ACTION_SLOT_HELD),
        ),
        # Every flag flavour shares one slot per (user, post, targets_topic).
        Index(
            "idx_unique_flags",
            "user_id",
            "post_id",
            "targets_topic",
            unique=True,
            sqlite_where=text(_FLAG_SLOT_HELD),
            postgresql_where=text(_FLAG_SLOT_HELD),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    post_id: Mapped[int] = mapped_column(Integer, ForeignKey("posts.id"), nullable=False)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    post_action_type_id: Mapped[int] = mapped_column(SmallInteger, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    deleted_by_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Disposition of a flag; at most one of the three pairs is set.
    agreed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    agreed_by_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    disagreed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    disagreed_by_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    deferred_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    deferred_by_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    targets_topic: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    staff_took_action: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    related_post_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("posts.id"), nullable=True
    )

    post = relationship("Post", foreign_keys=[post_id])
    user = relationship("User", foreign_keys=[user_id])
    related_post = relationship("Post", foreign_keys=[related_post_id])

    @property
    def disposition(self) -> str | None:
        if self.disagreed_at:
            return "disagreed"
        if self.agreed_at:
            return "agreed"
        if self.deferred_at:
            return "deferred"
        return None

    @property
    def disposed_at(self) -> datetime | None:
        return self.disagreed_at or self.agreed_at or self.deferred_at

    @property
    def disposed_by_id(self) -> int | None:
        return self.disagreed_by_id or self.agreed_by_id or self.deferred_by_id

    @property
    def action_type(self) -> ActionType:
        return ActionType(self.post_action_type_id)

    @property
    def action_type_key(self) -> str:
        return get_spec(self.post_action_type_id).key

    @property
    def is_like(self) -> bool:
        return self.post_action_type_id == ActionType.LIKE

    @property
    def is_bookmark(self) -> bool:
        return self.post_action_type_id == ActionType.BOOKMARK

    @property
    def is_flag(self) -> bool:
        return is_flag(self.post_action_type_id)

    @property
    def is_private_message(self) -> bool:
        return self.post_action_type_id in (ActionType.NOTIFY_USER, ActionType.NOTIFY_MODERATORS)

    def reset_disposition(self) -> None:
        self.agreed_at = self.agreed_by_id = None
        self.disagreed_at = self.disagreed_by_id = None
        self.deferred_at = self.deferred_by_id = None
