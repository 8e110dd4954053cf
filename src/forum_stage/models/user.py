"""SQLAlchemy models for user accounts and their moderation statistics."""

from __future__ import annotations

from datetime import date

from sqlalchemy import Boolean, Date, ForeignKey, Integer, SmallInteger, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from forum_stage.core.action_types import SYSTEM_USER_ID, TrustLevel
from forum_stage.db.session import Base


class User(Base):
    """Forum account; trust level and staff flags drive moderation authority."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    trust_level: Mapped[int] = mapped_column(
        SmallInteger, nullable=False, default=int(TrustLevel.NEWUSER)
    )
    moderator: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    admin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    stat: Mapped[UserStat] = relationship(
        "UserStat",
        back_populates="user",
        cascade="all, delete-orphan",
        uselist=False,
    )

    @property
    def staff(self) -> bool:
        """Return True for moderators and admins."""
        return bool(self.moderator or self.admin)

    @property
    def is_system_user(self) -> bool:
        return self.id == SYSTEM_USER_ID

    def has_trust_level(self, level: int) -> bool:
        """Return True if the user is at ``level`` or above; staff always qualify."""
        return self.staff or (self.trust_level or 0) >= int(level)


class UserStat(Base):
    """Per-user counters kept separate from identity metadata."""

    __tablename__ = "user_stats"

    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    flags_agreed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    flags_disagreed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    user: Mapped[User] = relationship("User", back_populates="stat")


class GivenDailyLike(Base):
    """Number of likes a user handed out on a calendar day."""

    __tablename__ = "given_daily_likes"

    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    given_date: Mapped[date] = mapped_column(Date, primary_key=True)
    likes_given: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
