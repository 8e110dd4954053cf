"""Helpers for user lookups and the per-user counters touched by post actions."""
from __future__ import annotations

from collections.abc import Iterable
from typing import Literal

from sqlalchemy import or_
from sqlalchemy.orm import Session

from forum_stage.core.action_types import SYSTEM_USER_ID, TrustLevel
from forum_stage.db.time import utctoday
from forum_stage.models.user import GivenDailyLike, User, UserStat

__all__ = [
    "get_user",
    "get_system_user",
    "staff_user_ids",
    "increment_flag_stat",
    "increment_given_daily_likes",
    "decrement_given_daily_likes",
]


def get_user(db: Session, user_id: int) -> User | None:
    """Return a single user by primary key."""
    return db.query(User).filter(User.id == user_id).first()


def get_system_user(db: Session) -> User:
    """Return the account that performs automatic actions, creating it if needed."""
    user = db.get(User, SYSTEM_USER_ID)
    if user is None:
        user = User(
            id=SYSTEM_USER_ID,
            username="system",
            trust_level=int(TrustLevel.LEADER),
            admin=True,
            moderator=True,
        )
        db.add(user)
        db.flush()
    return user


def staff_user_ids(db: Session) -> list[int]:
    """Return ids of every moderator and admin, excluding the system user."""
    rows = (
        db.query(User.id)
        .filter(or_(User.moderator.is_(True), User.admin.is_(True)), User.id > 0)
        .order_by(User.id)
        .all()
    )
    return [row[0] for row in rows]


def increment_flag_stat(
    db: Session,
    user_ids: Iterable[int],
    column: Literal["flags_agreed", "flags_disagreed"],
) -> None:
    """Add one to ``column`` for each user id (duplicates count once per occurrence)."""
    for user_id in user_ids:
        stat = db.get(UserStat, user_id)
        if stat is None:
            stat = UserStat(user_id=user_id, flags_agreed=0, flags_disagreed=0)
            db.add(stat)
        setattr(stat, column, (getattr(stat, column) or 0) + 1)
    db.flush()


def _daily_like_row(db: Session, user_id: int) -> GivenDailyLike | None:
    return db.get(GivenDailyLike, (user_id, utctoday()))


def increment_given_daily_likes(db: Session, user_id: int) -> int:
    row = _daily_like_row(db, user_id)
    if row is None:
        row = GivenDailyLike(user_id=user_id, given_date=utctoday(), likes_given=0)
        db.add(row)
    row.likes_given += 1
    db.flush()
    return row.likes_given


def decrement_given_daily_likes(db: Session, user_id: int) -> int:
    row = _daily_like_row(db, user_id)
    if row is None:
        return 0
    row.likes_given = max(row.likes_given - 1, 0)
    db.flush()
    return row.likes_given
