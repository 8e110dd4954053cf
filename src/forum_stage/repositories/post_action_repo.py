"""Data access helpers for post action rows."""
from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from sqlalchemy import inspect
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from forum_stage.core.action_types import FLAG_TYPE_IDS, is_flag
from forum_stage.db.time import utcnow
from forum_stage.models import PostAction, User

__all__ = ["ActionKey", "PostActionRepository"]

logger = logging.getLogger(__name__)

# Columns never carried over when rows are duplicated onto another post.
_NOT_COPIED = frozenset({"id", "post_id"})


@dataclass(frozen=True)
class ActionKey:
    """Identity of the exclusive slot an action occupies."""

    user_id: int
    post_id: int
    post_action_type_id: int
    targets_topic: bool = False

    @property
    def slot_type_ids(self) -> tuple[int, ...]:
        """Types sharing the slot: every flag type for flags, else the type itself."""
        if is_flag(self.post_action_type_id):
            return FLAG_TYPE_IDS
        return (int(self.post_action_type_id),)


class PostActionRepository:
    """Thin wrapper around database access for post actions."""

    def __init__(self, session: Session) -> None:
        """Initialize the repository with a SQLAlchemy session."""
        self.session = session

    def get(self, action_id: int) -> PostAction | None:
        return self.session.get(PostAction, action_id)

    def find_slot_holder(self, key: ActionKey) -> PostAction | None:
        """Return the row currently holding ``key``'s slot (not trashed, not disagreed).

        Only flags are keyed by ``targets_topic``; other types hold one slot
        per (user, post, type).
        """
        query = self.session.query(PostAction).filter(
            PostAction.user_id == key.user_id,
            PostAction.post_id == key.post_id,
            PostAction.post_action_type_id.in_(key.slot_type_ids),
            PostAction.deleted_at.is_(None),
            PostAction.disagreed_at.is_(None),
        )
        if is_flag(key.post_action_type_id):
            query = query.filter(PostAction.targets_topic == bool(key.targets_topic))
        return query.order_by(PostAction.id).first()

    def find_trashed(self, user_id: int, post_id: int, action_type: int) -> PostAction | None:
        return (
            self.session.query(PostAction)
            .filter(
                PostAction.user_id == user_id,
                PostAction.post_id == post_id,
                PostAction.post_action_type_id == int(action_type),
                PostAction.deleted_at.is_not(None),
            )
            .order_by(PostAction.id)
            .first()
        )

    def find_live(self, user_id: int, post_id: int, action_type: int) -> PostAction | None:
        return (
            self.session.query(PostAction)
            .filter(
                PostAction.user_id == user_id,
                PostAction.post_id == post_id,
                PostAction.post_action_type_id == int(action_type),
                PostAction.deleted_at.is_(None),
            )
            .order_by(PostAction.id)
            .first()
        )

    def create_or_get_existing(
        self,
        key: ActionKey,
        *,
        staff_took_action: bool = False,
        related_post_id: int | None = None,
    ) -> tuple[PostAction, bool]:
        """Insert a row for ``key`` or return the row that won a concurrent insert.

        The insert runs inside a savepoint so losing the race at the unique
        indexes leaves the surrounding transaction usable.

        Returns:
            The persisted action and True when this call created it.
        """
        action = PostAction(
            user_id=key.user_id,
            post_id=key.post_id,
            post_action_type_id=int(key.post_action_type_id),
            targets_topic=bool(key.targets_topic),
            staff_took_action=bool(staff_took_action),
            related_post_id=related_post_id,
        )
        try:
            with self.session.begin_nested():
                self.session.add(action)
                self.session.flush()
        except IntegrityError:
            winner = self.find_slot_holder(key)
            if winner is None:
                raise
            logger.info(
                "Concurrent insert for %s lost to post action %s; reusing it", key, winner.id
            )
            return winner, False
        return action, True

    def recover(
        self,
        action: PostAction,
        *,
        staff_took_action: bool = False,
        related_post_id: int | None = None,
        targets_topic: bool = False,
    ) -> PostAction:
        """Bring a trashed row back with fresh attributes instead of inserting a new one."""
        action.deleted_at = None
        action.deleted_by_id = None
        action.reset_disposition()
        action.staff_took_action = bool(staff_took_action)
        action.related_post_id = related_post_id
        action.targets_topic = bool(targets_topic)
        action.updated_at = utcnow()
        self.session.flush()
        return action

    def trash(self, action: PostAction, user: User) -> PostAction:
        action.deleted_at = utcnow()
        action.deleted_by_id = user.id
        self.session.flush()
        return action

    def active_for_post(self, post_id: int, type_ids: Iterable[int]) -> list[PostAction]:
        """Return undisposed, untrashed actions of ``type_ids`` on a post."""
        return (
            self.session.query(PostAction)
            .filter(
                PostAction.post_id == post_id,
                PostAction.post_action_type_id.in_([int(i) for i in type_ids]),
                PostAction.deleted_at.is_(None),
                PostAction.agreed_at.is_(None),
                PostAction.disagreed_at.is_(None),
                PostAction.deferred_at.is_(None),
            )
            .order_by(PostAction.id)
            .all()
        )

    def for_posts(
        self,
        post_ids: Sequence[int],
        *,
        user_id: int | None = None,
        include_deleted: bool = False,
    ) -> list[PostAction]:
        if not post_ids:
            return []
        query = self.session.query(PostAction).filter(PostAction.post_id.in_(list(post_ids)))
        if user_id is not None:
            query = query.filter(PostAction.user_id == user_id)
        if not include_deleted:
            query = query.filter(PostAction.deleted_at.is_(None))
        return query.order_by(PostAction.id).all()

    def copy_rows(self, source_post_id: int, target_post_id: int) -> list[PostAction]:
        """Duplicate every row of the source post onto the target post.

        Live rows whose slot is already held on the target are skipped.
        """
        columns = [
            attr.key
            for attr in inspect(PostAction).column_attrs
            if attr.key not in _NOT_COPIED
        ]
        copies: list[PostAction] = []
        for original in self.for_posts([source_post_id], include_deleted=True):
            if original.deleted_at is None and original.disagreed_at is None:
                holder = self.find_slot_holder(
                    ActionKey(
                        original.user_id,
                        target_post_id,
                        original.post_action_type_id,
                        original.targets_topic,
                    )
                )
                if holder is not None:
                    logger.info(
                        "Not copying post action %s; post %s already has action %s",
                        original.id,
                        target_post_id,
                        holder.id,
                    )
                    continue
            values = {name: getattr(original, name) for name in columns}
            copy = PostAction(post_id=target_post_id, **values)
            self.session.add(copy)
            copies.append(copy)
        self.session.flush()
        return copies
