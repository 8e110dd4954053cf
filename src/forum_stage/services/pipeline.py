"""Ordered side effects that run after a post action row is committed."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy.orm import Session

from forum_stage.core.action_types import ActionType
from forum_stage.models import Post, PostAction, UserAction
from forum_stage.models.user_action import (
    USER_ACTION_BOOKMARK,
    USER_ACTION_LIKE,
    USER_ACTION_WAS_LIKED,
)
from forum_stage.services.auto_moderation import AutoModerator
from forum_stage.services.broadcast import Publisher
from forum_stage.services.counters import CounterEngine
from forum_stage.services.events import EventBus

logger = logging.getLogger(__name__)


def topic_channel(topic_id: int) -> str:
    return f"/topic/{topic_id}"


@dataclass
class ActionChange:
    """The action that changed and whether its row was just inserted."""

    action: PostAction
    created: bool = False


Stage = Callable[[ActionChange], None]


class SideEffectPipeline:
    """Runs named stages in order, committing after each one.

    A failing stage is rolled back and logged; the action itself and the
    remaining stages are unaffected.
    """

    def __init__(
        self,
        db: Session,
        *,
        counters: CounterEngine,
        moderator: AutoModerator,
        events: EventBus,
        publisher: Publisher,
    ) -> None:
        self.db = db
        self.counters = counters
        self.moderator = moderator
        self.events = events
        self.publisher = publisher
        self.stages: list[tuple[str, Stage]] = [
            ("update_counters", self.update_counters),
            ("enforce_rules", self.enforce_rules),
            ("log_user_action", self.log_user_action),
            ("notify", self.notify),
            ("publish_change", self.publish_change),
        ]

    def run(self, change: ActionChange) -> list[str]:
        """Execute every stage; returns the names of the stages that failed."""
        action_id = change.action.id
        failed: list[str] = []
        for name, stage in self.stages:
            try:
                stage(change)
                self.db.commit()
            except Exception:
                self.db.rollback()
                logger.exception("Stage %s failed for post action %s", name, action_id)
                failed.append(name)
        return failed

    def update_counters(self, change: ActionChange) -> None:
        self.counters.update_counters(change.action)

    def enforce_rules(self, change: ActionChange) -> None:
        action = change.action
        if action.is_flag and action.deleted_at is None:
            self.moderator.enforce(action)

    def log_user_action(self, change: ActionChange) -> None:
        """Mirror likes and bookmarks into the activity stream."""
        action = change.action
        if not (action.is_like or action.is_bookmark):
            return
        post = self.db.get(Post, action.post_id)
        if post is None:
            return

        entries = []
        if action.is_like:
            entries.append((USER_ACTION_LIKE, action.user_id))
            if post.user_id is not None:
                entries.append((USER_ACTION_WAS_LIKED, post.user_id))
        else:
            entries.append((USER_ACTION_BOOKMARK, action.user_id))

        for user_action_type, owner_id in entries:
            existing = (
                self.db.query(UserAction)
                .filter(
                    UserAction.action_type == user_action_type,
                    UserAction.user_id == owner_id,
                    UserAction.acting_user_id == action.user_id,
                    UserAction.target_post_id == post.id,
                )
                .first()
            )
            if action.deleted_at is not None:
                if existing is not None:
                    self.db.delete(existing)
            elif existing is None:
                self.db.add(
                    UserAction(
                        action_type=user_action_type,
                        user_id=owner_id,
                        acting_user_id=action.user_id,
                        target_topic_id=post.topic_id,
                        target_post_id=post.id,
                    )
                )
        self.db.flush()

    def notify(self, change: ActionChange) -> None:
        action = change.action
        if action.deleted_at is not None:
            self.events.trigger("post_action_deleted", action)
        elif change.created:
            self.events.trigger("post_action_created", action)

    def publish_change(self, change: ActionChange) -> None:
        """Tell clients watching the topic that the post's actions changed."""
        action = change.action
        if not (action.post_action_type_id == ActionType.LIKE or action.is_flag):
            return
        topic_id = self.db.query(Post.topic_id).filter(Post.id == action.post_id).scalar()
        if topic_id is None:
            return
        self.publisher.publish(
            topic_channel(topic_id), {"type": "acted", "post_id": action.post_id}
        )
