"""Bulk resolution of the pending flags on a post by staff or the system user."""

from __future__ import annotations

import logging
from typing import Literal

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from forum_stage.core.action_types import (
    AUTO_ACTION_FLAG_TYPE_IDS,
    FLAG_TYPE_IDS,
    ActionType,
    get_spec,
)
from forum_stage.core.messages import t
from forum_stage.core.settings import Settings, settings
from forum_stage.db.time import utcnow
from forum_stage.models import Post, PostAction, Topic, User
from forum_stage.models.post import POST_TYPE_REGULAR
from forum_stage.repositories.post_action_repo import PostActionRepository
from forum_stage.services.content import ContentService
from forum_stage.services.counters import CounterEngine
from forum_stage.services.events import EventBus
from forum_stage.services.pipeline import ActionChange, SideEffectPipeline
from forum_stage.services.user_service import increment_flag_stat

logger = logging.getLogger(__name__)

Disposition = Literal["agreed", "disagreed", "deferred"]


class FlagDispositionService:
    """Moves every active flag on a post from pending to agreed, disagreed or deferred.

    Flags are resolved one after another; each one is committed before its
    side effects run, so an interrupted batch leaves a consistent prefix.
    """

    def __init__(
        self,
        db: Session,
        *,
        repo: PostActionRepository,
        pipeline: SideEffectPipeline,
        counters: CounterEngine,
        content: ContentService,
        events: EventBus,
        config: Settings | None = None,
    ) -> None:
        self.db = db
        self.repo = repo
        self.pipeline = pipeline
        self.counters = counters
        self.content = content
        self.events = events
        self.config = config or settings

    def agree_flags(
        self, post: Post, moderator: User, delete_post: bool = False
    ) -> list[PostAction]:
        actions = self.repo.active_for_post(post.id, FLAG_TYPE_IDS)
        confirmed_spam = False
        for action in actions:
            action.agreed_at = utcnow()
            action.agreed_by_id = moderator.id
            self._resolve(action, moderator, "agreed", delete_post)
            if action.post_action_type_id == ActionType.SPAM:
                confirmed_spam = True

        increment_flag_stat(self.db, [action.user_id for action in actions], "flags_agreed")
        if delete_post:
            self.delete_post(post, moderator)
        self.db.commit()

        if confirmed_spam:
            self.events.trigger("confirmed_spam_post", post)
        if actions:
            self.events.trigger("flag_reviewed", post)
            self.events.trigger("flag_agreed", actions[0])
        self._finish(post, moderator, "agreed", len(actions))
        return actions

    def clear_flags(self, post: Post, moderator: User) -> list[PostAction]:
        """Disagree with the flags on a post and zero the resolved flag counters.

        The system user only clears flags that can hide posts on their own.
        """
        type_ids = AUTO_ACTION_FLAG_TYPE_IDS if moderator.is_system_user else FLAG_TYPE_IDS
        actions = self.repo.active_for_post(post.id, type_ids)
        for action in actions:
            action.disagreed_at = utcnow()
            action.disagreed_by_id = moderator.id
            self._resolve(action, moderator, "disagreed")

        increment_flag_stat(self.db, [action.user_id for action in actions], "flags_disagreed")

        reset = {
            column: 0
            for column in (get_spec(type_id).counter_column for type_id in type_ids)
            if column
        }
        self.db.query(Post).filter(Post.id == post.id).update(reset)
        self.db.commit()

        if actions:
            self.events.trigger("flag_reviewed", post)
            self.events.trigger("flag_disagreed", actions[0])
        self._finish(post, moderator, "disagreed", len(actions))
        return actions

    def defer_flags(
        self, post: Post, moderator: User, delete_post: bool = False
    ) -> list[PostAction]:
        actions = self.repo.active_for_post(post.id, FLAG_TYPE_IDS)
        for action in actions:
            action.deferred_at = utcnow()
            action.deferred_by_id = moderator.id
            self._resolve(action, moderator, "deferred", delete_post)

        if delete_post:
            self.delete_post(post, moderator)
        self.db.commit()

        if actions:
            self.events.trigger("flag_reviewed", post)
            self.events.trigger("flag_deferred", actions[0])
        self._finish(post, moderator, "deferred", len(actions))
        return actions

    def _resolve(
        self,
        action: PostAction,
        moderator: User,
        disposition: Disposition,
        delete_post: bool = False,
    ) -> None:
        self.db.commit()
        self.pipeline.run(ActionChange(action))
        self.add_moderator_post_if_needed(action, moderator, disposition, delete_post)

    def _finish(self, post: Post, moderator: User, disposition: str, resolved: int) -> None:
        self.counters.update_flagged_posts_count()
        self.db.commit()
        logger.info(
            "User %s %s %s flag(s) on post %s", moderator.id, disposition, resolved, post.id
        )

    def add_moderator_post_if_needed(
        self,
        action: PostAction,
        moderator: User,
        disposition: Disposition,
        delete_post: bool = False,
    ) -> Post | None:
        """Answer the flag's private message unless staff already spoke there."""
        if not self.config.auto_respond_to_flag_actions:
            return None
        if action.related_post_id is None:
            return None
        related_post = self.db.get(Post, action.related_post_id)
        if related_post is None:
            return None
        topic = self.db.get(Topic, related_post.topic_id)
        if topic is None or self.staff_already_replied(topic):
            return None

        message_key = f"flags_dispositions.{disposition}"
        if delete_post:
            message_key += "_and_deleted"
        reply = self.content.add_moderator_post(topic, moderator, t(message_key))
        self.db.commit()
        return reply

    def staff_already_replied(self, topic: Topic) -> bool:
        """True when a moderator/admin posted in the topic, or any non-regular post exists."""
        staff_ids = select(User.id).where(or_(User.moderator.is_(True), User.admin.is_(True)))
        return (
            self.db.query(Post.id)
            .filter(
                Post.topic_id == topic.id,
                or_(Post.user_id.in_(staff_ids), Post.post_type != POST_TYPE_REGULAR),
            )
            .first()
            is not None
        )

    def delete_post(self, post: Post, moderator: User) -> None:
        """Soft-delete a post whose flags were upheld."""
        if post.deleted_at is not None:
            return
        post.deleted_at = utcnow()
        post.deleted_by_id = moderator.id
        self.db.flush()
        logger.info("Post %s deleted by %s while resolving flags", post.id, moderator.id)
