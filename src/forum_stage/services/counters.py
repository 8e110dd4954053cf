"""Denormalized counters derived from post action rows.

Every update is a fresh aggregate over the current rows, never a delta, so a
lost update caused by two concurrent requests is repaired by the next action
on the same post.
"""

from __future__ import annotations

import logging

from sqlalchemy import case, func, or_
from sqlalchemy.orm import Session

from forum_stage.core.action_types import FLAG_TYPE_IDS, ActionType, get_spec
from forum_stage.core.settings import Settings, settings
from forum_stage.models import Post, PostAction, Topic, TopicUser, User
from forum_stage.services.broadcast import Publisher
from forum_stage.services.cache import FlaggedCountCache
from forum_stage.services.user_service import staff_user_ids

logger = logging.getLogger(__name__)

FLAGGED_COUNTS_CHANNEL = "/flagged_counts"


class CounterEngine:
    """Recomputes post, topic and queue counters after an action changes."""

    def __init__(
        self,
        db: Session,
        *,
        cache: FlaggedCountCache,
        publisher: Publisher,
        config: Settings | None = None,
    ) -> None:
        self.db = db
        self.cache = cache
        self.publisher = publisher
        self.config = config or settings

    def count_for(self, post_id: int, action_type: int) -> int:
        """Number of live actions of ``action_type`` on a post.

        Trashed rows never count; disagreed flags no longer count either.
        """
        query = self.db.query(func.count(PostAction.id)).filter(
            PostAction.post_id == post_id,
            PostAction.post_action_type_id == int(action_type),
            PostAction.deleted_at.is_(None),
        )
        if get_spec(action_type).is_flag:
            query = query.filter(PostAction.disagreed_at.is_(None))
        return int(query.scalar() or 0)

    def like_score_for(self, post_id: int) -> int:
        """Weighted like total where staff likes count ``staff_like_weight``."""
        weight = case(
            (or_(User.moderator.is_(True), User.admin.is_(True)), self.config.staff_like_weight),
            else_=1,
        )
        score = (
            self.db.query(func.coalesce(func.sum(weight), 0))
            .select_from(PostAction)
            .join(User, User.id == PostAction.user_id)
            .filter(
                PostAction.post_id == post_id,
                PostAction.post_action_type_id == int(ActionType.LIKE),
                PostAction.deleted_at.is_(None),
            )
            .scalar()
        )
        return int(score or 0)

    def update_counters(self, action: PostAction) -> None:
        """Refresh every counter affected by a change to ``action``."""
        spec = get_spec(action.post_action_type_id)
        post_id = action.post_id
        count = self.count_for(post_id, spec.type)

        if spec.type == ActionType.LIKE:
            values = {"like_count": count, "like_score": self.like_score_for(post_id)}
        elif spec.counter_column:
            values = {spec.counter_column: count}
        else:
            values = {}
        if values:
            self.db.query(Post).filter(Post.id == post_id).update(values)

        topic_id = self.db.query(Post.topic_id).filter(Post.id == post_id).scalar()
        if topic_id is not None:
            if spec.type in (ActionType.LIKE, ActionType.BOOKMARK):
                self.update_topic_user_cache(action.user_id, topic_id, spec.type)
            if spec.type == ActionType.LIKE:
                self.update_topic_like_count(topic_id)

        if spec.is_flag:
            self.update_flagged_posts_count()
        self.db.flush()

    def update_topic_like_count(self, topic_id: int) -> int:
        total = (
            self.db.query(func.coalesce(func.sum(Post.like_count), 0))
            .filter(Post.topic_id == topic_id, Post.deleted_at.is_(None))
            .scalar()
        )
        total = int(total or 0)
        self.db.query(Topic).filter(Topic.id == topic_id).update({"like_count": total})
        return total

    def update_topic_user_cache(self, user_id: int, topic_id: int, action_type: int) -> TopicUser:
        """Record whether the user still likes/bookmarks any post of the topic."""
        has_action = (
            self.db.query(PostAction.id)
            .join(Post, Post.id == PostAction.post_id)
            .filter(
                Post.topic_id == topic_id,
                Post.deleted_at.is_(None),
                PostAction.user_id == user_id,
                PostAction.post_action_type_id == int(action_type),
                PostAction.deleted_at.is_(None),
            )
            .first()
            is not None
        )
        topic_user = self.db.get(TopicUser, (user_id, topic_id))
        if topic_user is None:
            topic_user = TopicUser(user_id=user_id, topic_id=topic_id, liked=False, bookmarked=False)
            self.db.add(topic_user)
        if action_type == ActionType.LIKE:
            topic_user.liked = has_action
        else:
            topic_user.bookmarked = has_action
        return topic_user

    def update_flagged_posts_count(self) -> int:
        """Recount posts awaiting flag review, cache it and push it to staff."""
        query = (
            self.db.query(Post.id)
            .join(PostAction, PostAction.post_id == Post.id)
            .join(Topic, Topic.id == Post.topic_id)
            .filter(
                PostAction.post_action_type_id.in_(FLAG_TYPE_IDS),
                PostAction.deleted_at.is_(None),
                PostAction.agreed_at.is_(None),
                PostAction.disagreed_at.is_(None),
                PostAction.deferred_at.is_(None),
                Post.deleted_at.is_(None),
                Topic.deleted_at.is_(None),
                Post.user_id > 0,
            )
            .group_by(Post.id)
        )
        if self.config.min_flags_staff_visibility > 1:
            query = query.having(func.count(PostAction.id) >= self.config.min_flags_staff_visibility)

        total = len(query.all())
        self.cache.write(total)
        self.publisher.publish(
            FLAGGED_COUNTS_CHANNEL, {"total": total}, user_ids=staff_user_ids(self.db)
        )
        logger.debug("Flagged posts count is now %s", total)
        return total

    def flagged_posts_count(self) -> int:
        """Cached queue size; may lag the latest flag change slightly."""
        return self.cache.read()
