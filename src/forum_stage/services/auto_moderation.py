"""Threshold policy that hides flagged posts and closes heavily flagged topics."""

from __future__ import annotations

import logging
from datetime import timedelta

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from forum_stage.core.action_types import (
    AUTO_ACTION_FLAG_TYPE_IDS,
    FLAG_TYPE_IDS,
    ActionType,
    HiddenReason,
    TrustLevel,
    get_spec,
    is_auto_action_flag,
)
from forum_stage.core.messages import t
from forum_stage.core.settings import Settings, settings
from forum_stage.db.time import utcnow
from forum_stage.models import Post, PostAction, Topic, User
from forum_stage.services.content import ContentService
from forum_stage.services.events import EventBus
from forum_stage.services.jobs import JobScheduler
from forum_stage.services.user_service import get_system_user

logger = logging.getLogger(__name__)


class AutoModerator:
    """Applies flag thresholds after a flag is created or changes state."""

    def __init__(
        self,
        db: Session,
        *,
        scheduler: JobScheduler,
        content: ContentService,
        events: EventBus,
        config: Settings | None = None,
    ) -> None:
        self.db = db
        self.scheduler = scheduler
        self.content = content
        self.events = events
        self.config = config or settings

    def enforce(self, action: PostAction) -> None:
        """Run the close and hide rules for the post ``action`` belongs to.

        Hiding is judged from the point of view of the user who raised the flag.
        """
        post = self.db.get(Post, action.post_id)
        flagger = self.db.get(User, action.user_id)
        if post is None or flagger is None:
            return
        topic = self.db.get(Topic, post.topic_id)
        if topic is not None:
            self.auto_close_if_threshold_reached(topic)
        self.auto_hide_if_needed(flagger, post, action.post_action_type_id)

    def flag_counts_for(self, post_id: int) -> tuple[int, int]:
        """Return ``(old_flags, new_flags)`` weighted flag totals for a post.

        Flags where staff took action weigh ``flags_required_to_hide_post``;
        every other flag weighs 1. "Old" flags were disagreed with, "new"
        flags were not. Trashed flags are ignored.
        """
        weight = case(
            (PostAction.staff_took_action.is_(True), self.config.flags_required_to_hide_post),
            else_=1,
        )
        old_flags = func.coalesce(
            func.sum(case((PostAction.disagreed_at.is_not(None), weight), else_=0)), 0
        )
        new_flags = func.coalesce(
            func.sum(case((PostAction.disagreed_at.is_(None), weight), else_=0)), 0
        )
        row = (
            self.db.query(old_flags, new_flags)
            .select_from(PostAction)
            .join(User, User.id == PostAction.user_id)
            .filter(
                PostAction.post_id == post_id,
                PostAction.post_action_type_id.in_(AUTO_ACTION_FLAG_TYPE_IDS),
                PostAction.deleted_at.is_(None),
            )
            .one()
        )
        return int(row[0] or 0), int(row[1] or 0)

    def auto_close_if_threshold_reached(self, topic: Topic | None) -> bool:
        """Close ``topic`` once enough distinct users raised enough active flags.

        Returns True only for the call that actually closed the topic.
        """
        if topic is None or topic.closed:
            return False

        per_user = (
            self.db.query(PostAction.user_id, func.count(PostAction.post_id))
            .join(Post, Post.id == PostAction.post_id)
            .filter(
                Post.topic_id == topic.id,
                PostAction.post_action_type_id.in_(FLAG_TYPE_IDS),
                PostAction.deleted_at.is_(None),
                PostAction.agreed_at.is_(None),
                PostAction.disagreed_at.is_(None),
                PostAction.deferred_at.is_(None),
                PostAction.user_id > 0,
            )
            .group_by(PostAction.user_id)
            .all()
        )

        # we need a minimum number of unique flaggers
        if len(per_user) < self.config.num_flaggers_to_close_topic:
            return False
        # we need a minimum number of flags
        if sum(count for _, count in per_user) < self.config.num_flags_to_close_topic:
            return False

        hours = self.config.num_hours_to_close_topic
        system_user = get_system_user(self.db)
        topic.closed = True
        topic.auto_open_at = utcnow() + timedelta(hours=hours)
        self.content.add_small_action(
            topic, system_user, t("temporarily_closed_due_to_flags", count=hours)
        )
        self.scheduler.enqueue_at(topic.auto_open_at, "open_topic", topic_id=topic.id)
        self.db.flush()

        logger.info(
            "Closed topic %s after %s flaggers raised %s flags",
            topic.id,
            len(per_user),
            sum(count for _, count in per_user),
        )
        self.events.trigger("topic_closed_by_flags", topic)
        return True

    def auto_hide_if_needed(
        self, acting_user: User, post: Post, action_type: int
    ) -> HiddenReason | None:
        """Hide ``post`` when the flag that just landed crosses a hide rule."""
        if post.hidden:
            return None
        author = self.db.get(User, post.user_id) if post.user_id is not None else None
        if not acting_user.staff and author is not None and author.staff:
            return None

        author_level = author.trust_level if author is not None else None
        reason: HiddenReason | None = None

        if (
            action_type == ActionType.SPAM
            and acting_user.has_trust_level(TrustLevel.REGULAR)
            and author_level == TrustLevel.NEWUSER
        ):
            reason = HiddenReason.FLAGGED_BY_TL3_USER
        elif is_auto_action_flag(action_type):
            if acting_user.has_trust_level(TrustLevel.LEADER) and author_level != TrustLevel.LEADER:
                reason = HiddenReason.FLAGGED_BY_TL4_USER
            elif self.config.flags_required_to_hide_post > 0:
                _old_flags, new_flags = self.flag_counts_for(post.id)
                if new_flags >= self.config.flags_required_to_hide_post:
                    reason = self.guess_hide_reason(post)

        if reason is not None:
            self.hide_post(post, action_type, reason)
        return reason

    @staticmethod
    def guess_hide_reason(post: Post) -> HiddenReason:
        if post.hidden_at is not None:
            return HiddenReason.FLAG_THRESHOLD_REACHED_AGAIN
        return HiddenReason.FLAG_THRESHOLD_REACHED

    def hide_post(
        self, post: Post, action_type: int, reason: HiddenReason | None = None
    ) -> None:
        """Hide a post, hide its topic when nothing visible is left, and tell the author."""
        if post.hidden:
            return

        reason = reason or self.guess_hide_reason(post)
        hiding_again = post.hidden_at is not None

        post.hidden = True
        post.hidden_at = utcnow()
        post.hidden_reason_id = int(reason)
        self.db.flush()

        still_visible = (
            self.db.query(Post.id)
            .filter(
                Post.topic_id == post.topic_id,
                Post.hidden.is_(False),
                Post.deleted_at.is_(None),
            )
            .first()
        )
        if still_visible is None:
            self.db.query(Topic).filter(Topic.id == post.topic_id).update({"visible": False})

        if post.user_id is not None and self.db.get(User, post.user_id) is not None:
            self.scheduler.enqueue_in(
                self.config.hidden_post_notice_delay_seconds,
                "send_system_message",
                user_id=post.user_id,
                message_type="post_hidden_again" if hiding_again else "post_hidden",
                message_options={
                    "url": post.url,
                    "edit_delay": self.config.cooldown_minutes_after_hiding_posts,
                    "flag_reason": f"flag_reasons.{get_spec(action_type).key}",
                },
            )

        logger.info("Hid post %s (reason %s)", post.id, reason.name.lower())
        self.events.trigger("post_hidden", post, reason)

    def unhide_post(self, post: Post) -> None:
        """Make a hidden post and its topic visible again."""
        post.hidden = False
        post.hidden_reason_id = None
        self.db.query(Topic).filter(Topic.id == post.topic_id).update({"visible": True})
        self.db.flush()
