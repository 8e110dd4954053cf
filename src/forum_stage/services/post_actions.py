"""Entry points for acting on posts: like, bookmark, flag, notify, and undo.

``PostActionService`` wires the repository, rate limits, counters,
auto-moderation and dispositions together. It owns the transaction: the
action row is committed first and the side-effect pipeline runs afterwards.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Sequence
from datetime import date, datetime, timedelta

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from forum_stage.core.action_types import (
    AUTO_ACTION_FLAG_TYPE_IDS,
    FLAG_TYPE_IDS,
    MESSAGE_ACTION_TYPES,
    ActionType,
    get_spec,
    is_flag,
)
from forum_stage.core.errors import AlreadyActed, ContentCreationError, MessageCreationFailed
from forum_stage.core.messages import t, truncate_words
from forum_stage.core.settings import Settings, settings
from forum_stage.db.time import utcnow
from forum_stage.models import Post, PostAction, Topic, User
from forum_stage.models.topic import SUBTYPE_NOTIFY_MODERATORS, SUBTYPE_NOTIFY_USER
from forum_stage.repositories.post_action_repo import ActionKey, PostActionRepository
from forum_stage.services.auto_moderation import AutoModerator
from forum_stage.services.broadcast import Publisher, get_publisher
from forum_stage.services.cache import FlaggedCountCache, KeyValueStore, get_store
from forum_stage.services.content import ContentService
from forum_stage.services.counters import CounterEngine
from forum_stage.services.dispositions import FlagDispositionService
from forum_stage.services.events import EventBus, get_event_bus
from forum_stage.services.jobs import JobScheduler
from forum_stage.services.pipeline import ActionChange, SideEffectPipeline
from forum_stage.services.rate_limit_policy import RateLimitPolicy
from forum_stage.services.user_service import (
    decrement_given_daily_likes,
    increment_given_daily_likes,
)

logger = logging.getLogger(__name__)


def _as_date(value: date | str) -> date:
    # SQLite returns DATE() as text
    if isinstance(value, str):
        return date.fromisoformat(value)
    return value


class PostActionService:
    """High level operations on post actions."""

    def __init__(
        self,
        db: Session,
        *,
        store: KeyValueStore,
        publisher: Publisher,
        events: EventBus,
        config: Settings | None = None,
    ) -> None:
        self.db = db
        self.config = config or settings
        self.events = events
        self.repo = PostActionRepository(db)
        self.rate_policy = RateLimitPolicy(store, self.config)
        self.content = ContentService(db)
        self.scheduler = JobScheduler(db)
        self.counters = CounterEngine(
            db, cache=FlaggedCountCache(store), publisher=publisher, config=self.config
        )
        self.moderator = AutoModerator(
            db,
            scheduler=self.scheduler,
            content=self.content,
            events=events,
            config=self.config,
        )
        self.pipeline = SideEffectPipeline(
            db,
            counters=self.counters,
            moderator=self.moderator,
            events=events,
            publisher=publisher,
        )
        self.dispositions = FlagDispositionService(
            db,
            repo=self.repo,
            pipeline=self.pipeline,
            counters=self.counters,
            content=self.content,
            events=events,
            config=self.config,
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def act(
        self,
        user: User,
        post: Post,
        action_type: int,
        *,
        message: str | None = None,
        is_warning: bool = False,
        take_action: bool = False,
        flag_topic: bool = False,
    ) -> PostAction:
        """Record ``user``'s action on ``post`` and run its side effects.

        Raises:
            RateLimitExceeded: The burst limit or the daily quota is used up.
            AlreadyActed: The user already holds this action's slot on the post.
            MessageCreationFailed: The private message for a notify/spam flag failed.
            ValueError: ``action_type`` is unknown.
        """
        action_type = get_spec(action_type).type
        self.rate_policy.limit_action(user, post, action_type)

        topic = self.db.get(Topic, post.topic_id)
        targets_topic = bool(
            flag_topic and is_flag(action_type) and topic is not None and topic.posts_count != 1
        )
        key = ActionKey(user.id, post.id, int(action_type), targets_topic)

        if self.repo.find_slot_holder(key) is not None:
            raise AlreadyActed(
                f"User {user.id} already acted on post {post.id} ({action_type.key})"
            )

        daily = self.rate_policy.daily_limiter(user, action_type)
        if daily is not None:
            daily.performed()

        staff_took_action = bool(take_action and user.staff)
        try:
            related_post_id = self.create_message_for_post_action(
                user, post, action_type, message=message, is_warning=is_warning
            )
            trashed = self.repo.find_trashed(user.id, post.id, action_type)
            if trashed is not None:
                action = self.repo.recover(
                    trashed,
                    staff_took_action=staff_took_action,
                    related_post_id=related_post_id,
                    targets_topic=targets_topic,
                )
                written = True
            else:
                action, written = self.repo.create_or_get_existing(
                    key, staff_took_action=staff_took_action, related_post_id=related_post_id
                )
            if written and action_type == ActionType.LIKE:
                increment_given_daily_likes(self.db, user.id)
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            if daily is not None:
                daily.rollback()
            raise AlreadyActed(
                f"User {user.id} already acted on post {post.id} ({action_type.key})"
            ) from exc
        except Exception:
            self.db.rollback()
            if daily is not None:
                daily.rollback()
            raise

        if not written:
            # Another request won the insert; its row already went through the pipeline.
            if daily is not None:
                daily.rollback()
            return action

        if action.is_flag:
            self.events.trigger("flag_created", action)
        self.pipeline.run(ActionChange(action, created=True))

        if staff_took_action:
            self.dispositions.agree_flags(post, user)
            self.counters.update_counters(action)
            self.db.commit()

        logger.info(
            "User %s acted %s on post %s (action %s)", user.id, action_type.key, post.id, action.id
        )
        return action

    def remove_act(self, user: User, post: Post, action_type: int) -> PostAction | None:
        """Undo ``user``'s action of ``action_type`` on ``post``; no-op when absent."""
        action_type = get_spec(action_type).type
        self.rate_policy.limit_action(user, post, action_type)

        action = self.repo.find_live(user.id, post.id, action_type)
        if action is None:
            return None

        self.repo.trash(action, user)
        if action_type == ActionType.LIKE:
            decrement_given_daily_likes(self.db, user.id)
        self.db.commit()

        self.pipeline.run(ActionChange(action))

        if action.staff_took_action:
            self.moderator.unhide_post(post)
            self.db.commit()

        logger.info("User %s removed %s on post %s", user.id, action_type.key, post.id)
        return action

    def copy(self, source: Post, target: Post) -> list[PostAction]:
        """Duplicate every action of ``source`` onto ``target`` and refresh its counters."""
        try:
            copies = self.repo.copy_rows(source.id, target.id)
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise AlreadyActed(
                f"Post {target.id} already holds an action copied from post {source.id}"
            ) from exc
        for action in copies:
            self.counters.update_counters(action)
        self.db.commit()
        return copies

    def create_message_for_post_action(
        self,
        user: User,
        post: Post,
        action_type: int,
        *,
        message: str | None = None,
        is_warning: bool = False,
    ) -> int | None:
        """Open the private message that accompanies a notify or spam flag.

        Returns the id of the message's first post, or None when the action
        does not carry a message.
        """
        if not message or action_type not in MESSAGE_ACTION_TYPES:
            return None

        spec = get_spec(action_type)
        topic = self.db.get(Topic, post.topic_id)
        title = t(
            f"post_action_types.{spec.key}.email_title",
            title=topic.title if topic is not None else "",
        )
        body = t(
            f"post_action_types.{spec.key}.email_body",
            message=message,
            link=f"{self.config.base_url}{post.url}",
        )
        title = truncate_words(title, self.config.max_topic_title_length)

        if action_type in (ActionType.NOTIFY_MODERATORS, ActionType.SPAM):
            recipients = {
                "subtype": SUBTYPE_NOTIFY_MODERATORS,
                "target_group_names": [self.config.moderators_group_name],
            }
        else:
            author = self.db.get(User, post.user_id) if post.user_id is not None else None
            if author is None:
                raise MessageCreationFailed(f"Post {post.id} has no author to notify")
            recipients = {"subtype": SUBTYPE_NOTIFY_USER, "target_usernames": [author.username]}

        try:
            related = self.content.create_private_message(
                user, title=title, raw=body, is_warning=is_warning, **recipients
            )
        except ContentCreationError as exc:
            raise MessageCreationFailed(str(exc)) from exc
        return related.id

    # ------------------------------------------------------------------
    # Dispositions
    # ------------------------------------------------------------------

    def agree_flags(self, post: Post, moderator: User, delete_post: bool = False) -> list[PostAction]:
        return self.dispositions.agree_flags(post, moderator, delete_post)

    def clear_flags(self, post: Post, moderator: User) -> list[PostAction]:
        return self.dispositions.clear_flags(post, moderator)

    def defer_flags(self, post: Post, moderator: User, delete_post: bool = False) -> list[PostAction]:
        return self.dispositions.defer_flags(post, moderator, delete_post)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def counts_for(
        self, posts: Sequence[Post], user: User | None
    ) -> dict[int, dict[int, PostAction]]:
        """Map post id -> action type -> the user's non-deleted action."""
        if not posts or user is None:
            return {}
        result: dict[int, dict[int, PostAction]] = {}
        for action in self.repo.for_posts([post.id for post in posts], user_id=user.id):
            result.setdefault(action.post_id, {})[action.post_action_type_id] = action
        return result

    def active_flag_counts_for(
        self, posts: Sequence[Post]
    ) -> dict[int, dict[int, list[PostAction]]]:
        """Map post id -> flag type -> undisposed, untrashed flags."""
        if not posts:
            return {}
        rows = (
            self.db.query(PostAction)
            .filter(
                PostAction.post_id.in_([post.id for post in posts]),
                PostAction.post_action_type_id.in_(FLAG_TYPE_IDS),
                PostAction.deleted_at.is_(None),
                PostAction.agreed_at.is_(None),
                PostAction.disagreed_at.is_(None),
                PostAction.deferred_at.is_(None),
            )
            .order_by(PostAction.id)
            .all()
        )
        result: dict[int, dict[int, list[PostAction]]] = {}
        for action in rows:
            by_type = result.setdefault(action.post_id, defaultdict(list))
            by_type[action.post_action_type_id].append(action)
        return {post_id: dict(by_type) for post_id, by_type in result.items()}

    def lookup_for(
        self, user: User, topics: Sequence[Topic], action_type: int
    ) -> dict[int, list[int]]:
        """Map topic id -> post numbers the user acted on with ``action_type``."""
        if not topics:
            return {}
        rows = (
            self.db.query(Post.topic_id, Post.post_number)
            .join(PostAction, PostAction.post_id == Post.id)
            .filter(
                Post.deleted_at.is_(None),
                PostAction.deleted_at.is_(None),
                PostAction.post_action_type_id == int(action_type),
                PostAction.user_id == user.id,
                Post.topic_id.in_([topic.id for topic in topics]),
            )
            .order_by(Post.topic_id, Post.post_number)
            .all()
        )
        result: dict[int, list[int]] = {}
        for topic_id, post_number in rows:
            result.setdefault(topic_id, []).append(post_number)
        return result

    def flag_counts_for(self, post_id: int) -> tuple[int, int]:
        return self.moderator.flag_counts_for(post_id)

    def flagged_posts_count(self) -> int:
        return self.counters.flagged_posts_count()

    def post_action_type_for_post(self, post_id: int) -> str | None:
        """Key of the first pending, undeleted flag on a post."""
        action = (
            self.db.query(PostAction)
            .filter(
                PostAction.post_id == post_id,
                PostAction.post_action_type_id.in_(FLAG_TYPE_IDS),
                PostAction.deferred_at.is_(None),
                PostAction.deleted_at.is_(None),
            )
            .order_by(PostAction.id)
            .first()
        )
        return action.action_type_key if action is not None else None

    def flag_count_by_date(self, start: datetime, end: datetime) -> dict[date, int]:
        """Daily counts of standard (non-custom) flags created in ``[start, end]``."""
        day = func.date(PostAction.created_at)
        rows = (
            self.db.query(day, func.count(PostAction.id))
            .filter(
                PostAction.created_at >= start,
                PostAction.created_at <= end,
                PostAction.post_action_type_id.in_(AUTO_ACTION_FLAG_TYPE_IDS),
            )
            .group_by(day)
            .order_by(day)
            .all()
        )
        return {_as_date(value): count for value, count in rows}

    def count_per_day_for_type(
        self,
        action_type: int,
        *,
        since_days_ago: int = 30,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> dict[date, int]:
        """Daily counts of ``action_type`` including trashed rows."""
        day = func.date(PostAction.created_at)
        start = start_date or utcnow() - timedelta(days=since_days_ago)
        query = self.db.query(day, func.count(PostAction.id)).filter(
            PostAction.post_action_type_id == int(action_type),
            PostAction.created_at >= start,
        )
        if end_date is not None:
            query = query.filter(PostAction.created_at <= end_date)
        rows = query.group_by(day).order_by(day).all()
        return {_as_date(value): count for value, count in rows}


def build_post_action_service(
    db: Session,
    *,
    store: KeyValueStore | None = None,
    publisher: Publisher | None = None,
    events: EventBus | None = None,
    config: Settings | None = None,
) -> PostActionService:
    """Create a service bound to ``db`` using the process-wide backends by default."""
    return PostActionService(
        db,
        store=store or get_store(),
        publisher=publisher or get_publisher(),
        events=events or get_event_bus(),
        config=config,
    )
