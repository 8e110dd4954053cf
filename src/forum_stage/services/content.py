"""Creation of posts and private messages on behalf of the action services.

Only what post actions need is implemented here: private messages opened by
flags, moderator replies to those messages, small-action notes and system
messages sent to authors.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from forum_stage.core.errors import ContentCreationError
from forum_stage.core.messages import t
from forum_stage.models import Post, Topic, User
from forum_stage.models.post import (
    POST_TYPE_MODERATOR_ACTION,
    POST_TYPE_REGULAR,
    POST_TYPE_SMALL_ACTION,
)
from forum_stage.models.topic import ARCHETYPE_PRIVATE_MESSAGE, SUBTYPE_SYSTEM_MESSAGE
from forum_stage.services.user_service import get_system_user

logger = logging.getLogger(__name__)

SYSTEM_MESSAGE_TITLES = {
    "post_hidden": "Post hidden by community flags",
    "post_hidden_again": "Post hidden again by community flags",
}


class ContentService:
    """Writes topics and posts; validation failures raise :class:`ContentCreationError`."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def create_post(
        self,
        topic: Topic,
        user: User,
        raw: str,
        post_type: int = POST_TYPE_REGULAR,
    ) -> Post:
        if not raw or not raw.strip():
            raise ContentCreationError("Post body can't be blank")
        if topic.deleted_at is not None:
            raise ContentCreationError("Topic has been deleted")

        last_number = (
            self.db.query(func.max(Post.post_number)).filter(Post.topic_id == topic.id).scalar()
        )
        post = Post(
            topic_id=topic.id,
            user_id=user.id,
            post_number=(last_number or 0) + 1,
            raw=raw,
            post_type=post_type,
        )
        self.db.add(post)
        topic.posts_count = (topic.posts_count or 0) + 1
        self.db.flush()
        return post

    def create_private_message(
        self,
        user: User,
        *,
        title: str,
        raw: str,
        subtype: str,
        target_group_names: list[str] | None = None,
        target_usernames: list[str] | None = None,
        is_warning: bool = False,
    ) -> Post:
        """Open a private message topic and return its first post."""
        if not title or not title.strip():
            raise ContentCreationError("Title can't be blank")
        if not target_group_names and not target_usernames:
            raise ContentCreationError("A private message needs at least one recipient")

        if target_usernames:
            found = {
                row[0]
                for row in self.db.query(User.username)
                .filter(User.username.in_(target_usernames))
                .all()
            }
            missing = sorted(set(target_usernames) - found)
            if missing:
                raise ContentCreationError(f"Unknown recipients: {', '.join(missing)}")

        topic = Topic(
            title=title,
            user_id=user.id,
            archetype=ARCHETYPE_PRIVATE_MESSAGE,
            subtype=subtype,
            target_group_names=",".join(target_group_names or []) or None,
            target_usernames=",".join(target_usernames or []) or None,
            is_warning=bool(is_warning),
            posts_count=0,
        )
        self.db.add(topic)
        self.db.flush()
        return self.create_post(topic, user, raw)

    def add_moderator_post(self, topic: Topic, moderator: User, raw: str) -> Post:
        return self.create_post(topic, moderator, raw, POST_TYPE_MODERATOR_ACTION)

    def add_small_action(self, topic: Topic, user: User, raw: str) -> Post:
        return self.create_post(topic, user, raw, POST_TYPE_SMALL_ACTION)

    def send_system_message(
        self, recipient: User, message_type: str, message_options: dict[str, Any]
    ) -> Post:
        """Deliver a private message from the system user to ``recipient``."""
        system_user = get_system_user(self.db)
        body_parts = [t(message_options["flag_reason"])] if message_options.get("flag_reason") else []
        body_parts.append(f"[View the post]({message_options.get('url', '')})")
        if message_options.get("edit_delay"):
            body_parts.append(
                f"You can edit the post after {message_options['edit_delay']} minutes."
            )
        post = self.create_private_message(
            system_user,
            title=SYSTEM_MESSAGE_TITLES.get(message_type, message_type),
            raw="\n\n".join(body_parts),
            subtype=SUBTYPE_SYSTEM_MESSAGE,
            target_usernames=[recipient.username],
        )
        logger.info("Sent %s system message to user %s", message_type, recipient.id)
        return post
