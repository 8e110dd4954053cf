"""SQLAlchemy models for the Forum Stage application."""

from .deferred_job import DeferredJob
from .post import Post
from .post_action import PostAction
from .topic import Topic, TopicUser
from .user import GivenDailyLike, User, UserStat
from .user_action import UserAction

__all__ = [
    "DeferredJob",
    "Post",
    "PostAction",
    "Topic", "TopicUser",
    "GivenDailyLike", "User", "UserStat",
    "UserAction",
]
