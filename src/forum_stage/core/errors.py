"""Exceptions raised by the post action services."""

from __future__ import annotations


class ForumStageError(Exception):
    """Base class for domain errors surfaced to callers."""


class AlreadyActed(ForumStageError):
    """The user already holds an action in the same exclusive slot for this post."""


class RateLimitExceeded(ForumStageError):
    """A rate limit rejected the action before any write took place."""

    def __init__(self, available_in: int, key: str | None = None) -> None:
        self.available_in = max(int(available_in), 1)
        self.key = key
        super().__init__(f"Rate limit exceeded, retry in {self.available_in} seconds")


class ContentCreationError(ForumStageError):
    """The content service refused to create a post or message."""


class MessageCreationFailed(ForumStageError):
    """The side message belonging to an action could not be created."""
