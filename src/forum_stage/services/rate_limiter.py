"""Sliding-window rate limiter keyed by (user, action key).

Each limiter keeps the timestamps of the last ``max_count`` performances in a
list on the shared store; an action is allowed when fewer than ``max_count``
are recorded or the oldest one has left the window.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from forum_stage.core.errors import RateLimitExceeded
from forum_stage.models import User
from forum_stage.services.cache import KeyValueStore

logger = logging.getLogger(__name__)


class RateLimiter:
    """Limit ``user`` to ``max_count`` performances of ``key`` per ``secs`` seconds."""

    def __init__(
        self,
        store: KeyValueStore,
        user: User,
        key: str,
        max_count: int,
        secs: int,
        *,
        enabled: bool = True,
        apply_to_staff: bool = False,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.user = user
        self.key = key
        self.max_count = int(max_count)
        self.secs = int(secs)
        self._enabled = enabled
        self._apply_to_staff = apply_to_staff
        self._clock = clock

    @property
    def prefix(self) -> str:
        return f"rate-limit:{self.user.id}:{self.key}"

    def _limited(self) -> bool:
        if not self._enabled:
            return False
        if self.user.staff and not self._apply_to_staff:
            return False
        return True

    def _timestamps(self) -> list[float]:
        return [float(value) for value in self.store.list_range(self.prefix)]

    def _is_under_limit(self, now: float) -> bool:
        if self.max_count <= 0:
            return False
        timestamps = self._timestamps()
        if len(timestamps) < self.max_count:
            return True
        return now - timestamps[self.max_count - 1] >= self.secs

    def seconds_to_wait(self) -> int:
        if self.max_count <= 0:
            return self.secs
        timestamps = self._timestamps()
        if len(timestamps) < self.max_count:
            return 0
        return max(int(self.secs - (self._clock() - timestamps[self.max_count - 1])), 0)

    def can_perform(self) -> bool:
        if not self._limited():
            return True
        return self._is_under_limit(self._clock())

    def performed(self) -> None:
        """Record one performance or raise :class:`RateLimitExceeded`."""
        if not self._limited():
            return
        now = self._clock()
        if not self._is_under_limit(now):
            wait = self.seconds_to_wait()
            logger.info("Rate limit %s hit by user %s (retry in %ss)", self.key, self.user.id, wait)
            raise RateLimitExceeded(wait, key=self.key)
        self.store.list_push_trim(self.prefix, repr(now), self.max_count, self.secs * 2)

    def rollback(self) -> None:
        """Forget the most recent performance, e.g. when the action failed later."""
        if not self._limited():
            return
        self.store.list_pop_head(self.prefix)

    def remaining(self) -> int:
        if not self._limited():
            return self.max_count
        now = self._clock()
        recent = [ts for ts in self._timestamps() if now - ts < self.secs]
        return max(self.max_count - len(recent), 0)
