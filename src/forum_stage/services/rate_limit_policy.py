"""Per-user quotas for post actions, scaled by trust level."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

from forum_stage.core.action_types import ActionType, TrustLevel, is_flag
from forum_stage.core.settings import Settings, settings
from forum_stage.models import Post, User
from forum_stage.services.cache import KeyValueStore
from forum_stage.services.rate_limiter import RateLimiter

ONE_DAY: Final[int] = 86_400


@dataclass(frozen=True)
class RateRule:
    """Limit handed to the rate limiter: ``limit`` performances of ``key`` per ``window``."""

    key: str
    limit: int
    window: int


def _quota_kind(action_type: int) -> str | None:
    if action_type == ActionType.LIKE:
        return "like"
    if action_type == ActionType.BOOKMARK:
        return "bookmark"
    if is_flag(action_type):
        return "flag"
    return None


def allowed_rate(user: User, action_type: int, config: Settings | None = None) -> RateRule | None:
    """Return the daily quota for ``action_type``, or None for unlimited types.

    Likes from trust level 2 and up get the configured multiplier for their
    level; multipliers below 1.0 never reduce the base quota.
    """
    config = config or settings
    kind = _quota_kind(action_type)
    if kind is None:
        return None

    limit = int(getattr(config, f"max_{kind}s_per_day"))
    trust_level = user.trust_level or 0
    if kind == "like" and trust_level >= TrustLevel.MEMBER:
        limit = int(limit * config.likes_multiplier_for(trust_level))

    return RateRule(key=f"create_{kind}", limit=limit, window=ONE_DAY)


class RateLimitPolicy:
    """Builds the limiters guarding ``act`` and ``remove_act``."""

    def __init__(self, store: KeyValueStore, config: Settings | None = None) -> None:
        self.store = store
        self.config = config or settings

    def _limiter(self, user: User, rule: RateRule) -> RateLimiter:
        return RateLimiter(
            self.store,
            user,
            rule.key,
            rule.limit,
            rule.window,
            enabled=self.config.rate_limits_enabled,
            apply_to_staff=self.config.rate_limit_staff,
        )

    def daily_limiter(self, user: User, action_type: int) -> RateLimiter | None:
        """Return the daily quota limiter for the action type, if it has one."""
        rule = allowed_rate(user, action_type, self.config)
        if rule is None:
            return None
        return self._limiter(user, rule)

    def burst_rule(self, post: Post, action_type: int) -> RateRule:
        return RateRule(
            key=f"post_action-{post.id}_{int(action_type)}",
            limit=self.config.post_action_burst_limit,
            window=self.config.post_action_burst_window_seconds,
        )

    def limit_action(self, user: User, post: Post, action_type: int) -> None:
        """Blunt rapid double submits on the same post, for every action type.

        Raises:
            RateLimitExceeded: When the burst window is already full.
        """
        self._limiter(user, self.burst_rule(post, action_type)).performed()
