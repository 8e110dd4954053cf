# src/forum_stage/services/__init__.py
"""Business logic services for post actions and flag moderation."""

from .auto_moderation import AutoModerator
from .counters import CounterEngine
from .dispositions import FlagDispositionService
from .pipeline import ActionChange, SideEffectPipeline
from .post_actions import PostActionService, build_post_action_service
from .rate_limit_policy import RateLimitPolicy, RateRule, allowed_rate

__all__ = [
    "ActionChange",
    "AutoModerator",
    "CounterEngine",
    "FlagDispositionService",
    "PostActionService",
    "RateLimitPolicy",
    "RateRule",
    "SideEffectPipeline",
    "allowed_rate",
    "build_post_action_service",
]
