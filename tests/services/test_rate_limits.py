# tests/services/test_rate_limits.py
"""Tests for the sliding-window limiter and the post action quotas."""

import pytest

from forum_stage.core.action_types import ActionType, TrustLevel
from forum_stage.core.errors import RateLimitExceeded
from forum_stage.services.rate_limit_policy import ONE_DAY, RateLimitPolicy, allowed_rate
from forum_stage.services.rate_limiter import RateLimiter


class FakeClock:
    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


def test_limiter_blocks_after_max_count(store, test_user, clock) -> None:
    limiter = RateLimiter(store, test_user, "create_like", 2, 60, clock=clock)

    limiter.performed()
    clock.now += 10
    limiter.performed()

    assert limiter.can_perform() is False
    assert limiter.remaining() == 0
    with pytest.raises(RateLimitExceeded) as excinfo:
        limiter.performed()
    assert excinfo.value.available_in == 50
    assert excinfo.value.key == "create_like"


def test_limiter_window_slides(store, test_user, clock) -> None:
    limiter = RateLimiter(store, test_user, "create_like", 2, 60, clock=clock)
    limiter.performed()
    clock.now += 30
    limiter.performed()

    clock.now += 31
    assert limiter.can_perform() is True
    limiter.performed()
    assert limiter.can_perform() is False


def test_limiter_rollback_frees_a_slot(store, test_user, clock) -> None:
    limiter = RateLimiter(store, test_user, "create_flag", 1, 60, clock=clock)
    limiter.performed()

    limiter.rollback()

    assert limiter.can_perform() is True


def test_limiters_are_per_user_and_key(store, test_user, other_user, clock) -> None:
    RateLimiter(store, test_user, "create_like", 1, 60, clock=clock).performed()

    assert RateLimiter(store, other_user, "create_like", 1, 60, clock=clock).can_perform()
    assert RateLimiter(store, test_user, "create_flag", 1, 60, clock=clock).can_perform()


def test_zero_limit_always_blocks(store, test_user, clock) -> None:
    limiter = RateLimiter(store, test_user, "create_flag", 0, 60, clock=clock)

    with pytest.raises(RateLimitExceeded):
        limiter.performed()


def test_staff_exempt_unless_configured(store, moderator, clock) -> None:
    exempt = RateLimiter(store, moderator, "create_like", 1, 60, clock=clock)
    exempt.performed()
    exempt.performed()

    limited = RateLimiter(store, moderator, "create_flag", 1, 60, apply_to_staff=True, clock=clock)
    limited.performed()
    with pytest.raises(RateLimitExceeded):
        limited.performed()


def test_disabled_limiter_never_blocks(store, test_user, clock) -> None:
    limiter = RateLimiter(store, test_user, "create_like", 1, 60, enabled=False, clock=clock)

    limiter.performed()
    limiter.performed()

    assert limiter.remaining() == 1


@pytest.mark.parametrize(
    ("trust_level", "expected"),
    [
        (TrustLevel.NEWUSER, 50),
        (TrustLevel.BASIC, 50),
        (TrustLevel.MEMBER, 75),
        (TrustLevel.REGULAR, 100),
        (TrustLevel.LEADER, 150),
    ],
)
def test_like_quota_scales_with_trust_level(
    make_user, test_settings, trust_level, expected
) -> None:
    rule = allowed_rate(make_user(trust_level), ActionType.LIKE, test_settings)

    assert rule.key == "create_like"
    assert rule.limit == expected
    assert rule.window == ONE_DAY


def test_like_multiplier_below_one_is_clamped(make_user, test_settings) -> None:
    config = test_settings.model_copy(update={"tl3_additional_likes_per_day_multiplier": 0.5})

    rule = allowed_rate(make_user(TrustLevel.REGULAR), ActionType.LIKE, config)

    assert rule.limit == 50


def test_flag_and_bookmark_quotas_ignore_trust_level(make_user, test_settings) -> None:
    leader = make_user(TrustLevel.LEADER)

    flag_rule = allowed_rate(leader, ActionType.NOTIFY_MODERATORS, test_settings)
    bookmark_rule = allowed_rate(leader, ActionType.BOOKMARK, test_settings)

    assert (flag_rule.key, flag_rule.limit) == ("create_flag", 20)
    assert (bookmark_rule.key, bookmark_rule.limit) == ("create_bookmark", 20)


@pytest.mark.parametrize("action_type", [ActionType.VOTE, ActionType.NOTIFY_USER])
def test_other_types_have_no_daily_quota(test_user, test_settings, action_type) -> None:
    assert allowed_rate(test_user, action_type, test_settings) is None


def test_burst_limit_per_post_and_type(store, test_settings, test_user, test_post) -> None:
    policy = RateLimitPolicy(store, test_settings)
    rule = policy.burst_rule(test_post, ActionType.LIKE)
    assert rule.key == f"post_action-{test_post.id}_{int(ActionType.LIKE)}"
    assert (rule.limit, rule.window) == (4, 60)

    for _ in range(4):
        policy.limit_action(test_user, test_post, ActionType.LIKE)
    with pytest.raises(RateLimitExceeded):
        policy.limit_action(test_user, test_post, ActionType.LIKE)

    policy.limit_action(test_user, test_post, ActionType.BOOKMARK)
