# tests/services/test_post_action_service.py
"""Tests for acting on posts, undoing actions and the read helpers."""

from datetime import timedelta

import pytest

from forum_stage.core.action_types import ActionType
from forum_stage.core.errors import (
    AlreadyActed,
    ContentCreationError,
    MessageCreationFailed,
    RateLimitExceeded,
)
from forum_stage.db.time import utcnow, utctoday
from forum_stage.models import GivenDailyLike, PostAction, Topic
from forum_stage.models.topic import SUBTYPE_NOTIFY_MODERATORS, SUBTYPE_NOTIFY_USER
from forum_stage.repositories.post_action_repo import ActionKey


def _rows(db_session, post, user=None):
    query = db_session.query(PostAction).filter(PostAction.post_id == post.id)
    if user is not None:
        query = query.filter(PostAction.user_id == user.id)
    return query.all()


def test_like_creates_action(service, db_session, test_user, test_post) -> None:
    action = service.act(test_user, test_post, ActionType.LIKE)

    assert action.id is not None
    assert action.is_like
    assert action.deleted_at is None
    assert action.targets_topic is False
    assert len(_rows(db_session, test_post)) == 1


def test_second_like_raises_already_acted(service, db_session, test_user, test_post) -> None:
    service.act(test_user, test_post, ActionType.LIKE)

    with pytest.raises(AlreadyActed):
        service.act(test_user, test_post, ActionType.LIKE)

    assert len(_rows(db_session, test_post)) == 1


def test_flag_types_share_one_slot(service, db_session, test_user, test_post) -> None:
    service.act(test_user, test_post, ActionType.OFF_TOPIC)

    with pytest.raises(AlreadyActed):
        service.act(test_user, test_post, ActionType.SPAM)

    # Non-flag types are independent of the flag slot.
    service.act(test_user, test_post, ActionType.LIKE)
    assert len(_rows(db_session, test_post)) == 2


def test_topic_flag_uses_separate_slot(
    service, db_session, test_user, topic, author, make_post
) -> None:
    first = make_post(topic, author, "First post")
    make_post(topic, author, "Second post")

    post_flag = service.act(test_user, first, ActionType.INAPPROPRIATE)
    topic_flag = service.act(test_user, first, ActionType.INAPPROPRIATE, flag_topic=True)

    assert post_flag.targets_topic is False
    assert topic_flag.targets_topic is True


def test_flag_topic_on_single_post_topic_targets_post(service, test_user, test_post) -> None:
    action = service.act(test_user, test_post, ActionType.OFF_TOPIC, flag_topic=True)

    assert action.targets_topic is False


def test_flag_topic_does_not_open_a_second_like_slot(
    service, db_session, test_user, topic, author, make_post
) -> None:
    first = make_post(topic, author, "First post")
    make_post(topic, author, "Second post")
    like = service.act(test_user, first, ActionType.LIKE)

    with pytest.raises(AlreadyActed):
        service.act(test_user, first, ActionType.LIKE, flag_topic=True)

    db_session.refresh(first)
    assert like.targets_topic is False
    assert len(_rows(db_session, first, test_user)) == 1
    assert first.like_count == 1


def test_disagreed_flag_frees_slot(service, test_user, moderator, test_post) -> None:
    service.act(test_user, test_post, ActionType.OFF_TOPIC)
    service.clear_flags(test_post, moderator)

    again = service.act(test_user, test_post, ActionType.SPAM)

    assert again.post_action_type_id == ActionType.SPAM


@pytest.mark.parametrize("resolve", ["agree_flags", "defer_flags"])
def test_agreed_or_deferred_flag_keeps_slot(
    service, test_user, moderator, test_post, resolve
) -> None:
    service.act(test_user, test_post, ActionType.OFF_TOPIC)
    getattr(service, resolve)(test_post, moderator)

    with pytest.raises(AlreadyActed):
        service.act(test_user, test_post, ActionType.INAPPROPRIATE)


def test_remove_then_act_recovers_same_row(service, db_session, test_user, test_post) -> None:
    original = service.act(test_user, test_post, ActionType.BOOKMARK)
    service.remove_act(test_user, test_post, ActionType.BOOKMARK)
    db_session.refresh(original)
    assert original.deleted_at is not None
    assert original.deleted_by_id == test_user.id

    recovered = service.act(test_user, test_post, ActionType.BOOKMARK)

    assert recovered.id == original.id
    assert recovered.deleted_at is None
    assert recovered.deleted_by_id is None
    assert len(_rows(db_session, test_post)) == 1


def test_recovered_flag_resets_disposition(
    service, db_session, test_user, moderator, test_post
) -> None:
    original = service.act(test_user, test_post, ActionType.SPAM)
    service.defer_flags(test_post, moderator)
    service.remove_act(test_user, test_post, ActionType.SPAM)

    recovered = service.act(test_user, test_post, ActionType.SPAM)

    assert recovered.id == original.id
    assert recovered.disposition is None
    assert recovered.deferred_at is None
    assert recovered.deferred_by_id is None


def test_remove_act_without_action_is_noop(service, test_user, test_post) -> None:
    assert service.remove_act(test_user, test_post, ActionType.LIKE) is None


def test_create_or_get_existing_returns_winner(service, db_session, test_user, test_post) -> None:
    key = ActionKey(test_user.id, test_post.id, int(ActionType.LIKE))
    winner, created = service.repo.create_or_get_existing(key)
    db_session.commit()

    again, created_again = service.repo.create_or_get_existing(key)

    assert created is True
    assert created_again is False
    assert again.id == winner.id
    assert len(_rows(db_session, test_post)) == 1


def test_act_returns_row_inserted_by_concurrent_request(
    service, db_session, mocker, test_user, test_post
) -> None:
    key = ActionKey(test_user.id, test_post.id, int(ActionType.LIKE))
    winner, _ = service.repo.create_or_get_existing(key)
    db_session.commit()
    # The pre-check runs before the other request's insert becomes visible.
    mocker.patch.object(service.repo, "find_slot_holder", side_effect=[None, winner])
    limiter = service.rate_policy.daily_limiter(test_user, ActionType.LIKE)
    remaining_before = limiter.remaining()

    action = service.act(test_user, test_post, ActionType.LIKE)

    assert action.id == winner.id
    assert len(_rows(db_session, test_post)) == 1
    assert limiter.remaining() == remaining_before


def test_given_daily_likes_follow_like_and_unlike(
    service, db_session, test_user, test_post
) -> None:
    service.act(test_user, test_post, ActionType.LIKE)
    row = db_session.get(GivenDailyLike, (test_user.id, utctoday()))
    assert row.likes_given == 1

    service.remove_act(test_user, test_post, ActionType.LIKE)
    db_session.refresh(row)
    assert row.likes_given == 0


def test_unknown_action_type_is_rejected(service, test_user, test_post) -> None:
    with pytest.raises(ValueError):
        service.act(test_user, test_post, 99)


def test_notify_user_message_opens_private_message(
    service, db_session, test_user, author, test_post
) -> None:
    action = service.act(
        test_user, test_post, ActionType.NOTIFY_USER, message="Please fix the typo"
    )

    assert action.related_post_id is not None
    related = action.related_post
    message_topic = db_session.get(Topic, related.topic_id)
    assert message_topic.is_private_message
    assert message_topic.subtype == SUBTYPE_NOTIFY_USER
    assert message_topic.target_usernames == author.username
    assert "Please fix the typo" in related.raw
    assert test_post.url in related.raw


def test_spam_message_goes_to_moderators(service, db_session, test_user, test_post) -> None:
    action = service.act(test_user, test_post, ActionType.SPAM, message="Selling watches")

    message_topic = db_session.get(Topic, action.related_post.topic_id)
    assert message_topic.subtype == SUBTYPE_NOTIFY_MODERATORS
    assert message_topic.target_group_names == "moderators"


def test_like_ignores_message(service, test_user, test_post) -> None:
    action = service.act(test_user, test_post, ActionType.LIKE, message="nice")

    assert action.related_post_id is None


def test_message_title_is_truncated_at_word_boundary(
    make_service, db_session, test_user, test_post
) -> None:
    service = make_service(max_topic_title_length=30)

    action = service.act(
        test_user, test_post, ActionType.NOTIFY_MODERATORS, message="Look at this"
    )

    title = db_session.get(Topic, action.related_post.topic_id).title
    assert len(title) <= 30
    assert title.endswith("...")


def test_failed_message_aborts_action_and_refunds_quota(
    service, db_session, mocker, test_user, test_post
) -> None:
    mocker.patch.object(
        service.content,
        "create_private_message",
        side_effect=ContentCreationError("no recipients"),
    )
    limiter = service.rate_policy.daily_limiter(test_user, ActionType.SPAM)
    remaining_before = limiter.remaining()

    with pytest.raises(MessageCreationFailed):
        service.act(test_user, test_post, ActionType.SPAM, message="spam!")

    assert _rows(db_session, test_post) == []
    assert limiter.remaining() == remaining_before


def test_already_acted_does_not_consume_quota(service, test_user, test_post) -> None:
    service.act(test_user, test_post, ActionType.LIKE)
    limiter = service.rate_policy.daily_limiter(test_user, ActionType.LIKE)
    remaining_before = limiter.remaining()

    with pytest.raises(AlreadyActed):
        service.act(test_user, test_post, ActionType.LIKE)

    assert limiter.remaining() == remaining_before


def test_fifth_act_within_a_minute_is_rejected(service, test_user, test_post) -> None:
    service.act(test_user, test_post, ActionType.LIKE)
    service.remove_act(test_user, test_post, ActionType.LIKE)
    service.act(test_user, test_post, ActionType.LIKE)
    service.remove_act(test_user, test_post, ActionType.LIKE)

    with pytest.raises(RateLimitExceeded) as excinfo:
        service.act(test_user, test_post, ActionType.LIKE)

    assert excinfo.value.available_in >= 1


def test_daily_like_quota(make_service, test_user, topic, author, make_post) -> None:
    service = make_service(max_likes_per_day=2)
    posts = [make_post(topic, author, f"Post {i}") for i in range(3)]

    service.act(test_user, posts[0], ActionType.LIKE)
    service.act(test_user, posts[1], ActionType.LIKE)

    with pytest.raises(RateLimitExceeded):
        service.act(test_user, posts[2], ActionType.LIKE)


def test_staff_are_exempt_from_daily_quota(make_service, moderator, topic, author, make_post) -> None:
    service = make_service(max_likes_per_day=1)
    posts = [make_post(topic, author, f"Post {i}") for i in range(2)]

    service.act(moderator, posts[0], ActionType.LIKE)
    service.act(moderator, posts[1], ActionType.LIKE)


def test_copy_duplicates_rows_and_counters(
    service, db_session, test_user, other_user, topic, author, test_post, make_post
) -> None:
    service.act(test_user, test_post, ActionType.LIKE)
    service.act(other_user, test_post, ActionType.LIKE)
    service.act(test_user, test_post, ActionType.BOOKMARK)
    target = make_post(topic, author, "Moved post")

    copies = service.copy(test_post, target)

    db_session.refresh(target)
    assert len(copies) == 3
    assert {action.post_id for action in copies} == {target.id}
    assert target.like_count == 2
    assert target.bookmark_count == 1
    assert len(_rows(db_session, test_post)) == 3


def test_copy_skips_slots_already_held_on_target(
    service, db_session, test_user, other_user, topic, author, test_post, make_post
) -> None:
    target = make_post(topic, author, "Moved post")
    service.act(test_user, test_post, ActionType.LIKE)
    service.act(other_user, test_post, ActionType.LIKE)
    service.act(test_user, target, ActionType.LIKE)

    copies = service.copy(test_post, target)

    db_session.refresh(target)
    assert [action.user_id for action in copies] == [other_user.id]
    assert len(_rows(db_session, target, test_user)) == 1
    assert target.like_count == 2
    # The session is still usable after the copy.
    service.act(other_user, target, ActionType.BOOKMARK)


def test_counts_for_maps_user_actions(
    service, test_user, topic, author, test_post, make_post
) -> None:
    second = make_post(topic, author, "Second")
    like = service.act(test_user, test_post, ActionType.LIKE)
    bookmark = service.act(test_user, second, ActionType.BOOKMARK)

    counts = service.counts_for([test_post, second], test_user)

    assert counts[test_post.id][ActionType.LIKE].id == like.id
    assert counts[second.id][ActionType.BOOKMARK].id == bookmark.id
    assert service.counts_for([], test_user) == {}
    assert service.counts_for([test_post], None) == {}


def test_active_flag_counts_for_groups_pending_flags(
    service, test_user, other_user, moderator, test_post
) -> None:
    service.act(test_user, test_post, ActionType.SPAM)
    service.act(other_user, test_post, ActionType.SPAM)

    grouped = service.active_flag_counts_for([test_post])

    assert len(grouped[test_post.id][ActionType.SPAM]) == 2

    service.defer_flags(test_post, moderator)
    assert service.active_flag_counts_for([test_post]) == {}


def test_lookup_for_lists_post_numbers(
    service, test_user, topic, author, test_post, make_post
) -> None:
    make_post(topic, author, "Second")
    third = make_post(topic, author, "Third")
    service.act(test_user, test_post, ActionType.BOOKMARK)
    service.act(test_user, third, ActionType.BOOKMARK)

    lookup = service.lookup_for(test_user, [topic], ActionType.BOOKMARK)

    assert lookup == {topic.id: [test_post.post_number, third.post_number]}


def test_post_action_type_for_post(service, test_user, moderator, test_post) -> None:
    assert service.post_action_type_for_post(test_post.id) is None

    service.act(test_user, test_post, ActionType.INAPPROPRIATE)
    assert service.post_action_type_for_post(test_post.id) == "inappropriate"

    service.defer_flags(test_post, moderator)
    assert service.post_action_type_for_post(test_post.id) is None


def test_daily_reports(service, test_user, other_user, test_post) -> None:
    service.act(test_user, test_post, ActionType.LIKE)
    service.act(other_user, test_post, ActionType.LIKE)
    service.act(test_user, test_post, ActionType.SPAM)
    service.act(other_user, test_post, ActionType.NOTIFY_MODERATORS)

    likes = service.count_per_day_for_type(ActionType.LIKE)
    flags = service.flag_count_by_date(utcnow() - timedelta(days=1), utcnow() + timedelta(days=1))

    assert likes == {utctoday(): 2}
    # Custom notify_moderators flags are not part of the flag report.
    assert flags == {utctoday(): 1}
