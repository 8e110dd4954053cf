# tests/services/test_concurrent_acts.py
"""Two sessions racing to record the same action on one post."""

from collections.abc import Iterator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from forum_stage.core.action_types import ActionType, TrustLevel
from forum_stage.db.session import Base
from forum_stage.models import Post, PostAction, Topic, User
from forum_stage.services.post_actions import PostActionService


@pytest.fixture()
def file_engine(tmp_path) -> Iterator[Engine]:
    """Engine over a database file so each session gets its own connection."""
    engine = create_engine(f"sqlite:///{tmp_path / 'race.db'}")
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture()
def seeded_ids(file_engine: Engine) -> tuple[int, int]:
    with Session(file_engine) as setup:
        author = User(username="race-author", trust_level=int(TrustLevel.BASIC))
        liker = User(username="race-liker", trust_level=int(TrustLevel.BASIC))
        setup.add_all([author, liker])
        setup.flush()
        topic = Topic(title="A topic about racing", user_id=author.id, posts_count=1)
        setup.add(topic)
        setup.flush()
        post = Post(topic_id=topic.id, user_id=author.id, post_number=1, raw="Race me")
        setup.add(post)
        setup.commit()
        return liker.id, post.id


def test_concurrent_likes_leave_one_active_row(
    file_engine, seeded_ids, store, publisher, events, test_settings, mocker
) -> None:
    liker_id, post_id = seeded_ids
    first_db = Session(file_engine, expire_on_commit=False)
    second_db = Session(file_engine, expire_on_commit=False)
    first = PostActionService(
        first_db, store=store, publisher=publisher, events=events, config=test_settings
    )
    second = PostActionService(
        second_db, store=store, publisher=publisher, events=events, config=test_settings
    )
    liker = second_db.get(User, liker_id)
    limiter = second.rate_policy.daily_limiter(liker, ActionType.LIKE)
    remaining_before = limiter.remaining()

    won: list[PostAction] = []
    real_find_slot_holder = second.repo.find_slot_holder

    def find_slot_holder_then_lose_race(key):
        holder = real_find_slot_holder(key)
        if not won:
            # The other request commits between this pre-check and the insert.
            won.append(
                first.act(
                    first_db.get(User, liker_id), first_db.get(Post, post_id), ActionType.LIKE
                )
            )
            first_db.close()
        return holder

    mocker.patch.object(
        second.repo, "find_slot_holder", side_effect=find_slot_holder_then_lose_race
    )

    try:
        action = second.act(liker, second_db.get(Post, post_id), ActionType.LIKE)
    finally:
        second_db.close()

    with Session(file_engine) as check:
        live = (
            check.query(PostAction)
            .filter(
                PostAction.post_id == post_id,
                PostAction.user_id == liker_id,
                PostAction.deleted_at.is_(None),
            )
            .all()
        )
        post = check.get(Post, post_id)
        assert [row.id for row in live] == [won[0].id]
        assert post.like_count == 1
    assert action.id == won[0].id
    assert limiter.remaining() == remaining_before - 1
