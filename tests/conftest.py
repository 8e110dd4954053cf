# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Callable, Generator, Iterator
from itertools import count
from typing import Any

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("CACHE_BACKEND", "memory")
os.environ.setdefault("PYTEST_RUNNING", "true")

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from forum_stage.api.v1.dependencies import get_post_action_service
from forum_stage.core.action_types import TrustLevel
from forum_stage.core.security import create_access_token
from forum_stage.core.settings import Settings, settings
from forum_stage.db.session import Base
from forum_stage.db.session import get_db as app_get_session
from forum_stage.main import app as fastapi_app
from forum_stage.models import Post, Topic, User
from forum_stage.services.broadcast import MemoryPublisher
from forum_stage.services.cache import MemoryStore
from forum_stage.services.events import EventBus
from forum_stage.services.post_actions import PostActionService

TEST_DB_URL = "sqlite://"

_USERNAME_COUNTER = count(1)


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db_session(engine: Engine) -> Iterator[Session]:
    """Session whose commits and rollbacks stay inside an outer transaction."""
    connection = engine.connect()
    transaction = connection.begin()
    session = Session(
        bind=connection,
        autoflush=False,
        expire_on_commit=False,
        join_transaction_mode="create_savepoint",
    )

    try:
        yield session
    finally:
        session.close()

        if transaction.is_active:
            transaction.rollback()
        connection.close()

        # Ensure each test sees a clean database even if commits occurred.
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture()
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture()
def publisher() -> MemoryPublisher:
    return MemoryPublisher()


@pytest.fixture()
def events() -> EventBus:
    return EventBus()


@pytest.fixture()
def test_settings() -> Settings:
    """Settings with production thresholds; tests copy and override as needed."""
    return settings.model_copy(update={"rate_limits_enabled": True, "rate_limit_staff": False})


@pytest.fixture()
def make_service(
    db_session: Session,
    store: MemoryStore,
    publisher: MemoryPublisher,
    events: EventBus,
    test_settings: Settings,
) -> Callable[..., PostActionService]:
    """Build a service over the test session, optionally overriding settings."""

    def _make(**overrides: Any) -> PostActionService:
        config = test_settings.model_copy(update=overrides) if overrides else test_settings
        return PostActionService(
            db_session, store=store, publisher=publisher, events=events, config=config
        )

    return _make


@pytest.fixture()
def service(make_service: Callable[..., PostActionService]) -> PostActionService:
    return make_service()


@pytest.fixture()
def make_user(db_session: Session) -> Callable[..., User]:
    def _make(
        trust_level: int = TrustLevel.BASIC,
        *,
        moderator: bool = False,
        admin: bool = False,
        username: str | None = None,
    ) -> User:
        user = User(
            username=username or f"user{next(_USERNAME_COUNTER)}",
            trust_level=int(trust_level),
            moderator=moderator,
            admin=admin,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make


@pytest.fixture()
def test_user(make_user: Callable[..., User]) -> User:
    """Create and return a persisted test user."""
    return make_user(TrustLevel.BASIC)


@pytest.fixture()
def other_user(make_user: Callable[..., User]) -> User:
    """Create and return a second persisted user."""
    return make_user(TrustLevel.BASIC)


@pytest.fixture()
def author(make_user: Callable[..., User]) -> User:
    """Author of the posts under test."""
    return make_user(TrustLevel.BASIC)


@pytest.fixture()
def moderator(make_user: Callable[..., User]) -> User:
    return make_user(TrustLevel.LEADER, moderator=True)


@pytest.fixture()
def make_topic(db_session: Session) -> Callable[..., Topic]:
    def _make(user: User, title: str = "A topic about testing") -> Topic:
        topic = Topic(title=title, user_id=user.id, posts_count=0)
        db_session.add(topic)
        db_session.commit()
        return topic

    return _make


@pytest.fixture()
def make_post(db_session: Session) -> Callable[..., Post]:
    def _make(topic: Topic, user: User, raw: str = "Test post content") -> Post:
        topic.posts_count += 1
        post = Post(
            topic_id=topic.id,
            user_id=user.id,
            post_number=topic.posts_count,
            raw=raw,
        )
        db_session.add(post)
        db_session.commit()
        return post

    return _make


@pytest.fixture()
def topic(make_topic: Callable[..., Topic], author: User) -> Topic:
    return make_topic(author)


@pytest.fixture()
def test_post(make_post: Callable[..., Post], topic: Topic, author: User) -> Post:
    """Create a baseline post for tests."""
    return make_post(topic, author)


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture(autouse=True)
def override_session_dependency(app: FastAPI, db_session: Session) -> Iterator[None]:
    def _get_session_override() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[app_get_session] = _get_session_override
    try:
        yield
    finally:
        app.dependency_overrides.pop(app_get_session, None)


@pytest.fixture()
def override_service(app: FastAPI, service: PostActionService) -> Iterator[PostActionService]:
    """Serve API requests with the in-memory backed service."""
    app.dependency_overrides[get_post_action_service] = lambda: service
    try:
        yield service
    finally:
        app.dependency_overrides.pop(get_post_action_service, None)


@pytest.fixture()
def client(app: FastAPI, override_service: PostActionService) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture()
def auth_token(test_user: User) -> dict[str, str]:
    """Return authorization headers for the primary test user."""
    token = create_access_token(test_user.id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def moderator_token(moderator: User) -> dict[str, str]:
    """Return authorization headers for a moderator."""
    token = create_access_token(moderator.id)
    return {"Authorization": f"Bearer {token}"}
