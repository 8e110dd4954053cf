"""Application settings and configuration.

This module defines all configuration options for the Forum Stage application.
Settings are loaded from environment variables with sensible defaults.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    This class defines all configuration options for the Forum Stage application.
    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Forum Stage", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    base_url: str = Field(default="http://localhost:8000", alias="BASE_URL")

    # Security and authentication
    secret_key: str = Field(alias="SECRET_KEY")
    debug: bool = Field(default=False, alias="DEBUG")

    # Database configuration
    database_url: str = Field(default="sqlite:///./forum.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Redis configuration for caching, rate limiting and live counts
    redis_url: str = Field(default="redis://localhost:6379", alias="REDIS_URL")
    cache_backend: Literal["redis", "memory"] = Field(default="redis", alias="CACHE_BACKEND")

    # JWT authentication settings
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(
        default=60 * 24 * 30,
        alias="ACCESS_TOKEN_EXPIRE_MINUTES",
    )

    # Daily quotas for post actions
    rate_limits_enabled: bool = Field(default=True, alias="RATE_LIMITS_ENABLED")
    rate_limit_staff: bool = Field(default=False, alias="RATE_LIMIT_STAFF")
    max_likes_per_day: int = Field(default=50, alias="MAX_LIKES_PER_DAY")
    max_flags_per_day: int = Field(default=20, alias="MAX_FLAGS_PER_DAY")
    max_bookmarks_per_day: int = Field(default=20, alias="MAX_BOOKMARKS_PER_DAY")
    tl2_additional_likes_per_day_multiplier: float = Field(
        default=1.5, alias="TL2_ADDITIONAL_LIKES_PER_DAY_MULTIPLIER"
    )
    tl3_additional_likes_per_day_multiplier: float = Field(
        default=2.0, alias="TL3_ADDITIONAL_LIKES_PER_DAY_MULTIPLIER"
    )
    tl4_additional_likes_per_day_multiplier: float = Field(
        default=3.0, alias="TL4_ADDITIONAL_LIKES_PER_DAY_MULTIPLIER"
    )

    # Burst protection against double submits (applies to every action type)
    post_action_burst_limit: int = Field(default=4, alias="POST_ACTION_BURST_LIMIT")
    post_action_burst_window_seconds: int = Field(
        default=60, alias="POST_ACTION_BURST_WINDOW_SECONDS"
    )

    # Flag thresholds and auto-moderation
    flags_required_to_hide_post: int = Field(default=3, alias="FLAGS_REQUIRED_TO_HIDE_POST")
    num_flaggers_to_close_topic: int = Field(default=5, alias="NUM_FLAGGERS_TO_CLOSE_TOPIC")
    num_flags_to_close_topic: int = Field(default=12, alias="NUM_FLAGS_TO_CLOSE_TOPIC")
    num_hours_to_close_topic: int = Field(default=4, alias="NUM_HOURS_TO_CLOSE_TOPIC")
    min_flags_staff_visibility: int = Field(default=1, alias="MIN_FLAGS_STAFF_VISIBILITY")
    cooldown_minutes_after_hiding_posts: int = Field(
        default=10, alias="COOLDOWN_MINUTES_AFTER_HIDING_POSTS"
    )
    hidden_post_notice_delay_seconds: int = Field(
        default=5, alias="HIDDEN_POST_NOTICE_DELAY_SECONDS"
    )
    auto_respond_to_flag_actions: bool = Field(
        default=True, alias="AUTO_RESPOND_TO_FLAG_ACTIONS"
    )

    # Scoring
    staff_like_weight: int = Field(default=3, alias="STAFF_LIKE_WEIGHT")

    # Side messages
    max_topic_title_length: int = Field(default=255, alias="MAX_TOPIC_TITLE_LENGTH")
    moderators_group_name: str = Field(default="moderators", alias="MODERATORS_GROUP_NAME")

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(
        default=["*"],
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(
        default=["*"],
        alias="CORS_ALLOW_HEADERS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def database_url_sync(self) -> str:
        """Return a sync-compatible database URL for tooling.

        Converts asyncpg URLs to psycopg for synchronous database operations
        like Alembic migrations.

        Returns:
            Database URL compatible with synchronous database drivers
        """
        url = self.effective_database_url
        if url.startswith("postgresql+asyncpg"):
            return url.replace("postgresql+asyncpg", "postgresql+psycopg", 1)
        return url

    @property
    def effective_database_url(self) -> str:
        """Return the database URL respecting testing overrides.

        Returns:
            The active database URL (test database if in testing mode, otherwise production)
        """
        if self.use_testing_database and self.test_database_url:
            return self.test_database_url
        return self.database_url

    def likes_multiplier_for(self, trust_level: int) -> float:
        """Return the daily like multiplier configured for a trust level.

        Levels below 2 have no multiplier; configured values below 1.0 are clamped.
        """
        multiplier = getattr(self, f"tl{trust_level}_additional_likes_per_day_multiplier", 1.0)
        return max(float(multiplier), 1.0)


settings = Settings()  # type: ignore[call-arg]
