"""Application settings and configuration.

This module defines all configuration options for the Quire messaging service.
Settings are loaded from environment variables with sensible defaults.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Quire", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Security and authentication. An unset secret is reported as a server
    # misconfiguration instead of failing at import time.
    secret_key: str | None = Field(default=None, alias="SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(
        default=60 * 24 * 15,
        alias="ACCESS_TOKEN_EXPIRE_MINUTES",
    )
    auth_cookie_name: str = Field(default="token", alias="AUTH_COOKIE_NAME")

    # Database configuration
    database_url: str = Field(default="sqlite:///./quire.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Presence tracking
    presence_backend: Literal["memory", "redis"] = Field(
        default="memory",
        alias="PRESENCE_BACKEND",
    )
    redis_url: str = Field(default="redis://localhost:6379", alias="REDIS_URL")
    presence_redis_key: str = Field(default="quire:presence", alias="PRESENCE_REDIS_KEY")
    presence_heartbeat_seconds: float = Field(
        default=300.0,
        alias="PRESENCE_HEARTBEAT_SECONDS",
    )

    # Mobile push delivery (Expo push API)
    push_api_url: str = Field(
        default="https://exp.host/--/api/v2/push/send",
        alias="PUSH_API_URL",
    )
    push_access_token: str | None = Field(default=None, alias="PUSH_ACCESS_TOKEN")
    push_timeout_seconds: float = Field(default=10.0, alias="PUSH_TIMEOUT_SECONDS")

    # External media storage for voice attachments (ImageKit-compatible API)
    media_upload_url: str = Field(
        default="https://upload.imagekit.io/api/v1/files/upload",
        alias="MEDIA_UPLOAD_URL",
    )
    media_api_url: str = Field(default="https://api.imagekit.io/v1", alias="MEDIA_API_URL")
    media_private_key: str | None = Field(default=None, alias="MEDIA_PRIVATE_KEY")
    media_folder: str = Field(default="quire/voice", alias="MEDIA_FOLDER")
    media_timeout_seconds: float = Field(default=30.0, alias="MEDIA_TIMEOUT_SECONDS")
    voice_max_bytes: int = Field(default=10 * 1024 * 1024, alias="VOICE_MAX_BYTES")

    # Messaging behaviour
    message_page_size: int = Field(default=50, alias="MESSAGE_PAGE_SIZE")
    message_max_page_size: int = Field(default=100, alias="MESSAGE_MAX_PAGE_SIZE")
    plaintext_messages_allowed: bool = Field(
        default=True,
        alias="PLAINTEXT_MESSAGES_ALLOWED",
    )

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(
        default=["*"],
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "DELETE", "OPTIONS"],
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
        """
        url = self.effective_database_url
        if url.startswith("postgresql+asyncpg"):
            return url.replace("postgresql+asyncpg", "postgresql+psycopg", 1)
        return url

    @property
    def effective_database_url(self) -> str:
        """Return the database URL respecting testing overrides."""
        if self.use_testing_database and self.test_database_url:
            return self.test_database_url
        return self.database_url


settings = Settings()
