# fellowship/core/config.py
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Global application configuration.

    Values are loaded from environment variables (or a `.env` file) at runtime.

    Used for:
    - DB connection
    - Google OAuth client credentials for Calendar token refresh
    - Internal API key for scheduled jobs
    - Logging
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    APP_NAME: str = "Fellowship Scheduler"
    APP_ENV: str = Field("local", description="Environment name: local/test/dev/stage/prod")
    LOG_LEVEL: str = Field("INFO", description="Root log level (DEBUG/INFO/WARNING/ERROR).")

    DB_URL: str = Field(
        "sqlite+aiosqlite:///./fellowship.db",
        description="SQLAlchemy-compatible async database URL",
    )

    INTERNAL_API_KEY: str | None = Field(
        default=None,
        description="API key required for hitting /internal endpoints",
    )

    # --- Google Calendar ---
    GOOGLE_CLIENT_ID: str | None = Field(
        default=None,
        description="OAuth client ID used to refresh users' Google access tokens.",
    )
    GOOGLE_CLIENT_SECRET: str | None = Field(
        default=None,
        description="OAuth client secret used to refresh users' Google access tokens.",
    )
    GOOGLE_CALENDAR_BASE_URL: str = Field(
        "https://www.googleapis.com/calendar/v3",
        description="Base URL of the Google Calendar REST API.",
    )
    GOOGLE_TOKEN_URL: str = Field(
        "https://oauth2.googleapis.com/token",
        description="OAuth2 token endpoint used for the refresh-token grant.",
    )
    CALENDAR_TIMEOUT_SECONDS: float = Field(
        10.0,
        description="Timeout applied to every Google Calendar HTTP call.",
    )

    DEFAULT_TIMEZONE: str = Field(
        "UTC",
        description="IANA timezone used when a request does not specify one.",
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Cached accessor for application settings.

    Settings are read and validated only once per process.
    """
    return Settings()
