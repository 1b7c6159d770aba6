"""
Application configuration using Pydantic Settings.

Loads configuration from environment variables with validation.

Backend selection depends on two values, REMOTE_DATABASE_URL and
REMOTE_DATABASE_KEY. Both must be present and well formed for the remote
relational backend to be considered; anything less runs the process on the
local fallback store.
"""

from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import ArgumentError


class Settings(BaseSettings):
    """Application settings with environment variable loading."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Environment
    ENVIRONMENT: str = Field(default="development")
    LOG_LEVEL: str = Field(default="INFO")

    # Remote relational backend (Supabase Postgres or any SQLAlchemy async URL)
    REMOTE_DATABASE_URL: str = Field(
        default="",
        description="SQLAlchemy async URL of the remote database, without password",
    )
    REMOTE_DATABASE_KEY: str = Field(
        default="",
        description="Access key for the remote database (applied as the password)",
    )
    REMOTE_CONNECT_TIMEOUT: float = Field(default=5.0)

    # Create platform staff accounts and the demo company on startup
    BOOTSTRAP_PLATFORM: bool = Field(default=True)

    # Invitation tokens
    INVITATION_SECRET: str = Field(
        default="development-invitation-secret-change-me-0000",
        description="HMAC key for invitation tokens (min 32 chars)",
    )
    INVITATION_TTL_HOURS: int = Field(default=24)
    APP_BASE_URL: str = Field(default="http://localhost:3000/")

    # Sessions
    SESSION_SECRET: str = Field(
        default="development-session-secret-change-me-00000000",
        description="HS256 signing key for session tokens (min 32 chars)",
    )
    SESSION_TTL_MINUTES: int = Field(default=480)

    # Step-up verification
    STEP_UP_DEMO_CODE: str = Field(default="123456")
    STEP_UP_TTL_SECONDS: int = Field(default=300)
    STEP_UP_MAX_ATTEMPTS: int = Field(default=5)
    STEP_UP_LOCKOUT_SECONDS: int = Field(default=300)

    # Email (Resend)
    RESEND_API_KEY: str = Field(default="")
    SENDER_EMAIL: str = Field(default="onboarding@resend.dev")
    RESEND_API_URL: str = Field(default="https://api.resend.com/emails")

    # CORS
    CORS_ORIGINS: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"]
    )

    # Monitoring
    SENTRY_DSN: str = Field(default="")

    # API Configuration
    API_V1_PREFIX: str = Field(default="/api/v1")

    @field_validator("INVITATION_SECRET", "SESSION_SECRET")
    @classmethod
    def validate_secret_length(cls, v: str) -> str:
        """Ensure signing secrets are at least 32 characters."""
        if len(v) < 32:
            raise ValueError("signing secrets must be at least 32 characters")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS origins from comma-separated string or list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    def remote_database_url(self) -> Optional[URL]:
        """
        Build the remote database URL, or None when the remote backend is
        not configured.

        Partial configuration (URL without key, or key without URL) and
        malformed URLs are treated as "not configured".
        """
        raw_url = self.REMOTE_DATABASE_URL.strip()
        key = self.REMOTE_DATABASE_KEY.strip()
        if not raw_url or not key:
            return None

        try:
            url = make_url(raw_url)
        except ArgumentError:
            return None

        if not url.host or not url.drivername:
            return None

        return url.set(password=key)

    @property
    def remote_configured(self) -> bool:
        return self.remote_database_url() is not None


def get_settings() -> Settings:
    """Load settings from the environment."""
    return Settings()


# Global settings instance
settings = get_settings()
