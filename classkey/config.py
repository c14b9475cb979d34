"""Application configuration using pydantic-settings."""

import string
from datetime import timedelta
from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

# Uppercase letters and digits without the easily confused 0/O and 1/I
DEFAULT_CODE_ALPHABET = "".join(
    c for c in string.ascii_uppercase + string.digits if c not in "0O1I"
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "ClassKey"
    app_env: Literal["development", "staging", "production"] = "development"
    app_secret_key: str
    app_base_url: str = "http://localhost:8000"
    app_debug: bool = False
    app_log_level: str = "INFO"

    # Database
    database_url: str
    database_pool_size: int = 20
    database_max_overflow: int = 10

    # JWT Authentication (tokens are issued elsewhere, only verified here)
    jwt_secret_key: str | None = None
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 1440  # 24 hours

    # Code generation
    code_length: int = 8
    code_alphabet: str = DEFAULT_CODE_ALPHABET
    code_generation_max_attempts: int = 10
    code_insert_attempts: int = 3

    # Expiry
    invitation_code_expiry_days: int = 7
    expiry_tolerance_seconds: int = 300

    # Redemption links shared with recipients
    school_invitation_path: str = "/signup?invite="
    course_enrollment_path: str = "/enroll?code="
    teacher_join_path: str = "/join/teacher?token="

    @property
    def effective_jwt_secret(self) -> str:
        """Get the JWT secret key, falling back to app secret key."""
        return self.jwt_secret_key or self.app_secret_key

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == "production"

    @property
    def async_database_url(self) -> str:
        """Get database URL with asyncpg driver for async SQLAlchemy."""
        url = self.database_url
        # Convert postgresql:// to postgresql+asyncpg://
        if url.startswith("postgresql://"):
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        elif url.startswith("postgres://"):
            url = url.replace("postgres://", "postgresql+asyncpg://", 1)
        return url

    @property
    def sync_database_url(self) -> str:
        """Get database URL with psycopg2 driver for sync operations (Alembic)."""
        url = self.database_url
        if url.startswith("postgres://"):
            url = url.replace("postgres://", "postgresql://", 1)
        if "+asyncpg" in url:
            url = url.replace("+asyncpg", "", 1)
        return url

    @property
    def is_sqlite(self) -> bool:
        """Check if the configured database is SQLite (local dev and tests)."""
        return self.database_url.startswith("sqlite")

    @property
    def expiry_tolerance(self) -> timedelta:
        """Clock-skew grace window applied when evaluating expiry."""
        return timedelta(seconds=self.expiry_tolerance_seconds)

    @property
    def invitation_lead(self) -> timedelta:
        """Default lifetime of school invitations and teacher join links."""
        return timedelta(days=self.invitation_code_expiry_days)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
