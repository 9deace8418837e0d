"""Application configuration with environment variable validation."""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve .env relative to the project root (3 levels up from this file)
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Supabase
    supabase_url: str = Field(..., validation_alias="SUPABASE_URL")
    supabase_key: str = Field(..., validation_alias="SUPABASE_KEY")

    # Tables
    constraints_table: str = Field(
        default="option_constraints", validation_alias="CONSTRAINTS_TABLE"
    )
    options_table: str = Field(default="options", validation_alias="OPTIONS_TABLE")
    orders_table: str = Field(default="orders", validation_alias="ORDERS_TABLE")

    # Constraint list cache (seconds). Writes invalidate it immediately.
    constraint_cache_ttl: int = Field(default=60, validation_alias="CONSTRAINT_CACHE_TTL")

    # Base URL the form session uses to fetch constraints
    constraints_api_url: str = Field(
        default="http://localhost:8000", validation_alias="CONSTRAINTS_API_URL"
    )

    # API settings
    api_admin_key: str = Field(default="", validation_alias="API_ADMIN_KEY")
    allowed_origins: str = Field(
        default="http://localhost:3000",
        validation_alias="ALLOWED_ORIGINS",
    )

    # Rate limiting (order writes)
    rate_limit_requests: int = Field(default=30, validation_alias="RATE_LIMIT_REQUESTS")
    rate_limit_period: int = Field(default=60, validation_alias="RATE_LIMIT_PERIOD")

    @property
    def cors_origins(self) -> list[str]:
        """Parse ALLOWED_ORIGINS from a comma-separated string."""
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]

    @property
    def rate_limit(self) -> str:
        """Rate limit string in slowapi notation, e.g. '30/60 seconds'."""
        return f"{self.rate_limit_requests}/{self.rate_limit_period} seconds"


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()  # type: ignore[call-arg]


def validate_settings() -> None:
    """Validate that all required settings are present."""
    settings = get_settings()
    errors = []

    if not settings.supabase_url:
        errors.append("SUPABASE_URL is required")
    if not settings.supabase_key:
        errors.append("SUPABASE_KEY is required")
    if settings.constraint_cache_ttl < 0:
        errors.append("CONSTRAINT_CACHE_TTL must not be negative")

    if errors:
        raise ValueError(f"Configuration errors: {'; '.join(errors)}")
