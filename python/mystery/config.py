"""Application settings loaded from environment variables.

Environment Configuration:
    MYSTERY_ENV: Deployment environment (local | test | staging | prod)
    DATABASE_URL: Database connection string (required)
    MYSTERY_INTERNAL_SECRET: Secret for generation-service callbacks (required in staging/prod)

Redis / Celery Configuration:
    REDIS_URL: Redis connection string (status change channel, worker broker)
    CELERY_BROKER_URL: Celery broker URL (defaults to REDIS_URL)
    CELERY_RESULT_BACKEND: Celery result backend URL (defaults to REDIS_URL)

Generation Service Configuration:
    SUPABASE_URL: Supabase project URL hosting the generation edge function
    SUPABASE_SERVICE_KEY: Service role key used to invoke the edge function
    GENERATION_FUNCTION_NAME: Edge function that forwards to the generator
    GENERATION_TEST_MODE: Ask the generator for a cheap test package

Email Configuration:
    RESEND_API_KEY: Resend API key (emails are skipped when unset)
    EMAIL_FROM: Sender address for transactional emails
    PUBLIC_BASE_URL: Base URL used to build access links
"""

from enum import Enum
from functools import lru_cache
from typing import Annotated

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


class Environment(str, Enum):
    """Valid deployment environments."""

    LOCAL = "local"
    TEST = "test"
    STAGING = "staging"
    PROD = "prod"


class Settings(BaseSettings):
    """Application configuration.

    Validation rules:
    - DATABASE_URL is always required
    - MYSTERY_INTERNAL_SECRET is required in staging and prod only
    - Status watch intervals must be positive
    """

    mystery_env: Environment = Field(default=Environment.LOCAL, alias="MYSTERY_ENV")
    database_url: Annotated[str, Field(alias="DATABASE_URL")]
    mystery_internal_secret: str | None = Field(default=None, alias="MYSTERY_INTERNAL_SECRET")

    # Redis / Celery settings
    redis_url: str | None = Field(default=None, alias="REDIS_URL")
    celery_broker_url: str | None = Field(default=None, alias="CELERY_BROKER_URL")
    celery_result_backend: str | None = Field(default=None, alias="CELERY_RESULT_BACKEND")

    # Generation service (Supabase edge function in front of the generator)
    supabase_url: str | None = Field(default=None, alias="SUPABASE_URL")
    supabase_service_key: str | None = Field(default=None, alias="SUPABASE_SERVICE_KEY")
    generation_function_name: str = Field(
        default="mystery-webhook-trigger", alias="GENERATION_FUNCTION_NAME"
    )
    generation_test_mode: bool = Field(default=False, alias="GENERATION_TEST_MODE")
    generation_timeout_s: float = Field(default=30.0, alias="GENERATION_TIMEOUT_S")

    # Transactional email
    resend_api_key: str | None = Field(default=None, alias="RESEND_API_KEY")
    resend_api_url: str = Field(default="https://api.resend.com/emails", alias="RESEND_API_URL")
    email_from: str = Field(
        default="Murder Mystery Party <noreply@mysterymaker.party>", alias="EMAIL_FROM"
    )
    public_base_url: str = Field(default="https://murder-mystery.party", alias="PUBLIC_BASE_URL")

    # Status watch (debounce for rechecks, fallback poll, SSE keepalive)
    status_recheck_min_interval_s: float = Field(
        default=3.0, alias="STATUS_RECHECK_MIN_INTERVAL_S"
    )
    status_poll_interval_s: float = Field(default=5.0, alias="STATUS_POLL_INTERVAL_S")
    status_keepalive_s: float = Field(default=15.0, alias="STATUS_KEEPALIVE_S")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "populate_by_name": True,
    }

    @model_validator(mode="after")
    def validate_required_settings(self) -> "Settings":
        """Ensure environment-dependent settings are present and sane."""
        if self.mystery_env in (Environment.STAGING, Environment.PROD):
            if not self.mystery_internal_secret:
                raise ValueError(
                    f"MYSTERY_INTERNAL_SECRET is required for MYSTERY_ENV={self.mystery_env.value}"
                )

        for name, value in (
            ("STATUS_RECHECK_MIN_INTERVAL_S", self.status_recheck_min_interval_s),
            ("STATUS_POLL_INTERVAL_S", self.status_poll_interval_s),
            ("STATUS_KEEPALIVE_S", self.status_keepalive_s),
        ):
            if value <= 0:
                raise ValueError(f"{name} must be > 0")

        return self

    @property
    def requires_internal_header(self) -> bool:
        """Whether callback requests must include the internal secret header."""
        return self.mystery_env in (Environment.STAGING, Environment.PROD)

    @property
    def generation_function_url(self) -> str | None:
        """Full URL of the generation edge function, if Supabase is configured."""
        if not self.supabase_url:
            return None
        return f"{self.supabase_url.rstrip('/')}/functions/v1/{self.generation_function_name}"

    @property
    def effective_celery_broker_url(self) -> str | None:
        """Return Celery broker URL, falling back to REDIS_URL if not set."""
        return self.celery_broker_url or self.redis_url

    @property
    def effective_celery_result_backend(self) -> str | None:
        """Return Celery result backend URL, falling back to REDIS_URL if not set."""
        return self.celery_result_backend or self.redis_url


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings instance loaded from environment.

    Raises:
        ValidationError: If required settings are missing or invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache. Useful for testing."""
    get_settings.cache_clear()
