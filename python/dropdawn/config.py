"""Application settings loaded from environment variables.

Environment Configuration:
    DROPDAWN_ENV: Deployment environment (local | test | staging | prod)
    DATABASE_URL: Conversation store connection string (required)

Auth Configuration (required in all environments):
    SUPABASE_JWKS_URL: Full URL to Supabase JWKS endpoint
    SUPABASE_ISSUER: Expected JWT issuer (trailing slash stripped)
    SUPABASE_AUDIENCES: Comma-separated list of allowed audiences

Quota Backends (optional, Redis preferred when both are set):
    REDIS_URL: Redis connection string for the per-user message log
    SUPABASE_URL / SUPABASE_SERVICE_KEY: Supabase Auth admin API

Provider Credentials (checked per provider at call time):
    GOOGLE_GENERATIVE_AI_API_KEY, MISTRAL_API_KEY, COHERE_API_KEY, DEEPINFRA_API_KEY

Tool Credentials (checked per tool at call time):
    NETLIFY_ACCESS_TOKEN: Hosting provider personal access token
    TAVILY_API_KEY: Web search API key

Deploy Polling:
    DEPLOY_POLL_ATTEMPTS: status checks per deploy (default 30)
    DEPLOY_POLL_INTERVAL_S: pause between status checks (default 2.0)
    DEPLOY_TIMEOUT_S: optional overall ceiling for one deploy wait
"""

from datetime import timedelta
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

    Settings are loaded from environment variables.
    Validation rules:
    - DATABASE_URL is always required
    - SUPABASE_JWKS_URL, SUPABASE_ISSUER, SUPABASE_AUDIENCES are required in all environments
    - Provider and tool credentials are optional here; their absence is reported
      when the provider or tool is actually used
    """

    dropdawn_env: Environment = Field(default=Environment.LOCAL, alias="DROPDAWN_ENV")
    database_url: Annotated[str, Field(alias="DATABASE_URL")]

    # Supabase auth settings (required in all environments)
    supabase_jwks_url: str | None = Field(default=None, alias="SUPABASE_JWKS_URL")
    supabase_issuer: str | None = Field(default=None, alias="SUPABASE_ISSUER")
    supabase_audiences: str | None = Field(default=None, alias="SUPABASE_AUDIENCES")

    # Supabase admin API (quota stored in user metadata)
    supabase_url: str | None = Field(default=None, alias="SUPABASE_URL")
    supabase_service_key: str | None = Field(default=None, alias="SUPABASE_SERVICE_KEY")

    redis_url: str | None = Field(default=None, alias="REDIS_URL")

    # LLM provider keys
    google_api_key: str | None = Field(default=None, alias="GOOGLE_GENERATIVE_AI_API_KEY")
    mistral_api_key: str | None = Field(default=None, alias="MISTRAL_API_KEY")
    cohere_api_key: str | None = Field(default=None, alias="COHERE_API_KEY")
    deepinfra_api_key: str | None = Field(default=None, alias="DEEPINFRA_API_KEY")

    # Tool credentials
    netlify_access_token: str | None = Field(default=None, alias="NETLIFY_ACCESS_TOKEN")
    tavily_api_key: str | None = Field(default=None, alias="TAVILY_API_KEY")

    # Quota and step limits
    quota_max_messages: int = Field(default=5, alias="QUOTA_MAX_MESSAGES", ge=1)
    quota_window_hours: int = Field(default=12, alias="QUOTA_WINDOW_HOURS", ge=1)
    temporary_session_message_cap: int = Field(
        default=5, alias="TEMPORARY_SESSION_MESSAGE_CAP", ge=1
    )
    chat_max_steps: int = Field(default=5, alias="CHAT_MAX_STEPS", ge=1, le=20)

    # Deploy polling
    deploy_poll_attempts: int = Field(default=30, alias="DEPLOY_POLL_ATTEMPTS", ge=1)
    deploy_poll_interval_s: float = Field(default=2.0, alias="DEPLOY_POLL_INTERVAL_S", gt=0)
    deploy_timeout_s: float | None = Field(default=None, alias="DEPLOY_TIMEOUT_S", gt=0)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "populate_by_name": True,
    }

    @model_validator(mode="after")
    def validate_required_settings(self) -> "Settings":
        """Ensure required settings are set for all environments."""
        missing_auth = []
        if not self.supabase_jwks_url:
            missing_auth.append("SUPABASE_JWKS_URL")
        if not self.supabase_issuer:
            missing_auth.append("SUPABASE_ISSUER")
        if not self.supabase_audiences:
            missing_auth.append("SUPABASE_AUDIENCES")

        if missing_auth:
            raise ValueError(
                f"Missing required Supabase auth settings: {', '.join(missing_auth)}. "
                "Set these environment variables or add them to .env."
            )

        return self

    @property
    def audience_list(self) -> list[str]:
        """Parse comma-separated audiences into a list."""
        if self.supabase_audiences:
            return [a.strip() for a in self.supabase_audiences.split(",") if a.strip()]
        return []

    @property
    def normalized_issuer(self) -> str | None:
        """Return issuer with trailing slash stripped."""
        if self.supabase_issuer:
            return self.supabase_issuer.rstrip("/")
        return None

    @property
    def quota_window(self) -> timedelta:
        """Rolling window for the per-user message quota."""
        return timedelta(hours=self.quota_window_hours)

    @property
    def supabase_admin_configured(self) -> bool:
        """Whether the Supabase Auth admin API can be used."""
        return bool(self.supabase_url and self.supabase_service_key)


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
