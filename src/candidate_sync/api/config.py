"""Configuration for the webhook FastAPI service."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Webhook service settings loaded from environment variables."""

    # Postgres
    DATABASE_URL: str

    # Auth
    WEBHOOK_API_KEY: str

    # CRM side channel (optional)
    CRM_API_BASE_URL: str | None = None
    CRM_API_KEY: str | None = None

    # Stage reconciliation
    DEBOUNCE_WINDOW_SECONDS: float = 30.0


@lru_cache
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()
