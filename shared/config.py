"""
Application configuration.

Settings are loaded once from environment variables (prefix ``HOUSEHOLD_``)
and handed explicitly to the channels, router and digest aggregator when they
are constructed. Nothing below reads the environment mid-operation.
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.models import Channel, Frequency


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    """

    model_config = SettingsConfigDict(
        env_prefix="HOUSEHOLD_",
        env_file=".env",
        extra="ignore",
    )

    # Application
    APP_NAME: str = "Household Inventory API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    DATA_DIR: Optional[str] = None  # JSON fixtures to seed the in-memory store
    SEED_FIXTURES: bool = True

    # Store
    STORE_SUPPORTS_TRANSACTIONS: bool = True

    # Email sender
    EMAIL_FROM_ADDRESS: str = "notifications@household.local"
    EMAIL_FROM_NAME: str = "Household Inventory"
    FRONTEND_URL: str = "http://localhost:3000"

    # Notification delivery
    DEFAULT_FREQUENCY: Frequency = Frequency.DAILY
    ENABLED_CHANNELS: list[Channel] = [Channel.EMAIL]
    DIGEST_CHANNEL: Channel = Channel.EMAIL
    IMMEDIATE_SUPPRESSES_DIGEST: bool = False
    IMMEDIATE_WINDOW_MINUTES: int = 15
    MAX_EMAILS_PER_RUN: int = 500

    # Unsubscribe links
    UNSUBSCRIBE_SECRET: str = "change-me-unsubscribe-secret"
    UNSUBSCRIBE_TOKEN_TTL_DAYS: int = 14

    # Retention
    SHOPPING_TTL_DAYS: int = 7

    # Post-commit side effects
    BACKGROUND_TASKS_INLINE: bool = False
    BACKGROUND_WORKERS: int = 2
    EVENT_LOG_SIZE: int = 1000


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to load settings only once.
    """
    return Settings()
