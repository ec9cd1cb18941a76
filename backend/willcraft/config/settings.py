"""
Application Settings for Willcraft

Centralized configuration using Pydantic Settings with .env support.
All environment variables are validated at startup.
"""

from functools import lru_cache
from typing import Optional
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Stripe and auth settings are optional so the API can boot without
    them; the endpoints that need them answer 503 until configured.
    """

    # Application Settings
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    # CORS Configuration
    frontend_url: str = "http://localhost:3000"
    allowed_origins: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Auth provider (bearer tokens are issued externally)
    auth_issuer: Optional[str] = None
    auth_audience: str = "authenticated"
    auth_jwks_url: Optional[str] = None
    auth_jwt_secret: Optional[str] = None

    # Stripe Configuration
    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    stripe_price_id_essential: Optional[str] = None
    stripe_price_id_essential_yearly: Optional[str] = None
    stripe_price_id_unlimited: Optional[str] = None
    stripe_price_id_unlimited_yearly: Optional[str] = None
    stripe_timeout_seconds: int = 10

    # Retry Configuration
    max_retries: int = 3
    retry_base_delay: float = 0.5
    retry_max_delay: float = 5.0

    # Interview / will store
    will_list_limit: int = 50
    will_list_cache_ttl_seconds: int = 120
    section_update_max_attempts: int = 5

    # Webhook ledger
    webhook_event_retention_days: int = 30

    # Database Configuration (SQLModel/SQLAlchemy)
    database_url: Optional[str] = None
    database_pool_size: int = 5
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_command_timeout: float = 10.0
    database_echo: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="after")
    def validate_retry_bounds(self) -> "Settings":
        """Reject retry and limit values that would disable bounding."""
        if self.max_retries < 1:
            raise ValueError("MAX_RETRIES must be at least 1")
        if self.section_update_max_attempts < 1:
            raise ValueError("SECTION_UPDATE_MAX_ATTEMPTS must be at least 1")
        if self.will_list_limit < 1:
            raise ValueError("WILL_LIST_LIMIT must be at least 1")
        return self

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.environment.lower() == "development"

    @property
    def stripe_enabled(self) -> bool:
        """Stripe API calls are possible."""
        return bool(self.stripe_secret_key)

    @property
    def webhooks_enabled(self) -> bool:
        """Webhook signatures can be verified."""
        return bool(self.stripe_secret_key and self.stripe_webhook_secret)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience export for direct import
settings = get_settings()
