from functools import lru_cache
from threading import Lock
from typing import Optional
import structlog
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import model_validator

# Environment Constants
ENV_PRODUCTION = "production"
ENV_STAGING = "staging"
ENV_DEVELOPMENT = "development"
ENV_LOCAL = "local"


@lru_cache
def get_settings() -> "Settings":
    """Returns a singleton instance of the application settings."""
    return Settings()


_settings_reload_lock = Lock()


def reload_settings_from_environment() -> "Settings":
    """
    Atomically rebuild and replace cached settings from environment values.

    This avoids mutating the cached singleton instance in-place.
    """
    logger = structlog.get_logger()
    with _settings_reload_lock:
        logger.info("settings_reload_started")
        get_settings.cache_clear()
        refreshed = get_settings()
        logger.info("settings_reload_completed")
        return refreshed


class Settings(BaseSettings):
    """
    Main configuration for the hosting panel.
    Uses Pydantic-Settings for environment variable parsing from .env.
    """

    APP_NAME: str = "HostPanel"
    VERSION: str = "0.1.0"
    DEBUG: bool = False
    # ENVIRONMENT options: local, development, staging, production
    ENVIRONMENT: str = ENV_DEVELOPMENT
    TESTING: bool = False

    # Database
    DATABASE_URL: Optional[str] = None
    DB_ECHO: bool = False
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20

    # Pterodactyl application API
    PTERODACTYL_URL: Optional[str] = None
    PTERODACTYL_API_KEY: Optional[str] = None
    PTERODACTYL_TIMEOUT_SECONDS: float = 30.0
    # 1 disables retries around provider calls.
    PROVIDER_RETRY_ATTEMPTS: int = 3

    # Mail (delivery transport itself is external)
    MAIL_ENABLED: bool = True

    # Credit billing
    BILLING_SCHEDULER_ENABLED: bool = False
    BILLING_INTERVAL_MINUTES: int = 60
    BILLING_MAX_CONCURRENCY: int = 10

    model_config = SettingsConfigDict(env_file=".env", env_ignore_empty=True)

    @model_validator(mode="after")
    def validate_all_config(self) -> "Settings":
        """Centralized validation, grouped by concern."""
        if self.TESTING and self.ENVIRONMENT in {ENV_PRODUCTION, ENV_STAGING}:
            raise ValueError(
                "TESTING must be false in staging/production runtime environments."
            )

        self._validate_billing_config()
        if self.TESTING:
            return self

        self._validate_database_config()
        self._validate_provider_config()
        return self

    def _validate_database_config(self) -> None:
        if self.is_production and not self.DATABASE_URL:
            raise ValueError("DATABASE_URL is required in production.")

    def _validate_provider_config(self) -> None:
        """Provider credentials are mandatory outside local development."""
        if self.ENVIRONMENT in {ENV_LOCAL, ENV_DEVELOPMENT}:
            if not self.PTERODACTYL_URL or not self.PTERODACTYL_API_KEY:
                structlog.get_logger().info(
                    "pterodactyl_config_missing_non_prod",
                    environment=self.ENVIRONMENT,
                )
            return

        if not self.PTERODACTYL_URL:
            raise ValueError("PTERODACTYL_URL is required.")
        if not self.PTERODACTYL_URL.startswith("https://"):
            raise ValueError("PTERODACTYL_URL must use https:// outside development.")
        if not self.PTERODACTYL_API_KEY:
            raise ValueError("PTERODACTYL_API_KEY is required.")

    def _validate_billing_config(self) -> None:
        if self.BILLING_INTERVAL_MINUTES < 1:
            raise ValueError("BILLING_INTERVAL_MINUTES must be >= 1.")
        if self.BILLING_MAX_CONCURRENCY < 1:
            raise ValueError("BILLING_MAX_CONCURRENCY must be >= 1.")
        if self.PROVIDER_RETRY_ATTEMPTS < 1:
            raise ValueError("PROVIDER_RETRY_ATTEMPTS must be >= 1.")
        if self.PTERODACTYL_TIMEOUT_SECONDS <= 0:
            raise ValueError("PTERODACTYL_TIMEOUT_SECONDS must be > 0.")

    @property
    def is_production(self) -> bool:
        """True only when ENVIRONMENT is explicitly set to 'production'."""
        return self.ENVIRONMENT == ENV_PRODUCTION

    @property
    def pterodactyl_base_url(self) -> str:
        """Panel URL without a trailing slash."""
        return (self.PTERODACTYL_URL or "").rstrip("/")
