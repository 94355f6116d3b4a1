# backend/bookrail/core/config.py
from decimal import Decimal
import logging
import os
from pathlib import Path
from typing import Literal, Optional, Set

from dotenv import load_dotenv
from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def is_running_tests() -> bool:
    """
    Detect if code is running under pytest.

    PYTEST_CURRENT_TEST is set automatically by pytest during test runs, and is
    not expected to be present in production environments.
    """
    return os.getenv("PYTEST_CURRENT_TEST") is not None


logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.debug(f"[CONFIG] Looking for .env at: {env_path}")
    load_dotenv(env_path)


PROD_SITE_MODES: Set[str] = {"prod", "production", "live"}

PLAID_BASE_URLS = {
    "sandbox": "https://sandbox.plaid.com",
    "development": "https://development.plaid.com",
    "production": "https://production.plaid.com",
}


def _default_environment() -> str:
    raw = (os.getenv("SITE_MODE", "local") or "").strip().lower()
    return "production" if raw in PROD_SITE_MODES else "development"


class Settings(BaseSettings):
    environment: str = Field(default_factory=_default_environment)
    log_level: str = Field(default="INFO", description="Root logging level")
    api_host: str = Field(default="0.0.0.0", description="Bind address for the API server")
    api_port: int = Field(default=8000, ge=1, le=65535)

    database_url: str = Field(
        default="sqlite+pysqlite:///./bookrail.db",
        description="SQLAlchemy database URL",
    )

    # Settlement split
    platform_fee_percent: Decimal = Field(
        default=Decimal("10"),
        description="Platform fee charged on top of the service price (10 = 10%)",
    )
    currency: str = Field(default="usd", description="Currency for both payment rails")

    # Fee rail (Stripe)
    stripe_secret_key: SecretStr = Field(
        default=SecretStr(""),
        description="Stripe secret key for backend API calls",
    )
    stripe_timeout_seconds: float = Field(
        default=8.0, description="Network timeout for Stripe calls"
    )

    # Transfer rail (Plaid Transfer)
    plaid_client_id: str = Field(default="", description="Plaid client id")
    plaid_secret: SecretStr = Field(default=SecretStr(""), description="Plaid secret")
    plaid_env: Literal["sandbox", "development", "production"] = Field(
        default="sandbox", description="Target Plaid environment"
    )
    plaid_timeout_seconds: float = Field(
        default=10.0, description="Network timeout for Plaid calls"
    )
    plaid_client_name: str = Field(
        default="Bookrail", description="App name shown to providers in Plaid Link"
    )

    rails_fake: Optional[bool] = Field(
        default=None,
        alias="RAILS_FAKE",
        description="When true, use in-memory rails. Defaults to true outside production "
        "when no rail credentials are configured.",
    )

    # Caller-side retry policy
    rail_retry_attempts: int = Field(default=3, ge=1)
    rail_retry_backoff_seconds: float = Field(default=0.5, ge=0)
    concurrency_retry_attempts: int = Field(default=3, ge=1)
    concurrency_retry_backoff_seconds: float = Field(default=0.05, ge=0)

    # Bookings still CONFIRMED this many hours after their slot are completed
    # by the scheduler. None disables auto-completion.
    auto_complete_grace_hours: Optional[int] = Field(default=None, ge=0)

    # Notifier outbox
    outbox_max_delivery_attempts: int = Field(default=5, ge=1)
    outbox_dispatch_interval_seconds: int = Field(default=30, ge=1)
    celery_broker_url: str = Field(default="redis://localhost:6379/0")

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("platform_fee_percent")
    @classmethod
    def _validate_fee_percent(cls, value: Decimal) -> Decimal:
        if value < 0 or value > 100:
            raise ValueError("platform_fee_percent must be between 0 and 100")
        return value

    @model_validator(mode="after")
    def _derive_rails_fake(self) -> "Settings":
        if self.rails_fake is None:
            has_credentials = bool(self.stripe_secret_key.get_secret_value()) and bool(
                self.plaid_client_id and self.plaid_secret.get_secret_value()
            )
            self.rails_fake = self.environment != "production" and not has_credentials
        if self.rails_fake and self.environment == "production":
            logger.warning("[CONFIG] Fake payment rails enabled in production")
        return self

    @property
    def plaid_base_url(self) -> str:
        return PLAID_BASE_URLS[self.plaid_env]

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


settings = Settings()
