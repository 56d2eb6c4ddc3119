# backend/storefront/core/settings.py
"""
Storefront - Configuration Management with pydantic-settings

- Loads from environment and root .env
- Validates and normalizes values
- Cached singleton via get_settings()
"""
from functools import lru_cache
from pathlib import Path
from typing import Optional, List
from decimal import Decimal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# backend/storefront/core/settings.py -> <repo>/.env
_ENV_FILE = Path(__file__).resolve().parent.parent.parent.parent / ".env"


class Settings(BaseSettings):
    """
    Application settings with validation.

    Environment variables take precedence over .env file values.
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ===================
    # Application Settings
    # ===================
    PROJECT_NAME: str = "Storefront"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    DEBUG: bool = Field(default=False, description="Enable debug mode")
    ENVIRONMENT: str = Field(default="development", description="Deployment environment")
    APP_URL: str = Field(
        default="http://localhost:3000",
        description="Public shop URL used for payment redirects and webhooks",
    )

    # ===================
    # Database Settings
    # ===================
    DB_HOST: str = Field(default="localhost", description="PostgreSQL host")
    DB_PORT: int = Field(default=5432, description="PostgreSQL port")
    DB_NAME: str = Field(default="storefront", description="Database name")
    DB_USER: str = Field(default="postgres", description="Database user")
    DB_PASSWORD: str = Field(default="postgres", description="Database password")
    DATABASE_URL: Optional[str] = Field(
        default=None, description="Full database URL (overrides DB_* settings)"
    )

    @property
    def database_url(self) -> str:
        """Build PostgreSQL database URL from components or use explicit URL."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )

    # ===================
    # Security Settings
    # ===================
    SECRET_KEY: str = Field(
        default="change-this-to-a-random-secret-key-in-production",
        description="JWT signing key - MUST change in production",
    )
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(
        default=30, description="JWT token expiration in minutes"
    )

    @field_validator("SECRET_KEY")
    @classmethod
    def warn_default_secret(cls, v: str) -> str:
        """Fail in prod if default secret; warn in dev."""
        if "change-this" in v.lower():
            import warnings
            import os

            if os.getenv("ENVIRONMENT", "development").lower() == "production":
                raise ValueError(
                    "Default SECRET_KEY detected in production. Set a secure SECRET_KEY."
                )
            warnings.warn(
                "WARNING: Using default SECRET_KEY. Do not use this in production.",
                UserWarning,
                stacklevel=2,
            )
        return v

    # ===================
    # CORS Settings
    # ===================
    ALLOWED_ORIGINS: List[str] = Field(
        default=[
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ],
        description="Allowed CORS origins",
    )

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @model_validator(mode="after")
    def add_app_url_to_cors(self):
        """Ensure APP_URL is allowed for CORS."""
        if self.APP_URL and self.APP_URL not in self.ALLOWED_ORIGINS:
            self.ALLOWED_ORIGINS = list(self.ALLOWED_ORIGINS) + [self.APP_URL]
        return self

    # ===================
    # Cron / Scheduler
    # ===================
    CRON_SECRET: Optional[str] = Field(
        default=None, description="Shared bearer secret for /cron endpoints"
    )
    SCHEDULER_ENABLED: bool = Field(
        default=False, description="Run janitors in-process with APScheduler"
    )
    SCHEDULER_TIMEZONE: str = "Europe/Kyiv"
    AUTO_CANCEL_INTERVAL_MINUTES: int = 60
    AUTO_TRACKING_INTERVAL_MINUTES: int = 120
    CLEANUP_INTERVAL_HOURS: int = 24
    NOTIFICATION_DISPATCH_INTERVAL_SECONDS: int = 30

    @model_validator(mode="after")
    def require_cron_secret_in_production(self):
        if self.ENVIRONMENT.lower() == "production" and not self.CRON_SECRET:
            raise ValueError("CRON_SECRET must be set in production.")
        return self

    # ===================
    # Order Policy
    # ===================
    ORDER_AUTO_CANCEL_HOURS: int = 72
    AUTO_TRACKING_BATCH_SIZE: int = 50
    CART_TTL_DAYS: int = 30
    WHOLESALE_MIN_ORDER_AMOUNT: float = 0.0

    @property
    def wholesale_min_order_amount(self) -> Decimal:
        return Decimal(str(self.WHOLESALE_MIN_ORDER_AMOUNT))

    # ===================
    # Payments
    # ===================
    LIQPAY_PUBLIC_KEY: Optional[str] = None
    LIQPAY_PRIVATE_KEY: Optional[str] = None
    LIQPAY_CHECKOUT_URL: str = "https://www.liqpay.ua/api/3/checkout"

    MONOBANK_TOKEN: Optional[str] = None
    MONOBANK_API_URL: str = "https://api.monobank.ua/api/merchant"
    MONOBANK_PUBLIC_KEY: Optional[str] = Field(
        default=None,
        description="Base64 public key; skips the /pubkey lookup when set",
    )

    # ===================
    # Nova Poshta
    # ===================
    NOVA_POSHTA_API_KEY: Optional[str] = None
    NOVA_POSHTA_API_URL: str = "https://api.novaposhta.ua/v2.0/json/"

    # ===================
    # Outbound HTTP
    # ===================
    EXTERNAL_API_TIMEOUT: float = Field(
        default=10.0, description="Timeout (seconds) for provider/carrier calls"
    )

    # ===================
    # Notifications
    # ===================
    TELEGRAM_BOT_TOKEN: Optional[str] = None
    TELEGRAM_API_URL: str = "https://api.telegram.org"
    TELEGRAM_MANAGER_CHAT_ID: Optional[str] = None
    NOTIFICATION_MAX_ATTEMPTS: int = 5
    NOTIFICATION_BATCH_SIZE: int = 100

    SMTP_HOST: str = "smtp.gmail.com"
    SMTP_PORT: int = 587
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_FROM_EMAIL: str = "noreply@example.com"
    SMTP_FROM_NAME: str = "Storefront"
    SMTP_TLS: bool = True

    # ===================
    # Logging
    # ===================
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # json or text
    LOG_FILE: Optional[str] = None

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"


@lru_cache
def get_settings() -> Settings:
    """Singleton settings loader (cached)."""
    return Settings()


settings = get_settings()
