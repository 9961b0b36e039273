import logging
from functools import lru_cache
from typing import List, Optional

from pydantic import ConfigDict
from pydantic_settings import BaseSettings

from atsscanner.core.exceptions import ConfigurationMissing

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite:///./atsscanner.db"

    # Security
    SECRET_KEY: Optional[str] = None
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Stripe
    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_WEBHOOK_SECRET: Optional[str] = None
    STRIPE_PRICE_ID_BASIC: Optional[str] = None
    STRIPE_PRICE_ID_PREMIUM: Optional[str] = None
    STRIPE_PRICE_ID_ENTERPRISE: Optional[str] = None

    # Usage limits
    ANONYMOUS_FREE_SCAN_LIMIT: int = 3

    # CORS (comma-separated)
    CORS_ORIGINS: str = "http://localhost:3000,http://127.0.0.1:3000"

    model_config = ConfigDict(env_file=".env", extra="ignore")

    @property
    def is_production(self) -> bool:
        return self.ENV.lower() in ("prod", "production")

    @property
    def cors_origins(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    def validate_required(self) -> None:
        """
        Fail fast on missing required configuration.

        SECRET_KEY is always required. Production deployments also need the
        Stripe API key and webhook secret.

        Raises:
            ConfigurationMissing: If any required key is absent
        """
        missing = []
        if not self.SECRET_KEY:
            missing.append("SECRET_KEY")
        if self.is_production:
            if not self.STRIPE_SECRET_KEY:
                missing.append("STRIPE_SECRET_KEY")
            if not self.STRIPE_WEBHOOK_SECRET:
                missing.append("STRIPE_WEBHOOK_SECRET")

        if missing:
            raise ConfigurationMissing(f"Missing required configuration: {', '.join(missing)}")

        if not self.STRIPE_SECRET_KEY:
            logger.warning("STRIPE_SECRET_KEY not configured - Stripe features disabled")
        if not self.STRIPE_WEBHOOK_SECRET:
            logger.warning("STRIPE_WEBHOOK_SECRET not configured - webhooks will be rejected")


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance, injectable with FastAPI Depends."""
    return Settings()
