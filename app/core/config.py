"""
Centralized application configuration

All runtime settings for the Dekop store backend are read from the
environment (or a local .env file) through pydantic-settings.
"""
import json
from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings"""

    # API Settings
    API_TITLE: str = "Dekop Store API"
    API_VERSION: str = "1.0.0"
    API_DESCRIPTION: str = "Storefront and back office API for Dekop Furniture"
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    BASE_URL: str = "http://localhost:3000"
    ADMIN_PATH: str = "admin"

    # Database
    DATABASE_URL: str = ""

    # Secrets
    SESSION_SECRET: str = ""
    CSRF_SECRET: str = ""
    COOKIE_ENCRYPTION_SECRET: str = ""
    CRON_SECRET: str = ""

    # CORS - Can be string (comma-separated) or JSON array
    ALLOWED_ORIGINS: Optional[str] = "http://localhost:3000"

    # Payment providers
    LIQPAY_PUBLIC_KEY: str = ""
    LIQPAY_PRIVATE_KEY: str = ""
    MONOBANK_TOKEN: str = ""
    MONOBANK_PUBLIC_KEY: str = ""
    STRIPE_SECRET_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""

    # Email (Resend)
    RESEND_API_KEY: str = ""
    RESEND_FROM_EMAIL: str = "noreply@dekop.com.ua"
    RESEND_FROM_NAME: str = "Dekop Furniture Store"
    RESEND_WEBHOOK_SECRET: str = ""

    # Webhook IP whitelists (comma-separated IPs or CIDR ranges)
    DISABLE_WEBHOOK_IP_VALIDATION: bool = False
    LIQPAY_WEBHOOK_IPS: str = ""
    MONOBANK_WEBHOOK_IPS: str = ""
    STRIPE_WEBHOOK_IPS: str = ""

    # Orders
    ORDER_PREPAYMENT_PERCENTAGE: float = 0.20
    ORDER_PAYMENT_DEADLINE_HOURS: int = 48

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT.lower() == "development"

    def get_allowed_origins(self) -> List[str]:
        """Parse ALLOWED_ORIGINS string into list"""
        if not self.ALLOWED_ORIGINS:
            return ["http://localhost:3000"]

        # Try JSON parse first (for array format)
        try:
            origins = json.loads(self.ALLOWED_ORIGINS)
            if isinstance(origins, list):
                return origins
        except (json.JSONDecodeError, ValueError):
            pass

        # Fall back to comma-separated string
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",")]

    def get_webhook_ips(self, provider: str) -> List[str]:
        """Whitelisted source addresses for a payment provider's webhooks"""
        raw = getattr(self, f"{provider.upper()}_WEBHOOK_IPS", "") or ""
        return [ip.strip() for ip in raw.split(",") if ip.strip()]

    def get_csrf_secret(self) -> str:
        secret = self.SESSION_SECRET or self.CSRF_SECRET
        if not secret:
            raise ValueError("SESSION_SECRET or CSRF_SECRET environment variable is not set")
        return secret

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


settings = Settings()
