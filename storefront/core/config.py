"""
Application configuration

SECURITY: Defaults are fail-safe for production.
- DEBUG defaults to False
- SECRET_KEY and DATABASE_URL have no defaults (will fail if not set)
- Runtime validation catches insecure configurations and missing gateway keys
"""
import json
import os
import logging
from typing import List, Union
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:5173",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:5173",
]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # App - defaults are PRODUCTION safe
    APP_NAME: str = "Storefront Checkout"
    DEBUG: bool = False
    ENVIRONMENT: str = "production"

    # Public URL of the storefront (gateway callbacks are built from it)
    APP_URL: str = "http://localhost:8000"

    # Database - NO DEFAULT (will fail if not set)
    DATABASE_URL: str

    @field_validator("DATABASE_URL", mode="before")
    @classmethod
    def convert_database_url(cls, v):
        """Convert plain postgres:// URLs to the asyncpg driver."""
        if not v:
            return v
        if v.startswith("postgres://"):
            v = v.replace("postgres://", "postgresql+asyncpg://", 1)
        elif v.startswith("postgresql://") and "+asyncpg" not in v:
            v = v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    # Auth - NO DEFAULT SECRET KEY (will fail if not set)
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # CORS - accepts JSON array or comma-separated string
    CORS_ORIGINS: Union[str, List[str]] = DEFAULT_CORS_ORIGINS

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, list):
            return v
        if isinstance(v, str):
            if not v or v.strip() == "":
                return DEFAULT_CORS_ORIGINS
            if v.startswith("["):
                try:
                    return json.loads(v)
                except json.JSONDecodeError:
                    pass
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    # Card gateway (Stripe)
    STRIPE_SECRET_KEY: str = ""
    STRIPE_CURRENCY: str = "mad"
    STRIPE_MINIMUM_CHARGE: int = 50  # smallest chargeable amount, minor units

    # Wallet gateway (PayPal Orders v2)
    PAYPAL_CLIENT_ID: str = ""
    PAYPAL_CLIENT_SECRET: str = ""
    PAYPAL_MODE: str = "sandbox"  # sandbox or live
    PAYPAL_CURRENCY: str = "USD"
    PAYPAL_TIMEOUT_SECONDS: float = 30.0
    # Store currency -> wallet currency: wallet_amount = total / divisor
    WALLET_CONVERSION_DIVISOR: float = 10.0
    WALLET_ATTEMPT_TTL_MINUTES: int = 60

    # Checkout
    SHIPPING_FLAT_RATE: float = 50.0

    # Checkout correlation cookies
    CHECKOUT_COOKIE_SECURE: bool = True
    CHECKOUT_COOKIE_SAMESITE: str = "lax"

    # Abandoned checkout sweeper (off unless explicitly enabled)
    CHECKOUT_CLEANUP_ENABLED: bool = False
    CHECKOUT_CLEANUP_INTERVAL_MINUTES: int = 15
    PENDING_CARD_ORDER_TTL_MINUTES: int = 1440

    # Rate Limiting
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_DEFAULT: str = "100/minute"
    RATE_LIMIT_CHECKOUT: str = "10/minute"

    # Database Pool Configuration
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_RECYCLE: int = 3600

    @field_validator("PAYPAL_MODE")
    @classmethod
    def validate_paypal_mode(cls, v):
        v = v.lower()
        if v not in ("sandbox", "live"):
            raise ValueError("PAYPAL_MODE must be 'sandbox' or 'live'")
        return v

    @field_validator("WALLET_CONVERSION_DIVISOR")
    @classmethod
    def validate_conversion_divisor(cls, v):
        if v <= 0:
            raise ValueError("WALLET_CONVERSION_DIVISOR must be positive")
        return v

    @model_validator(mode="after")
    def validate_production_config(self):
        """Runtime validation to catch insecure production configurations."""
        if self.ENVIRONMENT == "production":
            errors = []

            if self.DEBUG:
                errors.append(
                    "DEBUG=True is forbidden in production. "
                    "Set DEBUG=false or ENVIRONMENT=development"
                )

            insecure_secrets = [
                "your-secret-key",
                "change-in-production",
                "secret",
                "password",
                "changeme",
            ]
            if any(bad in self.SECRET_KEY.lower() for bad in insecure_secrets):
                errors.append(
                    "Insecure SECRET_KEY detected in production. "
                    "Generate a secure key: python -c 'import secrets; print(secrets.token_urlsafe(32))'"
                )

            if "localhost" in self.DATABASE_URL or "127.0.0.1" in self.DATABASE_URL:
                errors.append(
                    "Localhost DATABASE_URL detected in production. "
                    "Configure proper database connection."
                )

            if not self.STRIPE_SECRET_KEY:
                errors.append("STRIPE_SECRET_KEY is required in production.")

            if not self.PAYPAL_CLIENT_ID or not self.PAYPAL_CLIENT_SECRET:
                errors.append("PAYPAL_CLIENT_ID and PAYPAL_CLIENT_SECRET are required in production.")

            for origin in self.CORS_ORIGINS:
                if origin == "*":
                    errors.append("Wildcard '*' CORS origin is forbidden in production")
                elif "localhost" in origin or "127.0.0.1" in origin:
                    errors.append(f"Localhost CORS origin '{origin}' is forbidden in production")

            if errors:
                raise ValueError(
                    "PRODUCTION SECURITY VIOLATIONS:\n" + "\n".join(f"  - {e}" for e in errors)
                )

        return self


# Try to load settings, provide helpful error on failure
try:
    settings = Settings()
except Exception:
    if os.getenv("ENVIRONMENT", "development") == "development":
        logger.warning(
            "Settings validation failed, using development defaults. "
            "Set DATABASE_URL and SECRET_KEY in .env file."
        )
        os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./storefront.db")
        os.environ.setdefault("SECRET_KEY", "dev-only-key-not-for-production")
        os.environ.setdefault("ENVIRONMENT", "development")
        settings = Settings()
    else:
        raise
