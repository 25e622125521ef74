"""
Configuration management for the storefront order engine.

Loads settings from .env via pydantic-settings.

Security notes:
    - validate_production_settings() refuses to boot a production instance
      that would accept unsigned webhooks or use the simulated processor
    - Payment API key and webhook secret are never logged
"""
import logging
from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ── Database ────────────────────────────────────────────────────
    database_url: str = "sqlite:///./data/orders.db"

    # ── Application ─────────────────────────────────────────────────
    environment: str = "development"
    simulation_mode: bool = True  # use the in-process payment processor
    store_name: str = "Storefront"
    public_base_url: str = "http://localhost:3000"

    # ── Payment Processor (hosted charges) ──────────────────────────
    payment_api_key: str = ""
    payment_api_url: str = "https://api.commerce.coinbase.com"
    payment_api_version: str = "2018-03-22"
    payment_timeout_seconds: float = 10.0

    # ── Webhooks ────────────────────────────────────────────────────
    webhook_secret: str = ""
    webhook_signature_header: str = "X-CC-Webhook-Signature"

    # ── Checkout ────────────────────────────────────────────────────
    currency: str = "USD"
    default_delivery_fee: Decimal = Decimal("5.00")
    checkout_idempotency_window_seconds: int = 600
    checkout_rate_limit: int = 10
    checkout_rate_window_seconds: int = 60

    # ── Auth (JWT) ──────────────────────────────────────────────────
    jwt_secret: str = ""
    jwt_issuer: str = "storefront-api"
    jwt_access_ttl_minutes: int = 15

    # ── CORS ────────────────────────────────────────────────────────
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    def validate_production_settings(self):
        """
        Validate settings for production safety.

        Called during app startup. In production every missing secret is
        fatal; elsewhere the insecure settings are only logged.
        """
        if self.environment == "production":
            if "*" in self.cors_origins:
                raise ValueError(
                    "CORS_ORIGINS must not contain '*' in production. "
                    "Set explicit allowed origins."
                )
            if self.simulation_mode:
                raise ValueError(
                    "SIMULATION_MODE must be false in production. "
                    "The simulated processor never collects payment."
                )
            if not self.webhook_secret:
                raise ValueError(
                    "WEBHOOK_SECRET must be set in production. "
                    "Without it every payment webhook is rejected."
                )
            if not self.payment_api_key:
                raise ValueError("PAYMENT_API_KEY must be set in production.")
            if not self.jwt_secret:
                raise ValueError(
                    "JWT_SECRET must be set in production. "
                    "It is used to verify caller identity tokens."
                )
            logger.info("Production settings validated")
        else:
            warnings = []
            if self.simulation_mode:
                warnings.append("SIMULATION_MODE=true (charges are simulated)")
            if not self.webhook_secret:
                warnings.append("WEBHOOK_SECRET not set (webhooks will be rejected)")
            if "*" in self.cors_origins:
                warnings.append("CORS_ORIGINS contains '*' (open access)")
            for w in warnings:
                logger.warning(w)


# Global settings instance
settings = Settings()
