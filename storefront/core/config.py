"""Application configuration management using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    Required settings will raise validation errors if not provided.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="storefront-backend", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/staging/production)")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")
    max_request_body_size: int = Field(default=1_048_576, description="Maximum request body size in bytes")

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173,http://localhost:5174",
        description="Comma-separated list of allowed CORS origins (storefront and admin console)",
    )

    # Supabase
    supabase_url: str = Field(..., description="Supabase project URL")
    supabase_secret_key: str = Field(..., description="Supabase secret key for backend operations")
    supabase_signing_key_jwk: str = Field(..., description="Supabase signing key JWK (JSON string) for JWT token verification")

    # Deprecated static admin secret, empty disables it
    legacy_admin_token: str = Field(default="", description="Deprecated shared admin secret accepted in place of a JWT")

    # Payment gateway (Stripe)
    stripe_secret_key: str = Field(default="", description="Stripe secret API key")
    stripe_webhook_secret: str = Field(default="", description="Stripe webhook signing secret")
    stripe_publishable_key: str = Field(default="", description="Stripe publishable key (for frontend)")
    gateway_mode: Literal["sandbox", "live"] = Field(default="sandbox", description="Gateway mode (sandbox/live)")
    gateway_timeout_seconds: float = Field(default=20.0, gt=0, description="Timeout for a single gateway call")
    gateway_min_amount_cents: int = Field(default=50, ge=1, description="Smallest amount the gateway accepts, in cents")

    # Commerce
    base_currency: Literal["usd"] = Field(default="usd", description="The single currency every order is denominated in")
    shipping_fee_cents: int = Field(default=1000, ge=0, description="Flat shipping fee in cents")

    # Email (Resend)
    resend_api_key: str = Field(default="", description="Resend API key for sending emails")
    email_from_address: str = Field(
        default="Storefront <orders@storefront.example>",
        description="From address for transactional emails",
    )

    # Frontend
    frontend_url: str = Field(
        default="http://localhost:5173",
        description="Storefront URL used in email links and default payment return URLs",
    )

    @model_validator(mode="after")
    def check_gateway_mode(self) -> "Settings":
        """Reject a Stripe key that does not match the configured gateway mode.

        Test keys (sk_test_) belong to sandbox mode and live keys (sk_live_)
        to live mode. An empty key is allowed; gateway calls then fail with
        a clear error at request time.
        """
        key = self.stripe_secret_key
        if key.startswith("sk_live_") and self.gateway_mode != "live":
            raise ValueError("A live Stripe key requires GATEWAY_MODE=live")
        if key.startswith("sk_test_") and self.gateway_mode != "sandbox":
            raise ValueError("A test Stripe key requires GATEWAY_MODE=sandbox")
        return self

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins string into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @property
    def is_gateway_live(self) -> bool:
        """Check if the payment gateway runs against live money."""
        return self.gateway_mode == "live"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings: Application settings instance.

    Note:
        Settings are cached using lru_cache for performance.
        Call get_settings.cache_clear() to reload settings.
    """
    return Settings()
