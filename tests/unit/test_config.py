"""Unit tests for configuration module."""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from storefront.core.config import Settings, get_settings

REQUIRED = {
    "SUPABASE_URL": "https://test.supabase.co",
    "SUPABASE_SECRET_KEY": "test-secret",
    "SUPABASE_SIGNING_KEY_JWK": "{}",
}


class TestSettings:
    """Tests for Settings class."""

    def test_settings_loads_from_environment(self) -> None:
        """Test that Settings loads values from environment variables."""
        env_vars = {
            **REQUIRED,
            "APP_NAME": "test-app",
            "APP_ENV": "testing",
            "DEBUG": "true",
            "HOST": "127.0.0.1",
            "PORT": "9000",
            "SHIPPING_FEE_CENTS": "750",
            "GATEWAY_TIMEOUT_SECONDS": "5",
        }

        with patch.dict(os.environ, env_vars, clear=False):
            settings = Settings()

            assert settings.app_name == "test-app"
            assert settings.app_env == "testing"
            assert settings.debug is True
            assert settings.port == 9000
            assert settings.shipping_fee_cents == 750
            assert settings.gateway_timeout_seconds == 5.0
            assert settings.base_currency == "usd"

    def test_settings_cors_origins_list(self) -> None:
        """Test that CORS origins are correctly parsed into a list."""
        env_vars = {**REQUIRED, "CORS_ORIGINS": "http://localhost:3000, http://example.com , ,http://admin.test"}

        with patch.dict(os.environ, env_vars, clear=False):
            origins = Settings().cors_origins_list

            assert origins == ["http://localhost:3000", "http://example.com", "http://admin.test"]

    def test_settings_is_production_property(self) -> None:
        with patch.dict(os.environ, {**REQUIRED, "APP_ENV": "production"}, clear=False):
            assert Settings().is_production is True

    def test_missing_supabase_url(self) -> None:
        """Test that a required setting must be present."""
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ValidationError):
                Settings(_env_file=None)

    def test_negative_shipping_fee_is_rejected(self) -> None:
        with patch.dict(os.environ, {**REQUIRED, "SHIPPING_FEE_CENTS": "-1"}, clear=False):
            with pytest.raises(ValidationError):
                Settings()


class TestGatewayMode:
    """Tests for the Stripe key / gateway mode check."""

    def test_test_key_in_sandbox(self) -> None:
        env_vars = {**REQUIRED, "STRIPE_SECRET_KEY": "sk_test_abc", "GATEWAY_MODE": "sandbox"}

        with patch.dict(os.environ, env_vars, clear=False):
            settings = Settings()

            assert settings.is_gateway_live is False

    def test_live_key_in_live_mode(self) -> None:
        env_vars = {**REQUIRED, "STRIPE_SECRET_KEY": "sk_live_abc", "GATEWAY_MODE": "live"}

        with patch.dict(os.environ, env_vars, clear=False):
            assert Settings().is_gateway_live is True

    def test_live_key_in_sandbox_is_rejected(self) -> None:
        """Test that real money cannot be charged while configured as sandbox."""
        env_vars = {**REQUIRED, "STRIPE_SECRET_KEY": "sk_live_abc", "GATEWAY_MODE": "sandbox"}

        with patch.dict(os.environ, env_vars, clear=False):
            with pytest.raises(ValidationError, match="GATEWAY_MODE=live"):
                Settings()

    def test_test_key_in_live_mode_is_rejected(self) -> None:
        env_vars = {**REQUIRED, "STRIPE_SECRET_KEY": "sk_test_abc", "GATEWAY_MODE": "live"}

        with patch.dict(os.environ, env_vars, clear=False):
            with pytest.raises(ValidationError, match="GATEWAY_MODE=sandbox"):
                Settings()

    def test_unknown_mode_is_rejected(self) -> None:
        with patch.dict(os.environ, {**REQUIRED, "GATEWAY_MODE": "production"}, clear=False):
            with pytest.raises(ValidationError):
                Settings()


class TestGetSettings:
    """Tests for get_settings function."""

    def test_get_settings_returns_cached_instance(self) -> None:
        get_settings.cache_clear()

        assert get_settings() is get_settings()


class TestConfigureStripe:
    """Tests for the Stripe SDK setup."""

    def test_uses_async_http_client_without_retries(self) -> None:
        from storefront.core.stripe import configure_stripe

        with patch("storefront.core.stripe.stripe") as mock_stripe:
            configure_stripe()

        mock_stripe.HTTPXClient.assert_called_once_with(timeout=get_settings().gateway_timeout_seconds)
        assert mock_stripe.default_http_client is mock_stripe.HTTPXClient.return_value
        assert mock_stripe.max_network_retries == 0
