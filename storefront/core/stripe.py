"""Stripe SDK setup."""

import logging
from typing import Any

import stripe

from storefront.core.config import get_settings

logger = logging.getLogger(__name__)


def configure_stripe() -> None:
    """Point the Stripe SDK at our key and an async HTTP client.

    Called once at startup. Requests go through httpx's async client so
    gateway calls are awaited rather than run on the event loop thread;
    each one is bounded by gateway_timeout_seconds and never retried by the
    SDK itself.
    """
    settings = get_settings()
    if settings.stripe_secret_key:
        stripe.api_key = settings.stripe_secret_key
    else:
        logger.warning("Stripe secret key not configured. Gateway payments will not work.")

    stripe.max_network_retries = 0
    stripe.default_http_client = stripe.HTTPXClient(timeout=settings.gateway_timeout_seconds)


def get_stripe() -> Any:
    """Return the stripe module; configuration is module-level."""
    return stripe
