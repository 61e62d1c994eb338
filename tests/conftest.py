"""Pytest configuration and fixtures."""

import os
from collections.abc import Callable, Generator
from datetime import datetime, timezone
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import UUID

import pytest
from fastapi.testclient import TestClient

# Set test environment variables before importing application modules
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_SECRET_KEY", "test-secret-key")
os.environ.setdefault("SUPABASE_SIGNING_KEY_JWK", "test-signing-key-jwk")
os.environ.setdefault("LEGACY_ADMIN_TOKEN", "legacy-admin-secret")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_stripe_secret_key")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_webhook_secret")
os.environ.setdefault("STRIPE_PUBLISHABLE_KEY", "pk_test_stripe_publishable_key")
os.environ.setdefault("GATEWAY_MODE", "sandbox")

USER_ID = "550e8400-e29b-41d4-a716-446655440000"
OTHER_USER_ID = "550e8400-e29b-41d4-a716-446655440099"
ADMIN_ID = "990e8400-e29b-41d4-a716-446655440000"
ORDER_ID = "660e8400-e29b-41d4-a716-446655440000"

USER_TOKEN = "user.session.token"
OTHER_USER_TOKEN = "other.session.token"
ADMIN_TOKEN = "admin.session.token"


@pytest.fixture(scope="session")
def test_settings() -> Generator[Any, None, None]:
    """Provide test settings with cleared cache.

    Yields:
        Settings: Test configuration settings.
    """
    from storefront.core.config import get_settings

    get_settings.cache_clear()
    settings = get_settings()
    yield settings
    get_settings.cache_clear()


@pytest.fixture
def mock_supabase_client() -> Generator[MagicMock, None, None]:
    """Provide a mocked Supabase client.

    Yields:
        MagicMock: Mocked Supabase client for testing.
    """
    mock_client = MagicMock()

    mock_response = MagicMock()
    mock_response.data = []
    mock_client.table.return_value.select.return_value.limit.return_value.execute.return_value = (
        mock_response
    )

    with patch("storefront.core.supabase.get_supabase_client", return_value=mock_client):
        yield mock_client


@pytest.fixture
def client(mock_supabase_client: MagicMock) -> Generator[TestClient, None, None]:
    """Provide a test client for the FastAPI application.

    Yields:
        TestClient: FastAPI test client.
    """
    from storefront.main import create_app

    with TestClient(create_app()) as test_client:
        yield test_client


def _token_payload(sub: str, email: str, role: str | None) -> Any:
    from storefront.schemas.auth import TokenPayload

    now = int(datetime.now(timezone.utc).timestamp())
    return TokenPayload(
        sub=sub,
        email=email,
        role="authenticated",
        app_metadata={"role": role} if role else {},
        exp=now + 3600,
        iat=now,
    )


@pytest.fixture
def session_tokens() -> Generator[MagicMock, None, None]:
    """Make USER_TOKEN, OTHER_USER_TOKEN and ADMIN_TOKEN verify as real sessions.

    Any other JWT-shaped token is rejected as invalid.
    """
    from storefront.api.middleware.auth import AuthError, AuthErrorCode

    payloads = {
        USER_TOKEN: _token_payload(USER_ID, "buyer@example.com", None),
        OTHER_USER_TOKEN: _token_payload(OTHER_USER_ID, "other@example.com", None),
        ADMIN_TOKEN: _token_payload(ADMIN_ID, "admin@example.com", "admin"),
    }

    def decode(token: str) -> Any:
        if token not in payloads:
            raise AuthError("Invalid token signature", AuthErrorCode.INVALID_SIGNATURE)
        return payloads[token]

    with patch("storefront.api.middleware.auth.decode_jwt", side_effect=decode) as mock_decode:
        yield mock_decode


@pytest.fixture
def buyer() -> Any:
    from storefront.schemas.auth import UserContext

    return UserContext(user_id=UUID(USER_ID), email="buyer@example.com", role="user")


@pytest.fixture
def admin() -> Any:
    from storefront.schemas.auth import UserContext

    return UserContext(user_id=UUID(ADMIN_ID), email="admin@example.com", role="admin")


@pytest.fixture
def address() -> dict[str, str]:
    return {
        "first_name": "Ada",
        "last_name": "Lovelace",
        "email": "buyer@example.com",
        "street": "12 Analytical Way",
        "city": "Springfield",
        "state": "IL",
        "zipcode": "62704",
        "country": "US",
        "phone": "+1 555 0100",
    }


@pytest.fixture
def make_order(address: dict[str, str]) -> Callable[..., dict[str, Any]]:
    """Factory for order rows as the database returns them."""

    def _make(**overrides: Any) -> dict[str, Any]:
        now = datetime.now(timezone.utc).isoformat()
        order = {
            "id": ORDER_ID,
            "user_id": USER_ID,
            "user_email": "buyer@example.com",
            "items": [
                {
                    "product_id": "prod-a",
                    "name": "Linen Shirt",
                    "image": "https://cdn.example.com/shirt.png",
                    "unit_amount_cents": 500,
                    "quantity": 2,
                    "color": "blue",
                },
                {
                    "product_id": "prod-b",
                    "name": "Canvas Tote",
                    "image": None,
                    "unit_amount_cents": 300,
                    "quantity": 1,
                    "color": "",
                },
            ],
            "address": dict(address),
            "payment_method": "gateway",
            "payment_status": "pending",
            "order_status": "placed",
            "subtotal_cents": 1300,
            "shipping_cents": 1000,
            "total_cents": 2300,
            "currency": "usd",
            "external_order_id": None,
            "external_capture_id": None,
            "delivered_at": None,
            "notes": None,
            "is_active": True,
            "created_at": now,
            "updated_at": now,
        }
        order.update(overrides)
        return order

    return _make


@pytest.fixture
def mock_order_service() -> Generator[MagicMock, None, None]:
    """Replace the lifecycle service the order routes build per request.

    Yields:
        MagicMock: The service instance every route receives.
    """
    service = MagicMock()
    for method in (
        "place_order",
        "create_payment",
        "capture_payment",
        "handle_gateway_event",
        "update_order_status",
        "list_orders",
        "list_user_orders",
        "get_order_for_user",
        "delete_order",
        "reconcile_payment",
    ):
        setattr(service, method, AsyncMock())

    with patch("storefront.api.routes.orders.OrderLifecycleService", return_value=service):
        yield service
