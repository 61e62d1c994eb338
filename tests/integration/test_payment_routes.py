"""Integration tests for online payment endpoints."""

from typing import Callable
from unittest.mock import MagicMock

from fastapi.testclient import TestClient

from storefront.api.middleware.error_handler import (
    ALTERNATE_PAYMENT_MESSAGE,
    GatewayRejectedError,
    GatewayUnavailableError,
    NotFoundError,
)

USER_HEADERS = {"Authorization": "Bearer user.session.token"}


class TestCreatePayment:
    """Tests for POST /api/v1/orders/payment/create."""

    def test_returns_gateway_order(
        self,
        client: TestClient,
        session_tokens: MagicMock,
        mock_order_service: MagicMock,
        address: dict[str, str],
    ) -> None:
        mock_order_service.create_payment.return_value = {
            "external_order_id": "cs_test_123",
            "approval_links": [{"rel": "approve", "href": "https://checkout.stripe.com/c/pay/cs_test_123", "method": "GET"}],
            "order_id": "660e8400-e29b-41d4-a716-446655440000",
        }

        response = client.post(
            "/api/v1/orders/payment/create",
            json={"items": [{"product_id": "prod-a", "quantity": 1}], "address": address},
            headers=USER_HEADERS,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["external_order_id"] == "cs_test_123"
        assert data["approval_links"][0]["rel"] == "approve"

    def test_gateway_down_is_502(
        self,
        client: TestClient,
        session_tokens: MagicMock,
        mock_order_service: MagicMock,
        address: dict[str, str],
    ) -> None:
        """Test that a gateway outage tells the customer to retry or pay on delivery."""
        mock_order_service.create_payment.side_effect = GatewayUnavailableError()

        response = client.post(
            "/api/v1/orders/payment/create",
            json={"items": [{"product_id": "prod-a", "quantity": 1}], "address": address},
            headers=USER_HEADERS,
        )

        assert response.status_code == 502
        assert response.json()["message"] == ALTERNATE_PAYMENT_MESSAGE

    def test_gateway_refusal_is_400(
        self,
        client: TestClient,
        session_tokens: MagicMock,
        mock_order_service: MagicMock,
        address: dict[str, str],
    ) -> None:
        mock_order_service.create_payment.side_effect = GatewayRejectedError()

        response = client.post(
            "/api/v1/orders/payment/create",
            json={"items": [{"product_id": "prod-a", "quantity": 1}], "address": address},
            headers=USER_HEADERS,
        )

        assert response.status_code == 400
        assert "Cash on Delivery" in response.json()["message"]

    def test_requires_authentication(
        self, client: TestClient, mock_order_service: MagicMock, address: dict[str, str]
    ) -> None:
        response = client.post("/api/v1/orders/payment/create", json={"items": [], "address": address})

        assert response.status_code == 401


class TestCapturePayment:
    """Tests for POST /api/v1/orders/payment/capture."""

    def test_returns_paid_order(
        self,
        client: TestClient,
        session_tokens: MagicMock,
        mock_order_service: MagicMock,
        make_order: Callable[..., dict],
    ) -> None:
        mock_order_service.capture_payment.return_value = make_order(
            payment_status="completed", external_order_id="cs_test_123", external_capture_id="ch_123"
        )

        response = client.post(
            "/api/v1/orders/payment/capture", json={"external_order_id": "cs_test_123"}, headers=USER_HEADERS
        )

        assert response.status_code == 200
        data = response.json()
        assert data["payment_status"] == "completed"
        assert data["external_capture_id"] == "ch_123"
        user, external_order_id = mock_order_service.capture_payment.call_args.args
        assert external_order_id == "cs_test_123"
        assert user.email == "buyer@example.com"

    def test_unknown_order_is_404(
        self, client: TestClient, session_tokens: MagicMock, mock_order_service: MagicMock
    ) -> None:
        mock_order_service.capture_payment.side_effect = NotFoundError("Order not found")

        response = client.post(
            "/api/v1/orders/payment/capture", json={"external_order_id": "cs_other"}, headers=USER_HEADERS
        )

        assert response.status_code == 404

    def test_incomplete_capture_is_400(
        self, client: TestClient, session_tokens: MagicMock, mock_order_service: MagicMock
    ) -> None:
        mock_order_service.capture_payment.side_effect = GatewayRejectedError("Your payment could not be completed.")

        response = client.post(
            "/api/v1/orders/payment/capture", json={"external_order_id": "cs_test_123"}, headers=USER_HEADERS
        )

        assert response.status_code == 400
        assert response.json()["error"] == "gateway_rejected"

    def test_missing_external_order_id(
        self, client: TestClient, session_tokens: MagicMock, mock_order_service: MagicMock
    ) -> None:
        response = client.post("/api/v1/orders/payment/capture", json={}, headers=USER_HEADERS)

        assert response.status_code == 400
        mock_order_service.capture_payment.assert_not_called()
