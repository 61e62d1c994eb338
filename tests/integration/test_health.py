"""Integration tests for health check endpoints."""

from collections.abc import Generator
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient


@pytest.fixture
def gateway_health() -> Generator[AsyncMock, None, None]:
    """Answer the readiness gateway check without calling Stripe."""
    with patch("storefront.api.routes.health.PaymentGateway") as mock_class:
        check = AsyncMock(
            return_value={"healthy": True, "mode": "sandbox", "webhook_secret_configured": True}
        )
        mock_class.return_value.check_health = check
        yield check


class TestHealthEndpoint:
    """Tests for /health endpoint."""

    def test_health_returns_healthy_status(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["timestamp"] is not None
        assert data["version"] == "0.1.0"

    def test_debug_auth_endpoint_is_gone(self, client: TestClient) -> None:
        assert client.get("/health/auth").status_code == 404


class TestReadinessEndpoint:
    """Tests for /health/ready endpoint."""

    def test_ready_reports_both_checks(self, client: TestClient, gateway_health: AsyncMock) -> None:
        response = client.get("/health/ready")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert [check["name"] for check in data["checks"]] == ["database", "payment_gateway"]
        assert all(check["latency_ms"] is not None for check in data["checks"])

    def test_gateway_details_are_reported(self, client: TestClient, gateway_health: AsyncMock) -> None:
        """Test that readiness exposes the gateway mode and webhook secret state."""
        gateway_check = client.get("/health/ready").json()["checks"][1]

        assert gateway_check["details"] == {"mode": "sandbox", "webhook_secret_configured": True}
        gateway_health.assert_awaited_once()

    def test_503_when_database_unhealthy(self, client: TestClient, gateway_health: AsyncMock) -> None:
        with patch(
            "storefront.api.routes.health.check_database_connection",
            AsyncMock(return_value={"healthy": False, "error": "Connection timeout"}),
        ):
            response = client.get("/health/ready")

        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "unhealthy"
        db_check = next(c for c in data["checks"] if c["name"] == "database")
        assert db_check["healthy"] is False
        assert db_check["error"] == "Connection timeout"

    def test_503_when_gateway_unreachable(self, client: TestClient, gateway_health: AsyncMock) -> None:
        gateway_health.return_value = {
            "healthy": False,
            "mode": "live",
            "webhook_secret_configured": True,
            "error": "Stripe unreachable: APIConnectionError",
        }

        response = client.get("/health/ready")

        assert response.status_code == 503
        gateway_check = next(c for c in response.json()["checks"] if c["name"] == "payment_gateway")
        assert gateway_check["error"] == "Stripe unreachable: APIConnectionError"
        assert gateway_check["details"]["mode"] == "live"


class TestErrorResponseSchema:
    """Tests for error response schema compliance."""

    def test_unknown_path_is_404(self, client: TestClient) -> None:
        assert client.get("/nonexistent-endpoint").status_code == 404

    def test_unhandled_error_is_formatted(self, mock_supabase_client: MagicMock, gateway_health: AsyncMock) -> None:
        """Test that unexpected exceptions become a 500 ErrorResponse."""
        from storefront.main import create_app

        with patch(
            "storefront.api.routes.health.check_database_connection",
            AsyncMock(side_effect=Exception("Test error")),
        ):
            with TestClient(create_app(), raise_server_exceptions=False) as test_client:
                response = test_client.get("/health/ready", headers={"X-Request-ID": "req-42"})

        assert response.status_code == 500
        data = response.json()
        assert data["error"] == "internal_error"
        assert data["request_id"] == "req-42"
        assert "timestamp" in data

    def test_oversized_request_is_rejected(self, client: TestClient) -> None:
        response = client.post(
            "/api/v1/orders/payment/webhook",
            content=b"{}",
            headers={"Content-Length": str(10 * 1024 * 1024), "stripe-signature": "t=1,v1=abc"},
        )

        assert response.status_code == 413
