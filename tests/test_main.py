"""
Tests for the FastAPI application: health endpoints, request correlation
and domain error mapping.
"""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi import status

from storefront.core.exceptions import (
    CheckoutPersistenceError,
    EmptyCartError,
    InvalidTransitionError,
    OrderAccessDeniedError,
    OrderNotFoundError,
    PaymentGatewayError,
    StorefrontError,
    WebhookSignatureError,
)
from storefront.main import status_code_for


# ============================================================================
# Health endpoints
# ============================================================================


class TestHealthEndpoints:
    async def test_health(self, api_client):
        response = await api_client.get("/health")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "healthy"
        assert data["environment"] == "test"

    async def test_liveness(self, api_client):
        response = await api_client.get("/live")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "alive"

    async def test_ready_when_database_is_up(self, api_client):
        with patch("storefront.main.check_database_health", AsyncMock(return_value=True)):
            response = await api_client.get("/ready")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["database"] == "healthy"

    async def test_not_ready_when_database_is_down(self, api_client):
        with patch("storefront.main.check_database_health", AsyncMock(return_value=False)):
            response = await api_client.get("/ready")

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert response.json()["dependencies_ready"] is False


# ============================================================================
# Request correlation
# ============================================================================


class TestRequestId:
    async def test_generated_when_absent(self, api_client):
        response = await api_client.get("/health")

        assert response.headers["X-Request-ID"]

    async def test_echoed_when_supplied(self, api_client):
        response = await api_client.get("/health", headers={"X-Request-ID": "req-42"})

        assert response.headers["X-Request-ID"] == "req-42"

    async def test_included_in_error_body(self, api_client, auth_headers):
        response = await api_client.get(
            "/api/v1/orders/999",
            headers={**auth_headers("user-1"), "X-Request-ID": "req-43"},
        )

        assert response.json()["request_id"] == "req-43"


# ============================================================================
# Error mapping
# ============================================================================


class TestErrorMapping:
    @pytest.mark.parametrize(
        "error,expected",
        [
            (EmptyCartError("user-1"), status.HTTP_400_BAD_REQUEST),
            (InvalidTransitionError("pending", "shipped"), status.HTTP_400_BAD_REQUEST),
            (WebhookSignatureError("bad"), status.HTTP_400_BAD_REQUEST),
            (OrderNotFoundError(order_id=1), status.HTTP_404_NOT_FOUND),
            (OrderAccessDeniedError(1, "user-2"), status.HTTP_403_FORBIDDEN),
            (PaymentGatewayError("down"), status.HTTP_502_BAD_GATEWAY),
            (CheckoutPersistenceError("failed"), status.HTTP_500_INTERNAL_SERVER_ERROR),
            (StorefrontError("unknown"), status.HTTP_500_INTERNAL_SERVER_ERROR),
        ],
    )
    def test_status_codes(self, error, expected):
        assert status_code_for(error) == expected

    async def test_validation_error_shape(self, api_client, auth_headers):
        response = await api_client.post(
            "/api/v1/cart/items", json={"quantity": 1}, headers=auth_headers("user-1")
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        error = response.json()["error"]
        assert error["code"] == "REQUEST_VALIDATION_ERROR"
        assert error["details"]["errors"]
