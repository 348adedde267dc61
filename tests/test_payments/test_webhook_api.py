"""
API tests for the Stripe webhook endpoint and the payment endpoints.
"""

import stripe
from fastapi import status

WEBHOOK_URL = "/api/v1/webhooks/stripe"


def succeeded_event(event_id: str, order_id: int) -> dict:
    return {
        "id": event_id,
        "type": "payment_intent.succeeded",
        "data": {
            "object": {
                "id": "pi_test_123",
                "object": "payment_intent",
                "metadata": {"order_id": str(order_id), "user_email": "buyer@example.com"},
            }
        },
    }


class TestStripeWebhookEndpoint:
    async def test_applies_event(
        self, api_client, sign_webhook, create_product, place_order, dispatcher
    ):
        product = await create_product()
        order = await place_order("user-1", (product, 1))
        payload, header = sign_webhook(succeeded_event("evt_api_1", order.id))

        response = await api_client.post(
            WEBHOOK_URL, content=payload, headers={"stripe-signature": header}
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {
            "received": True,
            "event_id": "evt_api_1",
            "outcome": "applied",
        }
        dispatcher.send_order_confirmation.assert_awaited_once()

    async def test_duplicate_is_acknowledged(
        self, api_client, sign_webhook, create_product, place_order
    ):
        product = await create_product()
        order = await place_order("user-1", (product, 1))
        payload, header = sign_webhook(succeeded_event("evt_api_2", order.id))

        await api_client.post(WEBHOOK_URL, content=payload, headers={"stripe-signature": header})
        response = await api_client.post(
            WEBHOOK_URL, content=payload, headers={"stripe-signature": header}
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["outcome"] == "duplicate"

    async def test_unknown_order_is_acknowledged(self, api_client, sign_webhook):
        payload, header = sign_webhook(succeeded_event("evt_api_3", 999))

        response = await api_client.post(
            WEBHOOK_URL, content=payload, headers={"stripe-signature": header}
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["outcome"] == "dropped"

    async def test_bad_signature(self, api_client, sign_webhook):
        payload, header = sign_webhook(succeeded_event("evt_api_4", 1), secret="whsec_wrong")

        response = await api_client.post(
            WEBHOOK_URL, content=payload, headers={"stripe-signature": header}
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["detail"]["code"] == "INVALID_SIGNATURE"

    async def test_non_utf8_body(self, api_client, sign_webhook):
        _, header = sign_webhook(succeeded_event("evt_api_6", 1))

        response = await api_client.post(
            WEBHOOK_URL, content=b"\xff\xfe\x00bad", headers={"stripe-signature": header}
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["detail"]["code"] == "INVALID_PAYLOAD"

    async def test_missing_signature(self, api_client, sign_webhook):
        payload, _ = sign_webhook(succeeded_event("evt_api_5", 1))

        response = await api_client.post(WEBHOOK_URL, content=payload)

        assert response.status_code == status.HTTP_400_BAD_REQUEST


class TestPaymentEndpoints:
    async def test_cart_intent(self, api_client, auth_headers, stripe_sdk, create_product, fill_cart):
        product = await create_product(price="15.00")
        await fill_cart("user-1", (product, 3))
        stripe_sdk.payment_intents.create.return_value = stripe.PaymentIntent.construct_from(
            {
                "id": "pi_cart",
                "object": "payment_intent",
                "amount": 6175,
                "currency": "cad",
                "status": "requires_payment_method",
                "client_secret": "pi_cart_secret",
            },
            "sk_test_dummy",
        )

        response = await api_client.post(
            "/api/v1/payments/intents", json={}, headers=auth_headers("user-1")
        )

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["payment_intent_id"] == "pi_cart"
        assert data["amount"] == "61.75"
        assert data["tax"] == "6.75"

    async def test_confirm_requires_intent_prefix(self, api_client, auth_headers):
        response = await api_client.post(
            "/api/v1/payments/confirm",
            json={"payment_intent_id": "ch_123"},
            headers=auth_headers("user-1"),
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    async def test_refund_requires_admin(self, api_client, auth_headers):
        response = await api_client.post(
            "/api/v1/payments/refund", json={"order_id": 1}, headers=auth_headers("user-1")
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN

    async def test_refund_gateway_outage_is_bad_gateway(
        self, api_client, auth_headers, stripe_sdk, create_product, place_order
    ):
        product = await create_product()
        order = await place_order("user-1", (product, 1))
        stripe_sdk.refunds.create.side_effect = stripe.APIConnectionError("down")

        response = await api_client.post(
            "/api/v1/payments/refund",
            json={"order_id": order.id},
            headers=auth_headers("admin-1", role="admin"),
        )

        assert response.status_code == status.HTTP_502_BAD_GATEWAY
        assert response.json()["error"]["code"] == "PAYMENT_GATEWAY_ERROR"
