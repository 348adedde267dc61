"""
Tests for NotificationDispatcher.
"""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from storefront.services.notifications.aws_clients import SESClient, SESClientError
from storefront.services.notifications.dispatcher import NotificationDispatcher


@pytest.fixture
def ses_client() -> MagicMock:
    client = MagicMock(spec=SESClient)
    client.send_email.return_value = "msg-1"
    return client


@pytest.fixture
def enabled_settings(settings):
    return settings.model_copy(update={"notifications_enabled": True})


class TestNotificationDispatcher:
    async def test_order_confirmation(self, enabled_settings, ses_client):
        dispatcher = NotificationDispatcher(enabled_settings, ses_client=ses_client)

        sent = await dispatcher.send_order_confirmation(
            "buyer@example.com", "ORD-20240115-0001", Decimal("61.75")
        )

        assert sent is True
        to_address, subject, html_body, text_body = ses_client.send_email.call_args.args
        assert to_address == "buyer@example.com"
        assert subject == "Order ORD-20240115-0001 confirmed"
        assert "$61.75" in html_body
        assert enabled_settings.app_name in text_body

    async def test_refund_confirmation(self, enabled_settings, ses_client):
        dispatcher = NotificationDispatcher(enabled_settings, ses_client=ses_client)

        sent = await dispatcher.send_refund_confirmation(
            "buyer@example.com", "ORD-20240115-0001", Decimal("10.00")
        )

        assert sent is True
        assert "Refund issued" in ses_client.send_email.call_args.args[1]

    async def test_disabled(self, settings, ses_client):
        dispatcher = NotificationDispatcher(settings, ses_client=ses_client)

        sent = await dispatcher.send_order_confirmation("buyer@example.com", "ORD-1", Decimal("1"))

        assert sent is False
        ses_client.send_email.assert_not_called()

    async def test_missing_recipient(self, enabled_settings, ses_client):
        dispatcher = NotificationDispatcher(enabled_settings, ses_client=ses_client)

        assert await dispatcher.send_order_confirmation("", "ORD-1", Decimal("1")) is False
        ses_client.send_email.assert_not_called()

    async def test_send_failure_is_swallowed(self, enabled_settings, ses_client):
        ses_client.send_email.side_effect = SESClientError("SES rejected message")
        dispatcher = NotificationDispatcher(enabled_settings, ses_client=ses_client)

        sent = await dispatcher.send_order_confirmation(
            "buyer@example.com", "ORD-1", Decimal("61.75")
        )

        assert sent is False
