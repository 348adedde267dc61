"""
Transactional email dispatch for order events.

Dispatch is fire-and-forget from the caller's point of view: every failure
is logged and swallowed so that an email outage can never fail a checkout
or a webhook acknowledgement.
"""

import asyncio
from decimal import Decimal
from typing import Any, Mapping, Optional

from storefront.core.config import Settings, get_settings
from storefront.core.logging import get_logger
from storefront.services.notifications.aws_clients import SESClient
from storefront.services.notifications.templates import TemplateEngine

logger = get_logger(__name__)


class NotificationDispatcher:
    """
    Sends order confirmation and refund confirmation emails.

    Args:
        settings: Application settings
        ses_client: SES wrapper; created lazily on first send
        template_engine: Template renderer
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        ses_client: Optional[SESClient] = None,
        template_engine: Optional[TemplateEngine] = None,
    ):
        self.settings = settings or get_settings()
        self._ses_client = ses_client
        self.templates = template_engine or TemplateEngine()

    @property
    def ses_client(self) -> SESClient:
        if self._ses_client is None:
            self._ses_client = SESClient(self.settings)
        return self._ses_client

    async def send_order_confirmation(
        self, email: str, order_number: str, total: Decimal
    ) -> bool:
        """
        Email the customer that their payment was received.

        Returns:
            True if the message was handed to SES
        """
        return await self._send(
            "order_confirmation",
            email,
            {"order_number": order_number, "total": total},
        )

    async def send_refund_confirmation(
        self, email: str, order_number: str, amount: Decimal
    ) -> bool:
        """
        Email the customer that a refund was issued.

        Returns:
            True if the message was handed to SES
        """
        return await self._send(
            "refund_confirmation",
            email,
            {"order_number": order_number, "amount": amount},
        )

    async def _send(self, template_name: str, email: str, context: Mapping[str, Any]) -> bool:
        if not self.settings.notifications_enabled:
            logger.info(
                "Notifications disabled, skipping email",
                template=template_name,
                order_number=context.get("order_number"),
            )
            return False
        if not email:
            logger.warning("No recipient for notification", template=template_name)
            return False

        try:
            rendered = self.templates.render_email(
                template_name,
                {**context, "app_name": self.settings.app_name},
            )
            message_id = await asyncio.to_thread(
                self.ses_client.send_email,
                email,
                rendered.subject,
                rendered.html_body,
                rendered.text_body,
            )
        except Exception as e:
            logger.error(
                "Failed to send notification",
                template=template_name,
                order_number=context.get("order_number"),
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        logger.info(
            "Notification sent",
            template=template_name,
            order_number=context.get("order_number"),
            message_id=message_id,
        )
        return True
