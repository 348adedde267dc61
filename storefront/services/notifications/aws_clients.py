"""
AWS SES client wrapper with retry handling.
"""

import time
from typing import Any, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from storefront.core.config import Settings, get_settings
from storefront.core.logging import get_logger

logger = get_logger(__name__)

NON_RETRYABLE_CODES = frozenset(
    {
        "MessageRejected",
        "MailFromDomainNotVerified",
        "ConfigurationSetDoesNotExist",
        "AccountSendingPausedException",
    }
)


class SESClientError(Exception):
    """Raised when SES refuses or repeatedly fails to send a message."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.context = context


class SESClient:
    """
    Thin SES client used by the notification dispatcher.

    Credentials come from the standard boto3 chain (environment, profile or
    instance role); only the region and sender are configured here.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Any = None,
        retry_backoff: float = 1.0,
    ) -> None:
        self.settings = settings or get_settings()
        self.max_retries = self.settings.ses_max_retries
        self.retry_backoff = retry_backoff
        self._client = client or boto3.client("ses", region_name=self.settings.aws_region)

    def send_email(
        self,
        to_address: str,
        subject: str,
        body_html: str,
        body_text: Optional[str] = None,
    ) -> str:
        """
        Send one email, retrying throttling and connection errors.

        Args:
            to_address: Recipient address
            subject: Subject line
            body_html: HTML body
            body_text: Optional plain-text alternative

        Returns:
            SES message id

        Raises:
            SESClientError: If SES rejects the message or retries run out
        """
        body: dict[str, Any] = {"Html": {"Data": body_html, "Charset": "UTF-8"}}
        if body_text:
            body["Text"] = {"Data": body_text, "Charset": "UTF-8"}

        params = {
            "Source": self.settings.ses_sender_email,
            "Destination": {"ToAddresses": [to_address]},
            "Message": {
                "Subject": {"Data": subject, "Charset": "UTF-8"},
                "Body": body,
            },
        }

        last_exception: Optional[Exception] = None
        for attempt in range(self.max_retries):
            try:
                response = self._client.send_email(**params)
                return response["MessageId"]
            except ClientError as e:
                error_code = e.response.get("Error", {}).get("Code", "Unknown")
                last_exception = e
                if error_code in NON_RETRYABLE_CODES:
                    raise SESClientError(
                        f"SES rejected message: {error_code}",
                        error_code=error_code,
                    ) from e
                logger.warning("SES client error", attempt=attempt + 1, error_code=error_code)
            except BotoCoreError as e:
                last_exception = e
                logger.warning("SES connection error", attempt=attempt + 1, error=str(e))

            if attempt < self.max_retries - 1:
                time.sleep(self.retry_backoff * (2**attempt))

        raise SESClientError(
            f"Failed to send email after {self.max_retries} attempts",
            last_error=str(last_exception),
        ) from last_exception
