"""
Amazon SES email sender adapter.

Implements EmailSenderPort with the boto3 ``ses`` client (plain-text body).
"""

from __future__ import annotations

from typing import Optional

import boto3
from botocore.exceptions import ClientError

from ports.notification_channels import EmailSenderPort  # noqa: F401 (runtime_checkable)
from shared_utils.constants import Defaults, LogScope
from shared_utils.error_handler import ExternalServiceError
from shared_utils.logging_utils import get_scoped_logger


logger = get_scoped_logger(LogScope.ADAPTER)


class SesEmailSenderAdapter:
    """Sends transactional email through SES."""

    def __init__(
        self,
        sender_address: str,
        region: str = Defaults.AWS_REGION,
        endpoint_url: str = "",
        ses_client: Optional[object] = None,
    ) -> None:
        self._sender = sender_address
        client_kwargs: dict = {"region_name": region}
        if endpoint_url:
            client_kwargs["endpoint_url"] = endpoint_url
        self._client = ses_client or boto3.client("ses", **client_kwargs)

    def send_email(self, to_address: str, subject: str, body: str) -> None:
        try:
            response = self._client.send_email(
                Source=self._sender,
                Destination={"ToAddresses": [to_address]},
                Message={
                    "Subject": {"Data": subject, "Charset": "UTF-8"},
                    "Body": {"Text": {"Data": body, "Charset": "UTF-8"}},
                },
            )
        except ClientError as exc:
            logger.error("ses_send_email_failed", subject=subject, error=str(exc))
            raise ExternalServiceError("SES", f"Failed to send email: {exc}") from exc

        logger.info("ses_send_email", message_id=response.get("MessageId"), subject=subject)
