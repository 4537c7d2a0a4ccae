"""
Amazon SNS operations channel adapter.

Implements OperationsChannelPort by publishing a JSON message to the
operations topic that admins / on-call subscribe to.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

import boto3
from botocore.exceptions import ClientError

from ports.notification_channels import OperationsChannelPort  # noqa: F401 (runtime_checkable)
from shared_utils.constants import Defaults, LogScope
from shared_utils.error_handler import ExternalServiceError
from shared_utils.logging_utils import get_scoped_logger


logger = get_scoped_logger(LogScope.ADAPTER)

# SNS subject lines are capped at 100 characters
_MAX_SUBJECT = 100


class SnsOperationsChannelAdapter:
    """Publishes escalations to an SNS topic."""

    def __init__(
        self,
        topic_arn: str,
        region: str = Defaults.AWS_REGION,
        endpoint_url: str = "",
        sns_client: Optional[object] = None,
    ) -> None:
        self._topic_arn = topic_arn
        client_kwargs: dict = {"region_name": region}
        if endpoint_url:
            client_kwargs["endpoint_url"] = endpoint_url
        self._client = sns_client or boto3.client("sns", **client_kwargs)

    def publish(self, kind: str, title: str, message: str, data: Dict[str, Any]) -> None:
        payload = {"type": kind, "title": title, "message": message, "data": data}
        try:
            response = self._client.publish(
                TopicArn=self._topic_arn,
                Subject=title[:_MAX_SUBJECT],
                Message=json.dumps(payload, default=str),
                MessageAttributes={
                    "type": {"DataType": "String", "StringValue": kind},
                },
            )
        except ClientError as exc:
            logger.error("sns_publish_failed", kind=kind, error=str(exc))
            raise ExternalServiceError("SNS", f"Failed to publish escalation: {exc}") from exc

        logger.info("sns_publish", kind=kind, message_id=response.get("MessageId"))
