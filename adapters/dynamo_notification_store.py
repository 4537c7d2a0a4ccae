"""
DynamoDB-backed in-app notification adapter.

Implements InAppNotificationPort over the Notifications table
(partition key ``notification_id``).
"""

from __future__ import annotations

from typing import Optional

import boto3
from botocore.exceptions import ClientError

from domain.models import Notification
from ports.notification_channels import InAppNotificationPort  # noqa: F401 (runtime_checkable)
from shared_utils.constants import Defaults, LogScope, TableKeys
from shared_utils.error_handler import PersistenceError
from shared_utils.logging_utils import get_scoped_logger


logger = get_scoped_logger(LogScope.ADAPTER)


class DynamoNotificationStoreAdapter:
    """Writes one item per in-app notification."""

    def __init__(
        self,
        notifications_table: str,
        region: str = Defaults.AWS_REGION,
        endpoint_url: str = "",
        dynamodb_resource: Optional[object] = None,
    ) -> None:
        resource_kwargs: dict = {"region_name": region}
        if endpoint_url:
            resource_kwargs["endpoint_url"] = endpoint_url
        self._dynamo = dynamodb_resource or boto3.resource(
            "dynamodb", **resource_kwargs
        )
        self._table = self._dynamo.Table(notifications_table)

    def create_notification(self, notification: Notification) -> None:
        item = {
            TableKeys.NOTIFICATION_ID: notification.notification_id,
            TableKeys.USER_ID: notification.user_id,
            "type": notification.kind.value,
            "title": notification.title,
            "message": notification.message,
            "data": notification.data,
            "created_at": notification.created_at.isoformat(),
        }
        try:
            self._table.put_item(Item=item)
        except ClientError as exc:
            logger.error(
                "dynamo_create_notification_failed",
                user_id=notification.user_id,
                kind=notification.kind.value,
                error=str(exc),
            )
            raise PersistenceError(
                "create_notification", str(exc), {"user_id": notification.user_id}
            ) from exc

        logger.info(
            "dynamo_create_notification",
            notification_id=notification.notification_id,
            user_id=notification.user_id,
            kind=notification.kind.value,
        )
