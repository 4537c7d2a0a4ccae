"""
DynamoDB-backed user directory adapter.

Implements UserDirectoryPort over the Accounts table
(partition key ``user_id``; ``role``, ``email``, ``first_name``, ``last_name``
and an optional ``notification_preferences`` map).
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import boto3
from botocore.exceptions import ClientError

from domain.models import NotificationPreferences, UserAccount, UserRole
from ports.user_directory import UserDirectoryPort  # noqa: F401 (runtime_checkable)
from shared_utils.constants import Defaults, LogScope, TableKeys
from shared_utils.error_handler import PersistenceError
from shared_utils.logging_utils import get_scoped_logger


logger = get_scoped_logger(LogScope.ADAPTER)


class DynamoUserDirectoryAdapter:
    """Amazon DynamoDB implementation of UserDirectoryPort."""

    def __init__(
        self,
        accounts_table: str,
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
        self._table = self._dynamo.Table(accounts_table)

    # ------------------------------------------------------------------
    # UserDirectoryPort implementation
    # ------------------------------------------------------------------

    def get_account(self, user_id: str) -> Optional[UserAccount]:
        item = self._get_item(user_id)
        if item is None:
            return None
        return self._from_dynamo_item(item)

    def get_notification_preferences(self, user_id: str) -> NotificationPreferences:
        """Stored preferences merged over defaults (all channels on)."""
        item = self._get_item(user_id) or {}
        stored = item.get("notification_preferences") or {}
        known = NotificationPreferences.model_fields
        return NotificationPreferences(
            **{k: bool(v) for k, v in stored.items() if k in known}
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _get_item(self, user_id: str) -> Optional[Dict[str, Any]]:
        try:
            response = self._table.get_item(Key={TableKeys.USER_ID: user_id})
        except ClientError as exc:
            logger.error("dynamo_get_account_failed", user_id=user_id, error=str(exc))
            raise PersistenceError("get_account", str(exc), {"user_id": user_id}) from exc
        return response.get("Item")

    @staticmethod
    def _from_dynamo_item(item: Dict[str, Any]) -> UserAccount:
        """Convert DynamoDB item dict → domain UserAccount."""
        try:
            role = UserRole(str(item.get("role", UserRole.USER.value)).lower())
        except ValueError:
            # Unknown roles carry no privileges
            role = UserRole.USER
        return UserAccount(
            user_id=item[TableKeys.USER_ID],
            role=role,
            email=item.get("email"),
            first_name=item.get("first_name"),
            last_name=item.get("last_name"),
        )
