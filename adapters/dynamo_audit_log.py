"""DynamoDB-backed admin audit log (AdminLogs table, partition key ``log_id``)."""

from __future__ import annotations

from typing import Optional

import boto3
from botocore.exceptions import ClientError

from domain.models import AdminAuditEntry
from ports.audit_log import AuditLogPort  # noqa: F401 (runtime_checkable)
from shared_utils.constants import Defaults, LogScope, TableKeys
from shared_utils.error_handler import PersistenceError
from shared_utils.logging_utils import get_scoped_logger


logger = get_scoped_logger(LogScope.ADAPTER)


class DynamoAuditLogAdapter:
    """Append-only AuditLogPort implementation."""

    def __init__(
        self,
        admin_logs_table: str,
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
        self._table = self._dynamo.Table(admin_logs_table)

    def record(self, entry: AdminAuditEntry) -> None:
        item = {
            TableKeys.LOG_ID: entry.log_id,
            "admin_id": entry.admin_id,
            "action": entry.action,
            "meta": entry.meta,
            "created_at": entry.created_at.isoformat(),
        }
        try:
            self._table.put_item(Item=item)
        except ClientError as exc:
            logger.error("dynamo_audit_record_failed", action=entry.action, error=str(exc))
            raise PersistenceError("record_audit_entry", str(exc), {"action": entry.action}) from exc
        logger.info("dynamo_audit_record", action=entry.action, admin_id=entry.admin_id)
