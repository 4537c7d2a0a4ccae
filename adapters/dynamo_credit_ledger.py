"""
DynamoDB-backed credit ledger adapter.

Implements CreditLedgerPort using boto3:

* Credits            : partition key ``user_id``; ``used_credits`` and ``balance_cents``
* WalletTransactions : partition key ``transaction_id``; one row per wallet movement
"""

from __future__ import annotations

import uuid
from typing import Any, Dict, Optional

import boto3
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError

from domain.models import utc_now
from ports.credit_ledger import CreditLedgerPort  # noqa: F401 (runtime_checkable)
from shared_utils.constants import Defaults, LogScope, TableKeys
from shared_utils.error_handler import PersistenceError
from shared_utils.logging_utils import get_scoped_logger


logger = get_scoped_logger(LogScope.ADAPTER)


class DynamoCreditLedgerAdapter:
    """Amazon DynamoDB implementation of CreditLedgerPort."""

    def __init__(
        self,
        credits_table: str,
        transactions_table: str,
        region: str = Defaults.AWS_REGION,
        endpoint_url: str = "",
        dynamodb_resource: Optional[object] = None,
        max_attempts: int = Defaults.CREDIT_UPDATE_ATTEMPTS,
    ) -> None:
        resource_kwargs: dict = {"region_name": region}
        if endpoint_url:
            resource_kwargs["endpoint_url"] = endpoint_url
        self._dynamo = dynamodb_resource or boto3.resource(
            "dynamodb", **resource_kwargs
        )
        self._credits = self._dynamo.Table(credits_table)
        self._transactions = self._dynamo.Table(transactions_table)
        self._max_attempts = max_attempts

    # ------------------------------------------------------------------
    # CreditLedgerPort implementation
    # ------------------------------------------------------------------

    def decrement_used_credits(self, user_id: str, amount: int = 1) -> int:
        """Decrement ``used_credits`` by *amount*, floored at zero.

        The decrement is a conditional update (``used_credits >= amount``).
        When the counter is below *amount* it is compare-and-set to zero;
        a concurrent change between the read and the set retries, bounded
        by ``max_attempts``.
        """
        key = {TableKeys.USER_ID: user_id}
        for attempt in range(1, self._max_attempts + 1):
            try:
                response = self._credits.update_item(
                    Key=key,
                    UpdateExpression="SET used_credits = used_credits - :amount",
                    ConditionExpression=(
                        Attr(TableKeys.USER_ID).exists() & Attr("used_credits").gte(amount)
                    ),
                    ExpressionAttributeValues={":amount": amount},
                    ReturnValues="UPDATED_NEW",
                )
                remaining = int(response["Attributes"]["used_credits"])
                logger.info(
                    "dynamo_decrement_used_credits",
                    user_id=user_id,
                    amount=amount,
                    used_credits=remaining,
                )
                return remaining
            except ClientError as exc:
                if exc.response.get("Error", {}).get("Code") != TableKeys.CONDITIONAL_CHECK_FAILED:
                    self._raise("decrement_used_credits", user_id, exc)

            # Counter missing or below amount: floor at zero
            current = self._get_used_credits(user_id)
            if current is None:
                logger.info("dynamo_decrement_no_credit_record", user_id=user_id)
                return 0
            if current == 0:
                return 0
            try:
                self._credits.update_item(
                    Key=key,
                    UpdateExpression="SET used_credits = :zero",
                    ConditionExpression=Attr("used_credits").eq(current),
                    ExpressionAttributeValues={":zero": 0},
                )
                logger.info(
                    "dynamo_decrement_used_credits_floored",
                    user_id=user_id,
                    previous=current,
                )
                return 0
            except ClientError as exc:
                if exc.response.get("Error", {}).get("Code") != TableKeys.CONDITIONAL_CHECK_FAILED:
                    self._raise("decrement_used_credits", user_id, exc)
                logger.warning(
                    "dynamo_decrement_used_credits_retry",
                    user_id=user_id,
                    attempt=attempt,
                )

        raise PersistenceError(
            "decrement_used_credits",
            f"counter kept changing after {self._max_attempts} attempts",
            {"user_id": user_id},
        )

    def adjust_wallet_balance(
        self,
        user_id: str,
        delta_cents: int,
        transaction_type: str,
        description: str,
    ) -> Optional[int]:
        """Atomic ``ADD`` on balance_cents, then a transaction row."""
        try:
            response = self._credits.update_item(
                Key={TableKeys.USER_ID: user_id},
                UpdateExpression="ADD balance_cents :delta",
                ConditionExpression=Attr(TableKeys.USER_ID).exists(),
                ExpressionAttributeValues={":delta": delta_cents},
                ReturnValues="UPDATED_NEW",
            )
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") == TableKeys.CONDITIONAL_CHECK_FAILED:
                logger.info("dynamo_wallet_missing", user_id=user_id)
                return None
            self._raise("adjust_wallet_balance", user_id, exc)

        balance = int(response["Attributes"]["balance_cents"])
        transaction: Dict[str, Any] = {
            TableKeys.TRANSACTION_ID: str(uuid.uuid4()),
            TableKeys.USER_ID: user_id,
            "amount_cents": delta_cents,
            "transaction_type": transaction_type,
            "description": description,
            "balance_after_cents": balance,
            "created_at": utc_now().isoformat(),
        }
        try:
            self._transactions.put_item(Item=transaction)
        except ClientError as exc:
            self._raise("record_wallet_transaction", user_id, exc)

        logger.info(
            "dynamo_adjust_wallet_balance",
            user_id=user_id,
            delta_cents=delta_cents,
            transaction_type=transaction_type,
            balance_cents=balance,
        )
        return balance

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _get_used_credits(self, user_id: str) -> Optional[int]:
        try:
            response = self._credits.get_item(
                Key={TableKeys.USER_ID: user_id},
                ConsistentRead=True,
            )
        except ClientError as exc:
            self._raise("get_used_credits", user_id, exc)
        item = response.get("Item")
        if item is None:
            return None
        return int(item.get("used_credits", 0))

    @staticmethod
    def _raise(operation: str, user_id: str, exc: ClientError) -> None:
        logger.error(f"dynamo_{operation}_failed", user_id=user_id, error=str(exc))
        raise PersistenceError(operation, str(exc), {"user_id": user_id}) from exc
