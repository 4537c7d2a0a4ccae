"""
DynamoDB-backed meeting store adapter.

Implements MeetingStorePort using boto3 over three tables:

* Meetings         : partition key ``meeting_id``; participants embedded as a list of maps
* MeetingResponses : partition key ``meeting_id``, sort key ``user_id``
* UserMatches      : partition key ``meeting_id`` (one match per meeting)

Write-once transitions are conditional updates; a failed condition is
reported as ``False``, never raised.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from domain.models import (
    ChargeStatus,
    FaultDetermination,
    MatchRecord,
    MeetingFinalization,
    MeetingOutcome,
    MeetingRecord,
    MeetingResponse,
    MeetingStatus,
    Participant,
    ParticipantRole,
    ResponseDecision,
    ReviewResolution,
    ReviewResolutionUpdate,
)
from ports.meeting_store import MeetingStorePort  # noqa: F401 (runtime_checkable)
from shared_utils.constants import Defaults, LogScope, TableKeys
from shared_utils.error_handler import PersistenceError
from shared_utils.logging_utils import get_scoped_logger


logger = get_scoped_logger(LogScope.ADAPTER)


def _is_conditional_failure(exc: ClientError) -> bool:
    return exc.response.get("Error", {}).get("Code") == TableKeys.CONDITIONAL_CHECK_FAILED


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


class DynamoMeetingStoreAdapter:
    """Amazon DynamoDB implementation of MeetingStorePort."""

    def __init__(
        self,
        meetings_table: str,
        responses_table: str,
        matches_table: str,
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
        self._meetings = self._dynamo.Table(meetings_table)
        self._responses = self._dynamo.Table(responses_table)
        self._matches = self._dynamo.Table(matches_table)

    # ------------------------------------------------------------------
    # MeetingStorePort implementation: meetings
    # ------------------------------------------------------------------

    def get_meeting(self, meeting_id: str) -> Optional[MeetingRecord]:
        """Retrieve a single meeting record by ID (strongly consistent)."""
        try:
            response = self._meetings.get_item(
                Key={TableKeys.MEETING_ID: meeting_id},
                ConsistentRead=True,
            )
        except ClientError as exc:
            logger.error("dynamo_get_meeting_failed", meeting_id=meeting_id, error=str(exc))
            raise PersistenceError(
                "get_meeting", str(exc), {"meeting_id": meeting_id}
            ) from exc

        item = response.get("Item")
        if item is None:
            return None
        return self._meeting_from_item(item)

    def put_meeting(self, record: MeetingRecord) -> None:
        """Create or overwrite a meeting record."""
        try:
            self._meetings.put_item(Item=self._meeting_to_item(record))
            logger.info(
                "dynamo_put_meeting",
                meeting_id=record.meeting_id,
                status=record.status.value,
            )
        except ClientError as exc:
            logger.error("dynamo_put_meeting_failed", meeting_id=record.meeting_id, error=str(exc))
            raise PersistenceError(
                "put_meeting", str(exc), {"meeting_id": record.meeting_id}
            ) from exc

    def finalize_meeting(
        self,
        meeting_id: str,
        finalization: MeetingFinalization,
        allowed_statuses: Iterable[MeetingStatus],
    ) -> bool:
        """Conditional update: status in *allowed_statuses* and not yet finalized."""
        update_expr = (
            "SET #status = :status, charge_status = :charge_status, outcome = :outcome, "
            "fault_determination = :fault, finalized_by = :finalized_by, "
            "finalized_at = :finalized_at, refund_pending = :refund_pending"
        )
        expr_values: Dict[str, Any] = {
            ":status": finalization.status.value,
            ":charge_status": finalization.charge_status.value,
            ":outcome": finalization.outcome.value,
            ":fault": finalization.fault_determination.value,
            ":finalized_by": finalization.finalized_by,
            ":finalized_at": finalization.finalized_at.isoformat(),
            ":refund_pending": finalization.refund_pending,
        }
        if finalization.host_notes is not None:
            update_expr += ", host_notes = :host_notes"
            expr_values[":host_notes"] = finalization.host_notes

        condition = (
            Attr("status").is_in([s.value for s in allowed_statuses])
            & Attr("finalized_at").not_exists()
        )
        try:
            self._meetings.update_item(
                Key={TableKeys.MEETING_ID: meeting_id},
                UpdateExpression=update_expr,
                ExpressionAttributeNames={"#status": "status"},
                ExpressionAttributeValues=expr_values,
                ConditionExpression=condition,
            )
        except ClientError as exc:
            if _is_conditional_failure(exc):
                logger.info("dynamo_finalize_meeting_condition_failed", meeting_id=meeting_id)
                return False
            logger.error("dynamo_finalize_meeting_failed", meeting_id=meeting_id, error=str(exc))
            raise PersistenceError(
                "finalize_meeting", str(exc), {"meeting_id": meeting_id}
            ) from exc

        logger.info(
            "dynamo_finalize_meeting",
            meeting_id=meeting_id,
            charge_status=finalization.charge_status.value,
        )
        return True

    def claim_refund(self, meeting_id: str, claimed_at: datetime) -> bool:
        """Conditional update: only the caller that flips ``refund_pending`` gets True."""
        try:
            self._meetings.update_item(
                Key={TableKeys.MEETING_ID: meeting_id},
                UpdateExpression="SET refund_pending = :false, refund_applied_at = :t",
                ExpressionAttributeValues={":false": False, ":t": claimed_at.isoformat()},
                ConditionExpression=Attr("refund_pending").eq(True),
            )
        except ClientError as exc:
            if _is_conditional_failure(exc):
                return False
            logger.error("dynamo_claim_refund_failed", meeting_id=meeting_id, error=str(exc))
            raise PersistenceError(
                "claim_refund", str(exc), {"meeting_id": meeting_id}
            ) from exc
        return True

    def release_refund_claim(self, meeting_id: str) -> None:
        try:
            self._meetings.update_item(
                Key={TableKeys.MEETING_ID: meeting_id},
                UpdateExpression="SET refund_pending = :true REMOVE refund_applied_at",
                ExpressionAttributeValues={":true": True},
            )
            logger.warning("dynamo_release_refund_claim", meeting_id=meeting_id)
        except ClientError as exc:
            logger.error("dynamo_release_refund_claim_failed", meeting_id=meeting_id, error=str(exc))
            raise PersistenceError(
                "release_refund_claim", str(exc), {"meeting_id": meeting_id}
            ) from exc

    def mark_matched(self, meeting_id: str, matched_at: datetime) -> None:
        try:
            self._meetings.update_item(
                Key={TableKeys.MEETING_ID: meeting_id},
                UpdateExpression="SET matched = :m, matched_at = :t",
                ExpressionAttributeValues={":m": True, ":t": matched_at.isoformat()},
            )
            logger.info("dynamo_mark_matched", meeting_id=meeting_id)
        except ClientError as exc:
            logger.error("dynamo_mark_matched_failed", meeting_id=meeting_id, error=str(exc))
            raise PersistenceError(
                "mark_matched", str(exc), {"meeting_id": meeting_id}
            ) from exc

    def claim_responses_complete_notice(self, meeting_id: str, claimed_at: datetime) -> bool:
        """Write-once marker; only the first caller gets True."""
        condition = (
            Attr(TableKeys.MEETING_ID).exists()
            & Attr("responses_complete_notified_at").not_exists()
        )
        try:
            self._meetings.update_item(
                Key={TableKeys.MEETING_ID: meeting_id},
                UpdateExpression="SET responses_complete_notified_at = :t",
                ExpressionAttributeValues={":t": claimed_at.isoformat()},
                ConditionExpression=condition,
            )
        except ClientError as exc:
            if _is_conditional_failure(exc):
                return False
            logger.error(
                "dynamo_claim_responses_notice_failed",
                meeting_id=meeting_id,
                error=str(exc),
            )
            raise PersistenceError(
                "claim_responses_complete_notice", str(exc), {"meeting_id": meeting_id}
            ) from exc
        return True

    def list_meetings_by_charge_status(self, charge_status: ChargeStatus) -> List[MeetingRecord]:
        """Scan with a charge_status filter (acceptable at review-queue scale)."""
        scan_kwargs: Dict[str, Any] = {
            "FilterExpression": Attr("charge_status").eq(charge_status.value),
        }
        items: List[Dict[str, Any]] = []
        try:
            # Handle pagination
            while True:
                response = self._meetings.scan(**scan_kwargs)
                items.extend(response.get("Items", []))
                last_key = response.get("LastEvaluatedKey")
                if last_key is None:
                    break
                scan_kwargs["ExclusiveStartKey"] = last_key
        except ClientError as exc:
            logger.error("dynamo_list_meetings_failed", error=str(exc))
            raise PersistenceError(
                "list_meetings_by_charge_status", str(exc), {"charge_status": charge_status.value}
            ) from exc

        logger.info(
            "dynamo_list_meetings_by_charge_status",
            charge_status=charge_status.value,
            results=len(items),
        )
        return [self._meeting_from_item(item) for item in items]

    def resolve_review(self, meeting_id: str, update: ReviewResolutionUpdate) -> bool:
        """Conditional update: still pending_review and no resolution recorded."""
        update_expr = (
            "SET charge_status = :charge_status, admin_resolution = :resolution, "
            "admin_resolved_at = :resolved_at, admin_resolved_by = :resolved_by"
        )
        expr_values: Dict[str, Any] = {
            ":charge_status": update.charge_status.value,
            ":resolution": update.admin_resolution.value,
            ":resolved_at": update.admin_resolved_at.isoformat(),
            ":resolved_by": update.admin_resolved_by,
        }
        if update.admin_resolution_notes is not None:
            update_expr += ", admin_resolution_notes = :notes"
            expr_values[":notes"] = update.admin_resolution_notes

        condition = (
            Attr("charge_status").eq(ChargeStatus.PENDING_REVIEW.value)
            & Attr("admin_resolution").not_exists()
        )
        try:
            self._meetings.update_item(
                Key={TableKeys.MEETING_ID: meeting_id},
                UpdateExpression=update_expr,
                ExpressionAttributeValues=expr_values,
                ConditionExpression=condition,
            )
        except ClientError as exc:
            if _is_conditional_failure(exc):
                logger.info("dynamo_resolve_review_condition_failed", meeting_id=meeting_id)
                return False
            logger.error("dynamo_resolve_review_failed", meeting_id=meeting_id, error=str(exc))
            raise PersistenceError(
                "resolve_review", str(exc), {"meeting_id": meeting_id}
            ) from exc

        logger.info(
            "dynamo_resolve_review",
            meeting_id=meeting_id,
            resolution=update.admin_resolution.value,
        )
        return True

    # ------------------------------------------------------------------
    # MeetingStorePort implementation: responses
    # ------------------------------------------------------------------

    def upsert_response(self, response: MeetingResponse) -> None:
        """put_item on (meeting_id, user_id) overwrites any previous response."""
        item = {
            TableKeys.MEETING_ID: response.meeting_id,
            TableKeys.USER_ID: response.user_id,
            "decision": response.decision.value,
            "agreement_text": response.agreement_text,
            "signed_at": response.signed_at.isoformat(),
        }
        try:
            self._responses.put_item(Item=item)
            logger.info(
                "dynamo_upsert_response",
                meeting_id=response.meeting_id,
                user_id=response.user_id,
                decision=response.decision.value,
            )
        except ClientError as exc:
            logger.error(
                "dynamo_upsert_response_failed",
                meeting_id=response.meeting_id,
                error=str(exc),
            )
            raise PersistenceError(
                "upsert_response", str(exc), {"meeting_id": response.meeting_id}
            ) from exc

    def list_responses(self, meeting_id: str) -> List[MeetingResponse]:
        try:
            response = self._responses.query(
                KeyConditionExpression=Key(TableKeys.MEETING_ID).eq(meeting_id),
                ConsistentRead=True,
            )
        except ClientError as exc:
            logger.error("dynamo_list_responses_failed", meeting_id=meeting_id, error=str(exc))
            raise PersistenceError(
                "list_responses", str(exc), {"meeting_id": meeting_id}
            ) from exc

        return [
            MeetingResponse(
                meeting_id=item[TableKeys.MEETING_ID],
                user_id=item[TableKeys.USER_ID],
                decision=ResponseDecision(item["decision"]),
                agreement_text=item.get("agreement_text", ""),
                signed_at=item["signed_at"],
            )
            for item in response.get("Items", [])
        ]

    # ------------------------------------------------------------------
    # MeetingStorePort implementation: matches
    # ------------------------------------------------------------------

    def get_match(self, meeting_id: str) -> Optional[MatchRecord]:
        try:
            response = self._matches.get_item(
                Key={TableKeys.MEETING_ID: meeting_id},
                ConsistentRead=True,
            )
        except ClientError as exc:
            logger.error("dynamo_get_match_failed", meeting_id=meeting_id, error=str(exc))
            raise PersistenceError(
                "get_match", str(exc), {"meeting_id": meeting_id}
            ) from exc

        item = response.get("Item")
        if item is None:
            return None
        return MatchRecord(
            meeting_id=item[TableKeys.MEETING_ID],
            user1_id=item["user1_id"],
            user2_id=item["user2_id"],
            matched_at=item["matched_at"],
            messaging_enabled=bool(item.get("messaging_enabled", True)),
        )

    def create_match(self, match: MatchRecord) -> bool:
        """Conditional put; False when a match already exists for the meeting."""
        item = {
            TableKeys.MEETING_ID: match.meeting_id,
            "user1_id": match.user1_id,
            "user2_id": match.user2_id,
            "matched_at": match.matched_at.isoformat(),
            "messaging_enabled": match.messaging_enabled,
        }
        try:
            self._matches.put_item(
                Item=item,
                ConditionExpression=Attr(TableKeys.MEETING_ID).not_exists(),
            )
        except ClientError as exc:
            if _is_conditional_failure(exc):
                logger.info("dynamo_create_match_exists", meeting_id=match.meeting_id)
                return False
            logger.error("dynamo_create_match_failed", meeting_id=match.meeting_id, error=str(exc))
            raise PersistenceError(
                "create_match", str(exc), {"meeting_id": match.meeting_id}
            ) from exc

        logger.info("dynamo_create_match", meeting_id=match.meeting_id)
        return True

    # ------------------------------------------------------------------
    # Serialisation helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _meeting_to_item(record: MeetingRecord) -> Dict[str, Any]:
        """Convert domain MeetingRecord → DynamoDB item dict."""
        item: Dict[str, Any] = {
            TableKeys.MEETING_ID: record.meeting_id,
            "scheduled_at": record.scheduled_at.isoformat(),
            "status": record.status.value,
            "charge_status": record.charge_status.value,
            "fee_cents": record.fee_cents,
            "participants": [
                {TableKeys.USER_ID: p.user_id, "role": p.role.value}
                for p in record.participants
            ],
            "refund_pending": record.refund_pending,
            "matched": record.matched,
        }
        optional = {
            "host_id": record.host_id,
            "outcome": record.outcome.value if record.outcome else None,
            "fault_determination": (
                record.fault_determination.value if record.fault_determination else None
            ),
            "finalized_by": record.finalized_by,
            "finalized_at": _iso(record.finalized_at),
            "host_notes": record.host_notes,
            "refund_applied_at": _iso(record.refund_applied_at),
            "matched_at": _iso(record.matched_at),
            "responses_complete_notified_at": _iso(record.responses_complete_notified_at),
            "admin_resolution": (
                record.admin_resolution.value if record.admin_resolution else None
            ),
            "admin_resolution_notes": record.admin_resolution_notes,
            "admin_resolved_at": _iso(record.admin_resolved_at),
            "admin_resolved_by": record.admin_resolved_by,
        }
        # DynamoDB conditions rely on attribute absence, so None is never written
        item.update({k: v for k, v in optional.items() if v is not None})
        return item

    @staticmethod
    def _meeting_from_item(item: Dict[str, Any]) -> MeetingRecord:
        """Convert DynamoDB item dict → domain MeetingRecord."""
        outcome = item.get("outcome")
        fault = item.get("fault_determination")
        resolution = item.get("admin_resolution")
        return MeetingRecord(
            meeting_id=item[TableKeys.MEETING_ID],
            scheduled_at=item["scheduled_at"],
            host_id=item.get("host_id"),
            status=MeetingStatus(item.get("status", MeetingStatus.PENDING.value)),
            charge_status=ChargeStatus(item.get("charge_status", ChargeStatus.PENDING.value)),
            # Numbers come back as Decimal
            fee_cents=int(item.get("fee_cents", 0)),
            participants=[
                Participant(user_id=p[TableKeys.USER_ID], role=ParticipantRole(p["role"]))
                for p in item.get("participants", [])
            ],
            outcome=MeetingOutcome(outcome) if outcome else None,
            fault_determination=FaultDetermination(fault) if fault else None,
            finalized_by=item.get("finalized_by"),
            finalized_at=item.get("finalized_at"),
            host_notes=item.get("host_notes"),
            refund_pending=bool(item.get("refund_pending", False)),
            refund_applied_at=item.get("refund_applied_at"),
            matched=bool(item.get("matched", False)),
            matched_at=item.get("matched_at"),
            responses_complete_notified_at=item.get("responses_complete_notified_at"),
            admin_resolution=ReviewResolution(resolution) if resolution else None,
            admin_resolution_notes=item.get("admin_resolution_notes"),
            admin_resolved_at=item.get("admin_resolved_at"),
            admin_resolved_by=item.get("admin_resolved_by"),
        )


