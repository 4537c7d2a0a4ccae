"""
In-memory meeting store adapter.

Implements MeetingStorePort with plain dicts behind a single lock.
Intended for local development and tests, NOT for production.
Conditional operations check and write under the lock, which gives the same
at-most-once guarantees as the DynamoDB conditional writes within one process.
"""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from domain.models import (
    ChargeStatus,
    MatchRecord,
    MeetingFinalization,
    MeetingRecord,
    MeetingResponse,
    MeetingStatus,
    ReviewResolutionUpdate,
)
from ports.meeting_store import MeetingStorePort  # noqa: F401 (runtime_checkable)
from shared_utils.logging_utils import ContextualLogger
from shared_utils.constants import LogScope


logger = ContextualLogger(scope=LogScope.ADAPTER)


class InMemoryMeetingStoreAdapter:
    """Thread-safe dict-backed implementation of MeetingStorePort."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._meetings: Dict[str, MeetingRecord] = {}
        self._responses: Dict[Tuple[str, str], MeetingResponse] = {}
        self._matches: Dict[str, MatchRecord] = {}

    # ------------------------------------------------------------------
    # MeetingStorePort implementation
    # ------------------------------------------------------------------

    def get_meeting(self, meeting_id: str) -> Optional[MeetingRecord]:
        with self._lock:
            record = self._meetings.get(meeting_id)
            # Copies, so callers never mutate stored state
            return record.model_copy(deep=True) if record else None

    def put_meeting(self, record: MeetingRecord) -> None:
        with self._lock:
            self._meetings[record.meeting_id] = record.model_copy(deep=True)
        logger.debug("memory_put_meeting", meeting_id=record.meeting_id)

    def finalize_meeting(
        self,
        meeting_id: str,
        finalization: MeetingFinalization,
        allowed_statuses: Iterable[MeetingStatus],
    ) -> bool:
        allowed = set(allowed_statuses)
        with self._lock:
            record = self._meetings.get(meeting_id)
            if record is None or record.status not in allowed or record.is_finalized:
                return False
            self._meetings[meeting_id] = record.model_copy(
                update=finalization.model_dump(exclude_none=True)
            )
        logger.info(
            "memory_finalize_meeting",
            meeting_id=meeting_id,
            charge_status=finalization.charge_status.value,
        )
        return True

    def claim_refund(self, meeting_id: str, claimed_at: datetime) -> bool:
        with self._lock:
            record = self._meetings.get(meeting_id)
            if record is None or not record.refund_pending:
                return False
            self._meetings[meeting_id] = record.model_copy(
                update={"refund_pending": False, "refund_applied_at": claimed_at}
            )
        return True

    def release_refund_claim(self, meeting_id: str) -> None:
        with self._lock:
            record = self._meetings.get(meeting_id)
            if record is not None:
                self._meetings[meeting_id] = record.model_copy(
                    update={"refund_pending": True, "refund_applied_at": None}
                )
        logger.warning("memory_release_refund_claim", meeting_id=meeting_id)

    def upsert_response(self, response: MeetingResponse) -> None:
        with self._lock:
            self._responses[(response.meeting_id, response.user_id)] = response.model_copy()

    def list_responses(self, meeting_id: str) -> List[MeetingResponse]:
        with self._lock:
            return [
                r.model_copy()
                for (mid, _), r in sorted(self._responses.items())
                if mid == meeting_id
            ]

    def get_match(self, meeting_id: str) -> Optional[MatchRecord]:
        with self._lock:
            match = self._matches.get(meeting_id)
            return match.model_copy() if match else None

    def create_match(self, match: MatchRecord) -> bool:
        with self._lock:
            if match.meeting_id in self._matches:
                return False
            self._matches[match.meeting_id] = match.model_copy()
        logger.info("memory_create_match", meeting_id=match.meeting_id)
        return True

    def mark_matched(self, meeting_id: str, matched_at: datetime) -> None:
        with self._lock:
            record = self._meetings.get(meeting_id)
            if record is not None:
                self._meetings[meeting_id] = record.model_copy(
                    update={"matched": True, "matched_at": matched_at}
                )

    def claim_responses_complete_notice(self, meeting_id: str, claimed_at: datetime) -> bool:
        with self._lock:
            record = self._meetings.get(meeting_id)
            if record is None or record.responses_complete_notified_at is not None:
                return False
            self._meetings[meeting_id] = record.model_copy(
                update={"responses_complete_notified_at": claimed_at}
            )
        return True

    def list_meetings_by_charge_status(self, charge_status: ChargeStatus) -> List[MeetingRecord]:
        with self._lock:
            return [
                r.model_copy(deep=True)
                for r in self._meetings.values()
                if r.charge_status == charge_status
            ]

    def resolve_review(self, meeting_id: str, update: ReviewResolutionUpdate) -> bool:
        with self._lock:
            record = self._meetings.get(meeting_id)
            if (
                record is None
                or record.charge_status != ChargeStatus.PENDING_REVIEW
                or record.admin_resolution is not None
            ):
                return False
            self._meetings[meeting_id] = record.model_copy(
                update=update.model_dump(exclude_none=True)
            )
        logger.info(
            "memory_resolve_review",
            meeting_id=meeting_id,
            resolution=update.admin_resolution.value,
        )
        return True
