"""
Port interface for the meeting aggregate (meeting, responses, match).

Implementations: DynamoMeetingStoreAdapter, InMemoryMeetingStoreAdapter (adapters/)
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional, Protocol, runtime_checkable

from domain.models import (
    ChargeStatus,
    MatchRecord,
    MeetingFinalization,
    MeetingRecord,
    MeetingResponse,
    MeetingStatus,
    ReviewResolutionUpdate,
)


@runtime_checkable
class MeetingStorePort(Protocol):
    """Persistence for the meeting aggregate.

    Conditional operations return ``False`` when their predicate does not
    hold; they never raise for a lost race. Every other failure raises
    PersistenceError.
    """

    def get_meeting(self, meeting_id: str) -> Optional[MeetingRecord]:
        """Retrieve a meeting (with its participants) by ID, or None."""
        ...

    def put_meeting(self, record: MeetingRecord) -> None:
        """Create or overwrite a meeting record.

        Used when meetings are created upstream and for seeding; the engine
        itself only mutates meetings through the conditional operations.
        """
        ...

    def finalize_meeting(
        self,
        meeting_id: str,
        finalization: MeetingFinalization,
        allowed_statuses: Iterable[MeetingStatus],
    ) -> bool:
        """Apply the write-once finalize fields atomically.

        Succeeds only while the meeting's status is in *allowed_statuses*
        and ``finalized_at`` is unset.

        Returns:
            True if applied, False if the predicate failed.
        """
        ...

    def claim_refund(self, meeting_id: str, claimed_at: datetime) -> bool:
        """Take the owed finalize refund (``refund_pending`` true → false).

        Returns:
            True for the single caller that should apply the refund.
        """
        ...

    def release_refund_claim(self, meeting_id: str) -> None:
        """Mark the refund as owed again after it could not be applied."""
        ...

    def upsert_response(self, response: MeetingResponse) -> None:
        """Insert or overwrite the response keyed by (meeting_id, user_id)."""
        ...

    def list_responses(self, meeting_id: str) -> List[MeetingResponse]:
        """All responses for a meeting (0, 1 or 2)."""
        ...

    def get_match(self, meeting_id: str) -> Optional[MatchRecord]:
        """The match for a meeting, or None."""
        ...

    def create_match(self, match: MatchRecord) -> bool:
        """Insert a match, unique on meeting_id.

        Returns:
            True if inserted, False if a match already existed.
        """
        ...

    def mark_matched(self, meeting_id: str, matched_at: datetime) -> None:
        """Set the meeting's matched flag and timestamp."""
        ...

    def claim_responses_complete_notice(self, meeting_id: str, claimed_at: datetime) -> bool:
        """Set the write-once "responses complete" notice marker.

        Returns:
            True for the single caller that set it, False afterwards.
        """
        ...

    def list_meetings_by_charge_status(self, charge_status: ChargeStatus) -> List[MeetingRecord]:
        """Meetings with the given charge status."""
        ...

    def resolve_review(self, meeting_id: str, update: ReviewResolutionUpdate) -> bool:
        """Apply an investigation resolution atomically.

        Succeeds only while ``charge_status`` is ``pending_review`` and no
        resolution has been recorded.
        """
        ...
