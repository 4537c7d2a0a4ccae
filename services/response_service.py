"""
ResponseAggregator: collects the two post-meeting decisions and derives
the combined state.

Flow per submission:
    1. Validate input, load the meeting, check the caller is a participant
       and the meeting has concluded.
    2. Upsert the caller's response (one row per meeting × user).
    3. Tell the partner a response arrived (every submission).
    4. With both responses in: both "yes" → MatchFormationService;
       otherwise the "responses complete" notice, sent once per meeting.
"""

from __future__ import annotations

from typing import List, Optional

from domain.models import (
    MeetingRecord,
    MeetingResponse,
    MeetingStatus,
    NotificationKind,
    ParticipantRole,
    ResponseDecision,
    ResponseSubmissionResult,
    utc_now,
)
from ports.meeting_store import MeetingStorePort
from ports.user_directory import UserDirectoryPort
from services.match_service import MatchFormationService
from services.notification_emitter import NotificationEmitter
from services.notification_templates import (
    RESPONSE_RECEIVED_MESSAGE,
    RESPONSE_RECEIVED_TITLE,
    RESPONSES_COMPLETE_MESSAGE,
    RESPONSES_COMPLETE_TITLE,
    EmailTemplate,
    build_agreement_text,
    format_meeting_date,
)
from shared_utils.constants import Defaults, LogScope
from shared_utils.error_handler import (
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    PersistenceError,
)
from shared_utils.logging_utils import ContextualLogger, log_execution
from shared_utils.validation import InputValidator


logger = ContextualLogger(scope=LogScope.RESPONSES)


class ResponseAggregator:
    """Accepts participant decisions and reconciles them per meeting."""

    def __init__(
        self,
        *,
        meeting_store: MeetingStorePort,
        user_directory: UserDirectoryPort,
        match_service: MatchFormationService,
        emitter: NotificationEmitter,
    ) -> None:
        self._store = meeting_store
        self._directory = user_directory
        self._matches = match_service
        self._emitter = emitter

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @log_execution(scope=LogScope.RESPONSES)
    def submit_response(
        self,
        meeting_id: str,
        actor_id: str,
        decision: str,
        partner_name: Optional[str] = None,
    ) -> ResponseSubmissionResult:
        """Record *actor_id*'s decision and return the meeting's combined state.

        Raises:
            ValidationError: Missing meeting id or unknown decision.
            NotFoundError: Meeting does not exist.
            ForbiddenError: Caller is not a participant.
            InvalidStateError: Meeting has not concluded yet.
            PersistenceError: The response could not be stored.
        """
        meeting_id = InputValidator.validate_non_empty_string(meeting_id, "meeting_id")
        choice = InputValidator.validate_choice(decision, ResponseDecision, "response")
        partner_display = (
            InputValidator.validate_optional_text(partner_name, "partner_name")
            or Defaults.FALLBACK_PARTNER_NAME
        )

        meeting = self._load_meeting(meeting_id)
        if meeting.participant_for(actor_id) is None:
            logger.warning("response_forbidden", meeting_id=meeting_id, actor_id=actor_id)
            raise ForbiddenError(
                "Not a participant in this meeting", {"meeting_id": meeting_id}
            )
        if meeting.status != MeetingStatus.COMPLETED:
            raise InvalidStateError(
                "Responses are only accepted once the meeting has concluded",
                {"meeting_id": meeting_id, "status": meeting.status.value},
            )

        submitter_name = self._emitter.recipient_name(actor_id, full=True)
        response = MeetingResponse(
            meeting_id=meeting_id,
            user_id=actor_id,
            decision=choice,
            agreement_text=build_agreement_text(choice, submitter_name, partner_display),
            signed_at=utc_now(),
        )
        self._store.upsert_response(response)
        logger.info(
            "response_recorded",
            meeting_id=meeting_id,
            user_id=actor_id,
            decision=choice.value,
        )

        responses = self._participant_responses(meeting)
        self._notify_partner(meeting, actor_id, responses)

        if len(responses) < 2:
            return ResponseSubmissionResult(meeting_id=meeting_id, complete=False)
        return self._evaluate(meeting, responses)

    def list_responses(self, meeting_id: str, actor_id: str) -> List[MeetingResponse]:
        """Responses for a meeting, visible to its participants and privileged roles."""
        meeting_id = InputValidator.validate_non_empty_string(meeting_id, "meeting_id")
        meeting = self._load_meeting(meeting_id)

        if meeting.participant_for(actor_id) is None:
            account = self._directory.get_account(actor_id)
            if account is None or not account.is_privileged:
                raise ForbiddenError(
                    "Not authorized to view responses for this meeting",
                    {"meeting_id": meeting_id},
                )
        return self._store.list_responses(meeting_id)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _load_meeting(self, meeting_id: str) -> MeetingRecord:
        meeting = self._store.get_meeting(meeting_id)
        if meeting is None:
            raise NotFoundError("Meeting", meeting_id)
        return meeting

    def _participant_responses(self, meeting: MeetingRecord) -> List[MeetingResponse]:
        participant_ids = {p.user_id for p in meeting.participants}
        return [
            r for r in self._store.list_responses(meeting.meeting_id)
            if r.user_id in participant_ids
        ]

    def _evaluate(
        self,
        meeting: MeetingRecord,
        responses: List[MeetingResponse],
    ) -> ResponseSubmissionResult:
        meeting_id = meeting.meeting_id

        if all(r.decision == ResponseDecision.YES for r in responses):
            user_a, user_b = self._ordered_pair(meeting, responses)
            try:
                match = self._matches.form_match(meeting_id, user_a, user_b)
            except PersistenceError as exc:
                logger.error("match_formation_failed", meeting_id=meeting_id, error=exc.message)
                return ResponseSubmissionResult(meeting_id=meeting_id, complete=True, matched=None)
            return ResponseSubmissionResult(
                meeting_id=meeting_id, complete=True, matched=True, match=match
            )

        # The match row is kept; the combined state follows the current decisions
        if self._store.get_match(meeting_id) is not None:
            logger.info("match_row_kept_after_decline", meeting_id=meeting_id)

        self._notify_responses_complete(meeting)
        return ResponseSubmissionResult(meeting_id=meeting_id, complete=True, matched=False)

    @staticmethod
    def _ordered_pair(meeting: MeetingRecord, responses: List[MeetingResponse]):
        """Requester first when roles are known, else response order."""
        requester = meeting.participant_with_role(ParticipantRole.REQUESTER)
        accepter = meeting.participant_with_role(ParticipantRole.ACCEPTER)
        if requester and accepter:
            return requester.user_id, accepter.user_id
        return responses[0].user_id, responses[1].user_id

    def _notify_partner(
        self,
        meeting: MeetingRecord,
        actor_id: str,
        responses: List[MeetingResponse],
    ) -> None:
        partner = meeting.partner_of(actor_id)
        if partner is None:
            return
        submitter_name = self._emitter.recipient_name(actor_id, full=True)
        partner_pending = all(r.user_id != partner.user_id for r in responses)
        self._emitter.notify(
            partner.user_id,
            NotificationKind.MEETING_RESPONSE_SUBMITTED,
            RESPONSE_RECEIVED_TITLE,
            RESPONSE_RECEIVED_MESSAGE.format(partner_name=submitter_name),
            data={"meeting_id": meeting.meeting_id, "partner_id": actor_id},
            email_template=EmailTemplate.RESPONSE_SUBMITTED,
            email_data={
                "partnerName": submitter_name,
                "meetingId": meeting.meeting_id,
                "meetingDate": format_meeting_date(meeting.scheduled_at),
                "yourResponsePending": partner_pending,
            },
        )

    def _notify_responses_complete(self, meeting: MeetingRecord) -> None:
        meeting_id = meeting.meeting_id
        try:
            claimed = self._store.claim_responses_complete_notice(meeting_id, utc_now())
        except PersistenceError as exc:
            logger.error("responses_complete_claim_failed", meeting_id=meeting_id, error=exc.message)
            return
        if not claimed:
            logger.debug("responses_complete_already_sent", meeting_id=meeting_id)
            return

        for participant in meeting.participants:
            name = self._emitter.recipient_name(participant.user_id)
            self._emitter.notify(
                participant.user_id,
                NotificationKind.MEETING_RESPONSES_COMPLETE,
                RESPONSES_COMPLETE_TITLE,
                RESPONSES_COMPLETE_MESSAGE.format(name=name),
                data={"meeting_id": meeting_id, "matched": False},
            )
        logger.info("responses_complete_notified", meeting_id=meeting_id)
