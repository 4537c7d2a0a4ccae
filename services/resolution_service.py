"""
MeetingResolutionCoordinator: host / administrator finalize of a meeting.

Pipeline:
    validate input → load meeting → authorize → check lifecycle
    → check participants → settlement policy → conditional write
    → credit refund → notices (best-effort)

The conditional write is the serialization point: only the caller that
wins it refunds credits or sends notices. A losing racer gets
AlreadyFinalizedError carrying the state the winner recorded.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

from domain.models import (
    FINALIZABLE_STATUSES,
    ChargeDecision,
    FaultDetermination,
    FinalizeResult,
    MeetingFinalization,
    MeetingOutcome,
    MeetingRecord,
    MeetingStatus,
    NotificationKind,
    Participant,
    ParticipantRole,
    Settlement,
    utc_now,
)
from ports.credit_ledger import CreditLedgerPort
from ports.meeting_store import MeetingStorePort
from ports.user_directory import UserDirectoryPort
from services import settlement_policy
from services.notification_emitter import NotificationEmitter
from services.notification_templates import (
    FINALIZED_TITLE,
    INVESTIGATION_NOTICE,
    INVESTIGATION_TITLE,
    PENDING_REVIEW_TITLE,
    EmailTemplate,
    build_finalize_message,
    build_pending_review_message,
    format_meeting_date,
)
from shared_utils.constants import Defaults, LogScope
from shared_utils.error_handler import (
    AlreadyFinalizedError,
    ForbiddenError,
    InconsistentStateError,
    InvalidStateError,
    NotFoundError,
    PersistenceError,
)
from shared_utils.logging_utils import ContextualLogger, log_execution
from shared_utils.validation import InputValidator


logger = ContextualLogger(scope=LogScope.RESOLUTION)


def split_participants(meeting: MeetingRecord) -> Tuple[Participant, Participant]:
    """Return (requester, accepter) or raise InconsistentStateError.

    A meeting must have exactly two participants with distinct users and
    one of each role. Anything else is an upstream integrity violation.
    """
    requester = meeting.participant_with_role(ParticipantRole.REQUESTER)
    accepter = meeting.participant_with_role(ParticipantRole.ACCEPTER)
    if (
        len(meeting.participants) != 2
        or requester is None
        or accepter is None
        or requester.user_id == accepter.user_id
    ):
        logger.critical(
            "participant_cardinality_violation",
            meeting_id=meeting.meeting_id,
            participant_count=len(meeting.participants),
            roles=[p.role.value for p in meeting.participants],
        )
        raise InconsistentStateError(
            "Meeting does not have exactly one requester and one accepter",
            {"meeting_id": meeting.meeting_id, "participant_count": len(meeting.participants)},
        )
    return requester, accepter


def finalized_state(meeting: Optional[MeetingRecord]) -> Dict[str, Any]:
    """Current write-once state, returned to callers that lost a race."""
    if meeting is None:
        return {}
    return {
        "charge_status": meeting.charge_status.value,
        "outcome": meeting.outcome.value if meeting.outcome else None,
        "fault": meeting.fault_determination.value if meeting.fault_determination else None,
        "finalized_at": meeting.finalized_at.isoformat() if meeting.finalized_at else None,
    }


class MeetingResolutionCoordinator:
    """Processes one finalize request end to end."""

    def __init__(
        self,
        *,
        meeting_store: MeetingStorePort,
        credit_ledger: CreditLedgerPort,
        user_directory: UserDirectoryPort,
        emitter: NotificationEmitter,
    ) -> None:
        self._store = meeting_store
        self._ledger = credit_ledger
        self._directory = user_directory
        self._emitter = emitter

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @log_execution(scope=LogScope.RESOLUTION)
    def finalize(
        self,
        meeting_id: str,
        actor_id: str,
        outcome: str,
        fault: str,
        charge_decision: str,
        notes: Optional[str] = None,
    ) -> FinalizeResult:
        """Finalize a meeting's outcome and settlement.

        Raises:
            ValidationError: An enum field is missing or unknown.
            NotFoundError: Meeting does not exist.
            ForbiddenError: Actor is neither the host nor privileged.
            InvalidStateError: Meeting is not confirmed/completed.
            AlreadyFinalizedError: Write-once fields are already set.
            InconsistentStateError: Participant cardinality is violated.
            PersistenceError: A storage write failed.
        """
        # 1. Validate
        meeting_id = InputValidator.validate_non_empty_string(meeting_id, "meeting_id")
        outcome_value = InputValidator.validate_choice(outcome, MeetingOutcome, "outcome")
        fault_value = InputValidator.validate_choice(fault, FaultDetermination, "fault")
        decision = InputValidator.validate_choice(charge_decision, ChargeDecision, "charge_decision")
        host_notes = InputValidator.validate_optional_text(notes, "notes")

        log = logger.bind(meeting_id=meeting_id, actor_id=actor_id)

        # 2. Load
        meeting = self._store.get_meeting(meeting_id)
        if meeting is None:
            raise NotFoundError("Meeting", meeting_id)

        # 3. Authorize
        self._authorize(meeting, actor_id)

        # 4. Lifecycle
        if meeting.status not in FINALIZABLE_STATUSES:
            log.warning("finalize_invalid_state", status=meeting.status.value)
            raise InvalidStateError(
                f"Cannot finalize a {meeting.status.value} meeting",
                {"meeting_id": meeting_id, "status": meeting.status.value},
            )
        if meeting.is_finalized:
            self._complete_owed_refund(meeting)
            raise AlreadyFinalizedError(meeting_id, finalized_state(meeting))

        # 5. Participants
        requester, accepter = split_participants(meeting)

        # 6. Settlement
        settlement = settlement_policy.decide(outcome_value, fault_value, decision)
        if settlement_policy.is_fault_override(fault_value, decision):
            log.info(
                "fault_decision_override",
                fault=fault_value.value,
                charge_decision=decision.value,
                fault_decision_override=True,
            )

        # 7. Conditional write (before any money moves)
        finalization = MeetingFinalization(
            status=MeetingStatus.COMPLETED,
            charge_status=settlement.charge_status,
            outcome=outcome_value,
            fault_determination=fault_value,
            finalized_by=actor_id,
            finalized_at=utc_now(),
            host_notes=host_notes,
            refund_pending=settlement.refund_issued,
        )
        if not self._store.finalize_meeting(meeting_id, finalization, FINALIZABLE_STATUSES):
            self._raise_lost_race(meeting_id)

        log.info(
            "meeting_finalized",
            outcome=outcome_value.value,
            fault=fault_value.value,
            charge_decision=decision.value,
            charge_status=settlement.charge_status.value,
            refund_issued=settlement.refund_issued,
        )

        # 8. Refund
        if settlement.refund_issued:
            self._refund_requester(meeting_id, requester.user_id)

        # 9-11. Notices
        try:
            self._emit_effects(meeting, requester, accepter, outcome_value, fault_value, decision, settlement)
        except Exception as exc:
            log.error("finalize_notifications_failed", error=str(exc))

        # 12. Result
        return FinalizeResult(
            meeting_id=meeting_id,
            charge_status=settlement.charge_status,
            refund_issued=settlement.refund_issued,
            outcome=outcome_value,
            fault=fault_value,
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _authorize(self, meeting: MeetingRecord, actor_id: str) -> None:
        if meeting.host_id and meeting.host_id == actor_id:
            return
        account = self._directory.get_account(actor_id)
        if account is not None and account.is_privileged:
            return
        logger.warning("finalize_forbidden", meeting_id=meeting.meeting_id, actor_id=actor_id)
        raise ForbiddenError(
            "Only the meeting host or an administrator can finalize this meeting",
            {"meeting_id": meeting.meeting_id},
        )

    def _raise_lost_race(self, meeting_id: str) -> None:
        current = self._store.get_meeting(meeting_id)
        if current is not None and current.is_finalized:
            logger.info("finalize_lost_race", meeting_id=meeting_id)
            self._complete_owed_refund(current)
            raise AlreadyFinalizedError(meeting_id, finalized_state(current))
        status = current.status.value if current else None
        raise InvalidStateError(
            "Meeting changed state before it could be finalized",
            {"meeting_id": meeting_id, "status": status},
        )

    def _complete_owed_refund(self, meeting: MeetingRecord) -> None:
        """Apply a refund an earlier finalize recorded but could not apply."""
        if not meeting.refund_pending:
            return
        requester = meeting.participant_with_role(ParticipantRole.REQUESTER)
        if requester is None:
            return
        logger.warning("finalize_completing_owed_refund", meeting_id=meeting.meeting_id)
        self._refund_requester(meeting.meeting_id, requester.user_id)

    def _refund_requester(self, meeting_id: str, requester_id: str) -> None:
        """Decrement the requester's used credits once per finalized meeting.

        The ``refund_pending`` claim makes the decrement exactly-once across
        retries and racers. If the decrement fails the claim is released so
        the next finalize call for this meeting applies it.
        """
        if not self._store.claim_refund(meeting_id, utc_now()):
            logger.info("refund_already_claimed", meeting_id=meeting_id)
            return
        try:
            remaining = self._ledger.decrement_used_credits(
                requester_id, Defaults.CREDIT_REFUND_AMOUNT
            )
        except PersistenceError as exc:
            released = self._release_refund_claim(meeting_id)
            logger.critical(
                "refund_credit_decrement_failed",
                meeting_id=meeting_id,
                user_id=requester_id,
                error=exc.message,
                refund_pending=released,
            )
            exc.context.update(
                {"meeting_id": meeting_id, "user_id": requester_id, "refund_pending": released}
            )
            raise
        logger.info(
            "requester_credit_refunded",
            meeting_id=meeting_id,
            user_id=requester_id,
            used_credits=remaining,
        )

    def _release_refund_claim(self, meeting_id: str) -> bool:
        try:
            self._store.release_refund_claim(meeting_id)
        except PersistenceError as exc:
            logger.critical("refund_claim_release_failed", meeting_id=meeting_id, error=exc.message)
            return False
        return True

    def _emit_effects(
        self,
        meeting: MeetingRecord,
        requester: Participant,
        accepter: Participant,
        outcome: MeetingOutcome,
        fault: FaultDetermination,
        decision: ChargeDecision,
        settlement: Settlement,
    ) -> None:
        meeting_id = meeting.meeting_id
        data = {
            "meeting_id": meeting_id,
            "outcome": outcome.value,
            "fault": fault.value,
            "charge_decision": decision.value,
            "charge_status": settlement.charge_status.value,
            "refund_issued": settlement.refund_issued,
        }

        # 9. Requester outcome notice
        first_name = self._emitter.recipient_name(requester.user_id)
        self._emitter.notify(
            requester.user_id,
            NotificationKind.MEETING_FINALIZED,
            FINALIZED_TITLE,
            f"Dear {first_name}, " + build_finalize_message(outcome, decision),
            data=data,
        )

        if decision != ChargeDecision.PENDING_REVIEW:
            return

        # 10. Operations escalation
        self._emitter.escalate(
            NotificationKind.MEETING_PENDING_REVIEW,
            PENDING_REVIEW_TITLE,
            build_pending_review_message(meeting_id, fault.value),
            data={**data, "requester_id": requester.user_id, "accepter_id": accepter.user_id},
        )

        # 11. Investigation notice to both participants
        if fault == FaultDetermination.NO_FAULT:
            return
        meeting_date = format_meeting_date(meeting.scheduled_at)
        for participant in (requester, accepter):
            self._emitter.notify(
                participant.user_id,
                NotificationKind.MEETING_INVESTIGATION,
                INVESTIGATION_TITLE,
                INVESTIGATION_NOTICE.format(meeting_date=meeting_date),
                data={"meeting_id": meeting_id, "meeting_date": meeting_date, "fault": fault.value},
                email_template=EmailTemplate.INVESTIGATION_NOTICE,
                email_data={"meetingDate": meeting_date, "meetingId": meeting_id},
            )
