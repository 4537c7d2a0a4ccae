"""
ReviewService: administrator queue and resolution for meetings finalized
as ``pending_review``.

Resolution is write-once (conditional on the meeting still being
``pending_review`` with no recorded resolution). Ledger movements happen
only after that claim succeeds; notices and the audit entry are
best-effort.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from domain.models import (
    AdminAuditEntry,
    ChargeStatus,
    MeetingRecord,
    NotificationKind,
    Participant,
    ParticipantRole,
    ReviewCase,
    ReviewOutcome,
    ReviewParticipant,
    ReviewResolution,
    ReviewResolutionUpdate,
    utc_now,
)
from ports.audit_log import AuditLogPort
from ports.credit_ledger import CreditLedgerPort
from ports.meeting_store import MeetingStorePort
from ports.user_directory import UserDirectoryPort
from services.notification_emitter import NotificationEmitter
from services.notification_templates import (
    RESOLVED_TITLE,
    EmailTemplate,
    build_resolution_message,
    format_meeting_date,
)
from services.resolution_service import finalized_state, split_participants
from shared_utils.constants import Defaults, LogScope
from shared_utils.error_handler import (
    AlreadyFinalizedError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    PersistenceError,
)
from shared_utils.logging_utils import ContextualLogger, log_execution
from shared_utils.validation import InputValidator


logger = ContextualLogger(scope=LogScope.REVIEW)

AUDIT_ACTION = "resolve_investigation"
REFUND_TRANSACTION = "investigation_refund"
CHARGE_TRANSACTION = "investigation_charge"

# resolution → (charge_status, refund requester?, charge accepter?)
RESOLUTION_PLAN: Dict[ReviewResolution, Tuple[ChargeStatus, bool, bool]] = {
    ReviewResolution.CHARGE_REQUESTER: (ChargeStatus.CAPTURED, False, False),
    ReviewResolution.REFUND_REQUESTER: (ChargeStatus.REFUNDED, True, False),
    ReviewResolution.CHARGE_ACCEPTER: (ChargeStatus.REFUNDED, True, True),
    ReviewResolution.NO_CHARGE: (ChargeStatus.REFUNDED, True, False),
    ReviewResolution.SPLIT: (ChargeStatus.CAPTURED, False, False),
}

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class ReviewService:
    """Admin-only investigation queue and resolution."""

    def __init__(
        self,
        *,
        meeting_store: MeetingStorePort,
        credit_ledger: CreditLedgerPort,
        user_directory: UserDirectoryPort,
        audit_log: AuditLogPort,
        emitter: NotificationEmitter,
    ) -> None:
        self._store = meeting_store
        self._ledger = credit_ledger
        self._directory = user_directory
        self._audit = audit_log
        self._emitter = emitter

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def list_review_cases(
        self,
        actor_id: str,
        charge_status: ChargeStatus = ChargeStatus.PENDING_REVIEW,
    ) -> List[ReviewCase]:
        """Meetings with *charge_status*, oldest finalization first."""
        self._require_privileged(actor_id)
        meetings = self._store.list_meetings_by_charge_status(charge_status)
        meetings.sort(key=lambda m: m.finalized_at or _EPOCH)

        cases = [
            ReviewCase(
                meeting=meeting,
                participants=[self._review_participant(p) for p in meeting.participants],
                responses=self._store.list_responses(meeting.meeting_id),
            )
            for meeting in meetings
        ]
        logger.info("review_cases_listed", charge_status=charge_status.value, count=len(cases))
        return cases

    @log_execution(scope=LogScope.REVIEW)
    def resolve(
        self,
        meeting_id: str,
        actor_id: str,
        resolution: str,
        admin_notes: Optional[str] = None,
    ) -> ReviewOutcome:
        """Record the investigation outcome and move credits / wallet funds.

        Raises:
            ValidationError, ForbiddenError, NotFoundError, InvalidStateError,
            AlreadyFinalizedError, InconsistentStateError, PersistenceError.
        """
        meeting_id = InputValidator.validate_non_empty_string(meeting_id, "meeting_id")
        choice = InputValidator.validate_choice(resolution, ReviewResolution, "resolution")
        notes = InputValidator.validate_optional_text(admin_notes, "admin_notes")
        self._require_privileged(actor_id)

        log = logger.bind(meeting_id=meeting_id, actor_id=actor_id)

        meeting = self._store.get_meeting(meeting_id)
        if meeting is None:
            raise NotFoundError("Meeting", meeting_id)
        if meeting.admin_resolution is not None:
            raise AlreadyFinalizedError(meeting_id, self._resolved_state(meeting))
        if meeting.charge_status != ChargeStatus.PENDING_REVIEW:
            raise InvalidStateError(
                "Meeting is not pending review",
                {"meeting_id": meeting_id, "charge_status": meeting.charge_status.value},
            )

        requester, accepter = split_participants(meeting)
        charge_status, refund_requester, charge_accepter = RESOLUTION_PLAN[choice]

        update = ReviewResolutionUpdate(
            charge_status=charge_status,
            admin_resolution=choice,
            admin_resolution_notes=notes,
            admin_resolved_at=utc_now(),
            admin_resolved_by=actor_id,
        )
        if not self._store.resolve_review(meeting_id, update):
            current = self._store.get_meeting(meeting_id)
            if current is not None and current.admin_resolution is not None:
                raise AlreadyFinalizedError(meeting_id, self._resolved_state(current))
            raise InvalidStateError("Meeting is no longer pending review", {"meeting_id": meeting_id})

        log.info("investigation_resolved", resolution=choice.value, charge_status=charge_status.value)

        outcome = ReviewOutcome(
            meeting_id=meeting_id,
            resolution=choice,
            charge_status=charge_status,
            refund_user_id=requester.user_id if refund_requester else None,
            charge_user_id=accepter.user_id if charge_accepter else None,
        )
        self._apply_ledger(meeting, outcome)

        self._record_audit(actor_id, meeting, outcome, notes)
        try:
            self._notify_participants(meeting, requester, accepter, outcome, notes)
        except Exception as exc:
            log.error("resolution_notifications_failed", error=str(exc))
        return outcome

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _require_privileged(self, actor_id: str) -> None:
        account = self._directory.get_account(actor_id)
        if account is None or not account.is_privileged:
            logger.warning("review_forbidden", actor_id=actor_id)
            raise ForbiddenError("Administrator role required")

    def _review_participant(self, participant: Participant) -> ReviewParticipant:
        account = self._directory.get_account(participant.user_id)
        return ReviewParticipant(
            user_id=participant.user_id,
            role=participant.role,
            name=(account.full_name if account else "") or Defaults.FALLBACK_RECIPIENT_NAME,
            email=(account.email or "") if account else "",
        )

    @staticmethod
    def _resolved_state(meeting: MeetingRecord) -> dict:
        return {
            **finalized_state(meeting),
            "resolution": meeting.admin_resolution.value if meeting.admin_resolution else None,
        }

    def _apply_ledger(self, meeting: MeetingRecord, outcome: ReviewOutcome) -> None:
        meeting_ref = meeting.meeting_id[: Defaults.MEETING_REF_LENGTH]
        try:
            if outcome.refund_user_id:
                self._ledger.decrement_used_credits(
                    outcome.refund_user_id, Defaults.CREDIT_REFUND_AMOUNT
                )
                if meeting.fee_cents > 0:
                    self._ledger.adjust_wallet_balance(
                        outcome.refund_user_id,
                        meeting.fee_cents,
                        REFUND_TRANSACTION,
                        f"Refund after investigation of meeting {meeting_ref}",
                    )
            if outcome.charge_user_id and meeting.fee_cents > 0:
                self._ledger.adjust_wallet_balance(
                    outcome.charge_user_id,
                    -meeting.fee_cents,
                    CHARGE_TRANSACTION,
                    f"Charge after investigation of meeting {meeting_ref}",
                )
        except PersistenceError as exc:
            logger.critical(
                "investigation_ledger_update_failed",
                meeting_id=meeting.meeting_id,
                resolution=outcome.resolution.value,
                error=exc.message,
            )
            exc.context.update({"meeting_id": meeting.meeting_id, "ledger_pending": True})
            raise

    def _record_audit(
        self,
        actor_id: str,
        meeting: MeetingRecord,
        outcome: ReviewOutcome,
        notes: Optional[str],
    ) -> None:
        entry = AdminAuditEntry(
            log_id=str(uuid.uuid4()),
            admin_id=actor_id,
            action=AUDIT_ACTION,
            meta={
                "meeting_id": meeting.meeting_id,
                "resolution": outcome.resolution.value,
                "charge_status": outcome.charge_status.value,
                "refund_user_id": outcome.refund_user_id,
                "charge_user_id": outcome.charge_user_id,
                "fee_cents": meeting.fee_cents,
                "notes": notes,
            },
        )
        try:
            self._audit.record(entry)
        except Exception as exc:
            logger.error("audit_record_failed", meeting_id=meeting.meeting_id, error=str(exc))

    def _notify_participants(
        self,
        meeting: MeetingRecord,
        requester: Participant,
        accepter: Participant,
        outcome: ReviewOutcome,
        notes: Optional[str],
    ) -> None:
        meeting_date = format_meeting_date(meeting.scheduled_at)
        for participant in (requester, accepter):
            user_id = participant.user_id
            refunded = user_id == outcome.refund_user_id
            charged = user_id == outcome.charge_user_id or (
                outcome.resolution == ReviewResolution.CHARGE_REQUESTER
                and participant.role == ParticipantRole.REQUESTER
            )
            name = self._emitter.recipient_name(user_id)
            self._emitter.notify(
                user_id,
                NotificationKind.INVESTIGATION_RESOLVED,
                RESOLVED_TITLE,
                build_resolution_message(
                    name=name,
                    meeting_date=meeting_date,
                    resolution=outcome.resolution,
                    refunded=refunded,
                    charged=charged,
                ),
                data={
                    "meeting_id": meeting.meeting_id,
                    "resolution": outcome.resolution.value,
                    "refund_issued": refunded,
                    "charge_applied": charged,
                },
                email_template=EmailTemplate.INVESTIGATION_RESOLVED,
                email_data={
                    "meetingDate": meeting_date,
                    "meetingRef": meeting.meeting_id[: Defaults.MEETING_REF_LENGTH],
                    "refundIssued": refunded,
                    "chargeApplied": charged,
                    "adminNotes": notes or "",
                },
            )
