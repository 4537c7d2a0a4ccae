"""
MatchFormationService: creates the durable match when both participants
accept.

Idempotent per meeting: the existing match is returned unchanged and no
notices are re-sent. Uniqueness is enforced by the store's conditional
insert, so two racing callers produce exactly one match and one pair of
"it's a match" notices.
"""

from __future__ import annotations

from domain.models import MatchRecord, NotificationKind, utc_now
from ports.meeting_store import MeetingStorePort
from services.notification_emitter import NotificationEmitter
from services.notification_templates import MATCH_MESSAGE, MATCH_TITLE, EmailTemplate
from shared_utils.constants import LogScope
from shared_utils.error_handler import PersistenceError
from shared_utils.logging_utils import ContextualLogger, log_execution


logger = ContextualLogger(scope=LogScope.MATCHING)


class MatchFormationService:

    def __init__(
        self,
        *,
        meeting_store: MeetingStorePort,
        emitter: NotificationEmitter,
    ) -> None:
        self._store = meeting_store
        self._emitter = emitter

    @log_execution(scope=LogScope.MATCHING)
    def form_match(self, meeting_id: str, user_a: str, user_b: str) -> MatchRecord:
        """Return the meeting's match, creating it on first call.

        Raises:
            PersistenceError: If the match could not be stored. Callers must
                not assume a match exists in that case.
        """
        existing = self._store.get_match(meeting_id)
        if existing is not None:
            logger.info("match_already_exists", meeting_id=meeting_id)
            return existing

        matched_at = utc_now()
        candidate = MatchRecord(
            meeting_id=meeting_id,
            user1_id=user_a,
            user2_id=user_b,
            matched_at=matched_at,
            messaging_enabled=True,
        )
        if not self._store.create_match(candidate):
            # Lost the insert race; the winner owns the notices
            winner = self._store.get_match(meeting_id)
            if winner is None:
                raise PersistenceError(
                    "create_match",
                    "insert rejected but no match found",
                    {"meeting_id": meeting_id},
                )
            logger.info("match_created_concurrently", meeting_id=meeting_id)
            return winner

        logger.info("match_created", meeting_id=meeting_id, user1_id=user_a, user2_id=user_b)

        try:
            self._store.mark_matched(meeting_id, matched_at)
        except PersistenceError as exc:
            # The match row is the source of truth; the meeting flag is derived
            logger.error("mark_matched_failed", meeting_id=meeting_id, error=exc.message)

        self._notify_pair(candidate)
        return candidate

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _notify_pair(self, match: MatchRecord) -> None:
        for user_id, partner_id in (
            (match.user1_id, match.user2_id),
            (match.user2_id, match.user1_id),
        ):
            name = self._emitter.recipient_name(user_id)
            partner_name = self._emitter.recipient_name(partner_id, full=True)
            self._emitter.notify(
                user_id,
                NotificationKind.MATCH_CREATED,
                MATCH_TITLE,
                MATCH_MESSAGE.format(name=name, partner_name=partner_name),
                data={"meeting_id": match.meeting_id, "partner_id": partner_id},
                email_template=EmailTemplate.MATCH_FOUND,
                email_data={"partnerName": partner_name, "meetingId": match.meeting_id},
            )
