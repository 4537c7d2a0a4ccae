"""
Tests for MeetingResolutionCoordinator.finalize: the happy paths for
each charge decision, write-once protection, the concurrent race and
failure handling around refunds and notices.
"""

import threading
from unittest.mock import MagicMock

import pytest

from domain.models import (
    ChargeStatus,
    FaultDetermination,
    MeetingOutcome,
    MeetingStatus,
    NotificationKind,
    Participant,
    ParticipantRole,
)
from services.resolution_service import (
    MeetingResolutionCoordinator,
    finalized_state,
    split_participants,
)
from shared_utils.error_handler import (
    AlreadyFinalizedError,
    ForbiddenError,
    InconsistentStateError,
    InvalidStateError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)

from conftest import (
    ACCEPTER_ID,
    ADMIN_ID,
    HOST_ID,
    MEETING_ID,
    OUTSIDER_ID,
    REQUESTER_ID,
    make_meeting,
    notices_of,
)


def _finalize(coordinator, actor=HOST_ID, outcome="completed", fault="no_fault", decision="capture", **kw):
    return coordinator.finalize(MEETING_ID, actor, outcome, fault, decision, **kw)


class TestSplitParticipants:
    def test_returns_requester_then_accepter(self) -> None:
        requester, accepter = split_participants(make_meeting())
        assert (requester.user_id, accepter.user_id) == (REQUESTER_ID, ACCEPTER_ID)

    @pytest.mark.parametrize(
        "participants",
        [
            [],
            [Participant(user_id=REQUESTER_ID, role=ParticipantRole.REQUESTER)],
            [
                Participant(user_id=REQUESTER_ID, role=ParticipantRole.REQUESTER),
                Participant(user_id=ACCEPTER_ID, role=ParticipantRole.REQUESTER),
            ],
            [
                Participant(user_id=REQUESTER_ID, role=ParticipantRole.REQUESTER),
                Participant(user_id=REQUESTER_ID, role=ParticipantRole.ACCEPTER),
            ],
            [
                Participant(user_id=REQUESTER_ID, role=ParticipantRole.REQUESTER),
                Participant(user_id=ACCEPTER_ID, role=ParticipantRole.ACCEPTER),
                Participant(user_id=OUTSIDER_ID, role=ParticipantRole.ACCEPTER),
            ],
        ],
    )
    def test_invalid_cardinality(self, participants) -> None:
        with pytest.raises(InconsistentStateError):
            split_participants(make_meeting(participants=participants))

    def test_finalized_state_of_missing_meeting(self) -> None:
        assert finalized_state(None) == {}


class TestFinalizeCapture:
    def test_capture_records_write_once_fields(self, coordinator, meeting_store, credit_ledger) -> None:
        result = _finalize(coordinator, notes="  went well  ")

        assert result.charge_status == ChargeStatus.CAPTURED
        assert result.refund_issued is False
        meeting = meeting_store.get_meeting(MEETING_ID)
        assert meeting.status == MeetingStatus.COMPLETED
        assert meeting.charge_status == ChargeStatus.CAPTURED
        assert meeting.outcome == MeetingOutcome.COMPLETED
        assert meeting.fault_determination == FaultDetermination.NO_FAULT
        assert meeting.finalized_by == HOST_ID
        assert meeting.finalized_at is not None
        assert meeting.host_notes == "went well"
        assert credit_ledger.used_credits(REQUESTER_ID) == 2

    def test_requester_notice_only(self, coordinator, notification_store, operations_channel) -> None:
        _finalize(coordinator)

        assert [n.user_id for n in notification_store.notifications] == [REQUESTER_ID]
        notice = notification_store.notifications[0]
        assert notice.kind == NotificationKind.MEETING_FINALIZED
        assert notice.message == (
            "Dear Alice, Your video dating meeting has been concluded. "
            "The meeting charges have been finalized."
        )
        assert operations_channel.published == []

    def test_confirmed_meeting_is_finalizable(self, coordinator, meeting_store) -> None:
        meeting_store.put_meeting(make_meeting(status=MeetingStatus.CONFIRMED))
        _finalize(coordinator)
        assert meeting_store.get_meeting(MEETING_ID).status == MeetingStatus.COMPLETED

    def test_both_fault_capture_is_allowed(self, coordinator) -> None:
        result = _finalize(coordinator, fault="both_fault")
        assert result.charge_status == ChargeStatus.CAPTURED
        assert result.fault == FaultDetermination.BOTH_FAULT


class TestFinalizeRefund:
    def test_no_show_refund(self, coordinator, meeting_store, credit_ledger, notification_store) -> None:
        result = _finalize(coordinator, outcome="no_show", fault="accepter_fault", decision="refund")

        assert result.charge_status == ChargeStatus.REFUNDED
        assert result.refund_issued is True
        assert meeting_store.get_meeting(MEETING_ID).charge_status == ChargeStatus.REFUNDED
        assert credit_ledger.used_credits(REQUESTER_ID) == 1
        assert credit_ledger.used_credits(ACCEPTER_ID) == 1

        notices = notices_of(notification_store, NotificationKind.MEETING_FINALIZED)
        assert len(notices) == 1
        assert notices[0].user_id == REQUESTER_ID
        assert "no-show" in notices[0].message
        assert "refunded" in notices[0].message

    def test_refund_floors_at_zero(self, coordinator, credit_ledger) -> None:
        credit_ledger.seed(REQUESTER_ID, used_credits=0)
        _finalize(coordinator, decision="refund")
        assert credit_ledger.used_credits(REQUESTER_ID) == 0

    def test_refund_without_credit_record(self, coordinator) -> None:
        ledger_user_missing = MagicMock()
        ledger_user_missing.decrement_used_credits.return_value = 0
        coordinator._ledger = ledger_user_missing

        result = _finalize(coordinator, decision="refund")

        assert result.refund_issued is True
        ledger_user_missing.decrement_used_credits.assert_called_once_with(REQUESTER_ID, 1)

    def test_refund_is_marked_applied(self, coordinator, meeting_store) -> None:
        _finalize(coordinator, decision="refund")

        stored = meeting_store.get_meeting(MEETING_ID)
        assert stored.refund_pending is False
        assert stored.refund_applied_at is not None

    def test_capture_owes_no_refund(self, coordinator, meeting_store) -> None:
        _finalize(coordinator, decision="capture")

        stored = meeting_store.get_meeting(MEETING_ID)
        assert stored.refund_pending is False
        assert stored.refund_applied_at is None

    def test_decrement_failure_leaves_refund_owed(self, coordinator, meeting_store, credit_ledger) -> None:
        failing = MagicMock()
        failing.decrement_used_credits.side_effect = PersistenceError("decrement_used_credits", "boom")
        coordinator._ledger = failing

        with pytest.raises(PersistenceError) as exc_info:
            _finalize(coordinator, decision="refund")

        assert exc_info.value.message == "decrement_used_credits failed: boom"
        assert exc_info.value.context["refund_pending"] is True
        assert exc_info.value.context["user_id"] == REQUESTER_ID
        stored = meeting_store.get_meeting(MEETING_ID)
        assert stored.charge_status == ChargeStatus.REFUNDED
        assert stored.refund_pending is True
        assert stored.refund_applied_at is None
        assert credit_ledger.used_credits(REQUESTER_ID) == 2

    def test_retry_after_decrement_failure_applies_refund_once(
        self, coordinator, meeting_store, credit_ledger
    ) -> None:
        credit_ledger.seed(REQUESTER_ID, used_credits=1)
        healthy = coordinator._ledger
        failing = MagicMock()
        failing.decrement_used_credits.side_effect = PersistenceError("decrement_used_credits", "boom")
        coordinator._ledger = failing
        with pytest.raises(PersistenceError):
            _finalize(coordinator, outcome="no_show", fault="accepter_fault", decision="refund")

        coordinator._ledger = healthy
        with pytest.raises(AlreadyFinalizedError) as exc_info:
            _finalize(coordinator, outcome="no_show", fault="accepter_fault", decision="refund")
        assert exc_info.value.context["charge_status"] == "refunded"
        assert credit_ledger.used_credits(REQUESTER_ID) == 0

        credit_ledger.seed(REQUESTER_ID, used_credits=1)
        with pytest.raises(AlreadyFinalizedError):
            _finalize(coordinator, outcome="no_show", fault="accepter_fault", decision="refund")
        assert credit_ledger.used_credits(REQUESTER_ID) == 1
        assert meeting_store.get_meeting(MEETING_ID).refund_pending is False

    def test_failed_claim_release_is_reported(self) -> None:
        store = MagicMock()
        store.get_meeting.return_value = make_meeting()
        store.finalize_meeting.return_value = True
        store.claim_refund.return_value = True
        store.release_refund_claim.side_effect = PersistenceError("release_refund_claim", "down")
        ledger = MagicMock()
        ledger.decrement_used_credits.side_effect = PersistenceError("decrement_used_credits", "boom")
        coordinator = MeetingResolutionCoordinator(
            meeting_store=store,
            credit_ledger=ledger,
            user_directory=MagicMock(),
            emitter=MagicMock(),
        )

        with pytest.raises(PersistenceError) as exc_info:
            _finalize(coordinator, decision="refund")

        assert exc_info.value.context["refund_pending"] is False
        assert exc_info.value.message == "decrement_used_credits failed: boom"


class TestFinalizePendingReview:
    def test_both_fault_escalates_and_opens_investigation(
        self, coordinator, credit_ledger, notification_store, email_sender, operations_channel
    ) -> None:
        result = _finalize(coordinator, outcome="early_leave", fault="both_fault", decision="pending_review")

        assert result.charge_status == ChargeStatus.PENDING_REVIEW
        assert result.refund_issued is False
        assert credit_ledger.used_credits(REQUESTER_ID) == 2

        finalized = notices_of(notification_store, NotificationKind.MEETING_FINALIZED)
        assert [n.user_id for n in finalized] == [REQUESTER_ID]
        assert "under review" in finalized[0].message

        assert len(operations_channel.published) == 1
        escalation = operations_channel.published[0]
        assert escalation["kind"] == NotificationKind.MEETING_PENDING_REVIEW.value
        assert escalation["data"]["requester_id"] == REQUESTER_ID
        assert escalation["data"]["accepter_id"] == ACCEPTER_ID

        investigation = notices_of(notification_store, NotificationKind.MEETING_INVESTIGATION)
        assert sorted(n.user_id for n in investigation) == [ACCEPTER_ID, REQUESTER_ID]
        assert "March 07, 2026" in investigation[0].message
        assert sorted(e["to"] for e in email_sender.sent) == ["alice@example.com", "bob@example.com"]

    def test_no_fault_review_skips_investigation(
        self, coordinator, notification_store, operations_channel, email_sender
    ) -> None:
        _finalize(coordinator, decision="pending_review")

        assert len(operations_channel.published) == 1
        assert notices_of(notification_store, NotificationKind.MEETING_INVESTIGATION) == []
        assert email_sender.sent == []


class TestFinalizeRejections:
    @pytest.mark.parametrize(
        "kwargs, field",
        [
            ({"outcome": "great"}, "outcome"),
            ({"fault": "nobody"}, "fault"),
            ({"decision": "void"}, "charge_decision"),
            ({"decision": ""}, "charge_decision"),
        ],
    )
    def test_validation(self, coordinator, kwargs, field) -> None:
        with pytest.raises(ValidationError) as exc_info:
            _finalize(coordinator, **kwargs)
        assert exc_info.value.context["field"] == field

    def test_unknown_meeting(self, coordinator) -> None:
        with pytest.raises(NotFoundError):
            coordinator.finalize("nope", HOST_ID, "completed", "no_fault", "capture")

    @pytest.mark.parametrize("actor", [REQUESTER_ID, OUTSIDER_ID, "ghost"])
    def test_forbidden(self, coordinator, meeting_store, actor) -> None:
        with pytest.raises(ForbiddenError):
            _finalize(coordinator, actor=actor)
        assert meeting_store.get_meeting(MEETING_ID).finalized_at is None

    def test_admin_may_finalize(self, coordinator, meeting_store) -> None:
        _finalize(coordinator, actor=ADMIN_ID)
        assert meeting_store.get_meeting(MEETING_ID).finalized_by == ADMIN_ID

    @pytest.mark.parametrize("status", [MeetingStatus.CANCELLED, MeetingStatus.PENDING])
    def test_not_finalizable(self, coordinator, meeting_store, credit_ledger, notification_store, status) -> None:
        meeting_store.put_meeting(make_meeting(status=status))

        with pytest.raises(InvalidStateError):
            _finalize(coordinator, decision="refund")

        meeting = meeting_store.get_meeting(MEETING_ID)
        assert meeting.status == status
        assert meeting.charge_status == ChargeStatus.PENDING
        assert credit_ledger.used_credits(REQUESTER_ID) == 2
        assert notification_store.notifications == []

    def test_inconsistent_participants(self, coordinator, meeting_store) -> None:
        meeting_store.put_meeting(make_meeting(participants=[]))
        with pytest.raises(InconsistentStateError):
            _finalize(coordinator)
        assert meeting_store.get_meeting(MEETING_ID).finalized_at is None


class TestWriteOnce:
    def test_second_finalize_rejected(self, coordinator, meeting_store, credit_ledger, notification_store) -> None:
        _finalize(coordinator, outcome="no_show", fault="accepter_fault", decision="refund")
        before = meeting_store.get_meeting(MEETING_ID)

        with pytest.raises(AlreadyFinalizedError) as exc_info:
            _finalize(coordinator, decision="capture")

        assert exc_info.value.http_status == 409
        assert exc_info.value.context["charge_status"] == "refunded"
        assert exc_info.value.context["outcome"] == "no_show"
        assert meeting_store.get_meeting(MEETING_ID) == before
        assert credit_ledger.used_credits(REQUESTER_ID) == 1
        assert len(notification_store.notifications) == 1

    def test_concurrent_finalize_has_one_winner(
        self, coordinator, meeting_store, credit_ledger, notification_store
    ) -> None:
        barrier = threading.Barrier(2)
        outcomes = []

        def _run(actor: str) -> None:
            barrier.wait()
            try:
                outcomes.append(_finalize(coordinator, actor=actor, decision="refund"))
            except AlreadyFinalizedError as exc:
                outcomes.append(exc)

        threads = [threading.Thread(target=_run, args=(a,)) for a in (HOST_ID, ADMIN_ID)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        winners = [o for o in outcomes if not isinstance(o, AlreadyFinalizedError)]
        losers = [o for o in outcomes if isinstance(o, AlreadyFinalizedError)]
        assert len(winners) == 1
        assert len(losers) == 1
        assert losers[0].context["charge_status"] == "refunded"
        assert credit_ledger.used_credits(REQUESTER_ID) == 1
        assert len(notices_of(notification_store, NotificationKind.MEETING_FINALIZED)) == 1

    def test_lost_conditional_write_reports_winner_state(self) -> None:
        store = MagicMock()
        winner = make_meeting(
            charge_status=ChargeStatus.CAPTURED,
            outcome=MeetingOutcome.COMPLETED,
            fault_determination=FaultDetermination.NO_FAULT,
            finalized_by=ADMIN_ID,
            finalized_at=make_meeting().scheduled_at,
        )
        store.get_meeting.side_effect = [make_meeting(), winner]
        store.finalize_meeting.return_value = False
        coordinator = MeetingResolutionCoordinator(
            meeting_store=store,
            credit_ledger=MagicMock(),
            user_directory=MagicMock(),
            emitter=MagicMock(),
        )

        with pytest.raises(AlreadyFinalizedError) as exc_info:
            _finalize(coordinator)

        assert exc_info.value.context["charge_status"] == "captured"
        coordinator._emitter.notify.assert_not_called()

    def test_lost_conditional_write_to_cancellation(self) -> None:
        store = MagicMock()
        store.get_meeting.side_effect = [make_meeting(), make_meeting(status=MeetingStatus.CANCELLED)]
        store.finalize_meeting.return_value = False
        coordinator = MeetingResolutionCoordinator(
            meeting_store=store,
            credit_ledger=MagicMock(),
            user_directory=MagicMock(),
            emitter=MagicMock(),
        )

        with pytest.raises(InvalidStateError) as exc_info:
            _finalize(coordinator)
        assert exc_info.value.context["status"] == "cancelled"


class TestNoticesAreBestEffort:
    def test_notification_failure_does_not_fail_finalize(self, coordinator, meeting_store) -> None:
        emitter = MagicMock()
        emitter.notify.side_effect = RuntimeError("unexpected")
        emitter.recipient_name.return_value = "Alice"
        coordinator._emitter = emitter

        result = _finalize(coordinator, decision="pending_review", fault="requester_fault")

        assert result.charge_status == ChargeStatus.PENDING_REVIEW
        assert meeting_store.get_meeting(MEETING_ID).is_finalized

    def test_in_app_store_down(self, coordinator, email_sender) -> None:
        coordinator._emitter._in_app = MagicMock()
        coordinator._emitter._in_app.create_notification.side_effect = RuntimeError("db down")

        result = _finalize(coordinator, fault="both_fault", decision="pending_review")

        assert result.charge_status == ChargeStatus.PENDING_REVIEW
        assert len(email_sender.sent) == 2
