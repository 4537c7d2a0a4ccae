"""
Tests for the in-memory adapters used by local development and the
service tests.
"""

from datetime import datetime, timezone

from adapters.in_memory_credit_ledger import InMemoryCreditLedgerAdapter
from adapters.in_memory_directory import InMemoryUserDirectoryAdapter, StaticTokenIdentityAdapter
from adapters.in_memory_meeting_store import InMemoryMeetingStoreAdapter
from domain.models import (
    ChargeStatus,
    FaultDetermination,
    MatchRecord,
    MeetingFinalization,
    MeetingOutcome,
    MeetingStatus,
    NotificationPreferences,
    ReviewResolution,
    ReviewResolutionUpdate,
    UserAccount,
)
from ports.credit_ledger import CreditLedgerPort
from ports.identity import IdentityPort
from ports.meeting_store import MeetingStorePort
from ports.user_directory import UserDirectoryPort

from conftest import MEETING_ID, make_meeting


NOW = datetime(2026, 3, 7, 19, 0, tzinfo=timezone.utc)


def _finalization() -> MeetingFinalization:
    return MeetingFinalization(
        charge_status=ChargeStatus.CAPTURED,
        outcome=MeetingOutcome.COMPLETED,
        fault_determination=FaultDetermination.NO_FAULT,
        finalized_by="host-1",
        finalized_at=NOW,
    )


class TestPortConformance:
    def test_adapters_satisfy_ports(self) -> None:
        assert isinstance(InMemoryMeetingStoreAdapter(), MeetingStorePort)
        assert isinstance(InMemoryCreditLedgerAdapter(), CreditLedgerPort)
        assert isinstance(InMemoryUserDirectoryAdapter(), UserDirectoryPort)
        assert isinstance(StaticTokenIdentityAdapter(), IdentityPort)


class TestInMemoryMeetingStore:
    def test_returns_copies(self, meeting_store) -> None:
        meeting = meeting_store.get_meeting(MEETING_ID)
        meeting.participants.clear()
        assert len(meeting_store.get_meeting(MEETING_ID).participants) == 2

    def test_finalize_once(self, meeting_store) -> None:
        allowed = [MeetingStatus.COMPLETED]
        assert meeting_store.finalize_meeting(MEETING_ID, _finalization(), allowed) is True
        assert meeting_store.finalize_meeting(MEETING_ID, _finalization(), allowed) is False
        assert meeting_store.get_meeting(MEETING_ID).charge_status == ChargeStatus.CAPTURED

    def test_finalize_rejects_status(self, meeting_store) -> None:
        meeting_store.put_meeting(make_meeting(status=MeetingStatus.CANCELLED))
        assert meeting_store.finalize_meeting(MEETING_ID, _finalization(), [MeetingStatus.COMPLETED]) is False

    def test_finalize_unknown_meeting(self, meeting_store) -> None:
        assert meeting_store.finalize_meeting("nope", _finalization(), [MeetingStatus.COMPLETED]) is False

    def test_create_match_once(self, meeting_store) -> None:
        match = MatchRecord(meeting_id=MEETING_ID, user1_id="alice", user2_id="bob", matched_at=NOW)
        assert meeting_store.create_match(match) is True
        assert meeting_store.create_match(match) is False

    def test_claim_notice_once(self, meeting_store) -> None:
        assert meeting_store.claim_responses_complete_notice(MEETING_ID, NOW) is True
        assert meeting_store.claim_responses_complete_notice(MEETING_ID, NOW) is False


    def test_claim_refund_once(self, meeting_store) -> None:
        assert meeting_store.claim_refund(MEETING_ID, NOW) is False

        meeting_store.put_meeting(make_meeting(refund_pending=True))
        assert meeting_store.claim_refund(MEETING_ID, NOW) is True
        assert meeting_store.claim_refund(MEETING_ID, NOW) is False

        meeting = meeting_store.get_meeting(MEETING_ID)
        assert meeting.refund_pending is False
        assert meeting.refund_applied_at == NOW

    def test_released_refund_can_be_claimed_again(self, meeting_store) -> None:
        meeting_store.put_meeting(make_meeting(refund_pending=True))
        meeting_store.claim_refund(MEETING_ID, NOW)
        meeting_store.release_refund_claim(MEETING_ID)

        assert meeting_store.get_meeting(MEETING_ID).refund_applied_at is None
        assert meeting_store.claim_refund(MEETING_ID, NOW) is True
    def test_resolve_review_requires_pending_review(self, meeting_store) -> None:
        update = ReviewResolutionUpdate(
            charge_status=ChargeStatus.CAPTURED,
            admin_resolution=ReviewResolution.SPLIT,
            admin_resolved_at=NOW,
            admin_resolved_by="admin-1",
        )
        assert meeting_store.resolve_review(MEETING_ID, update) is False

        meeting_store.put_meeting(make_meeting(charge_status=ChargeStatus.PENDING_REVIEW))
        assert meeting_store.resolve_review(MEETING_ID, update) is True
        assert meeting_store.resolve_review(MEETING_ID, update) is False


class TestInMemoryCreditLedger:
    def test_decrement_floors(self) -> None:
        ledger = InMemoryCreditLedgerAdapter()
        ledger.seed("u1", used_credits=1)
        assert ledger.decrement_used_credits("u1", 3) == 0
        assert ledger.used_credits("u1") == 0

    def test_unknown_user(self) -> None:
        ledger = InMemoryCreditLedgerAdapter()
        assert ledger.decrement_used_credits("ghost") == 0
        assert ledger.adjust_wallet_balance("ghost", 100, "t", "d") is None
        assert ledger.transactions == []

    def test_wallet_transactions(self) -> None:
        ledger = InMemoryCreditLedgerAdapter()
        ledger.seed("u1", balance_cents=1_000)
        assert ledger.adjust_wallet_balance("u1", -250, "investigation_charge", "d") == 750
        assert ledger.transactions[0]["balance_after_cents"] == 750


class TestInMemoryDirectory:
    def test_preferences_default(self) -> None:
        directory = InMemoryUserDirectoryAdapter()
        directory.add_account(UserAccount(user_id="u1"))
        assert directory.get_notification_preferences("u1") == NotificationPreferences()

    def test_stored_preferences(self) -> None:
        directory = InMemoryUserDirectoryAdapter()
        directory.add_account(UserAccount(user_id="u1"), NotificationPreferences(matches_email=False))
        assert directory.get_notification_preferences("u1").matches_email is False

    def test_static_tokens(self) -> None:
        identity = StaticTokenIdentityAdapter({"t1": "u1"})
        identity.register("t2", "u2")
        assert identity.authenticate("t1") == "u1"
        assert identity.authenticate("t2") == "u2"
        assert identity.authenticate("bad") is None
