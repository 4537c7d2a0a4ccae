"""
Root conftest.py: shared fixtures for the entire test suite.

Guidelines:
    • No __init__.py in test sub-directories (avoids shadowing root packages).
    • pytest.ini_options lives in pyproject.toml with pythonpath=["."].
    • Markers: integration.

The engine fixtures wire real services to the in-memory adapters, seeded
with one completed meeting between Alice (requester) and Bob (accepter)
hosted by ``host-1``.
"""

from datetime import datetime, timezone
from typing import List

import pytest

from adapters.in_memory_credit_ledger import InMemoryCreditLedgerAdapter
from adapters.in_memory_directory import InMemoryUserDirectoryAdapter, StaticTokenIdentityAdapter
from adapters.in_memory_meeting_store import InMemoryMeetingStoreAdapter
from adapters.in_memory_notification_channels import (
    InMemoryAuditLogAdapter,
    InMemoryNotificationStoreAdapter,
    RecordingEmailSenderAdapter,
    RecordingOperationsChannelAdapter,
)
from domain.models import (
    MeetingRecord,
    MeetingStatus,
    NotificationKind,
    Participant,
    ParticipantRole,
    UserAccount,
    UserRole,
)
from services.match_service import MatchFormationService
from services.notification_emitter import NotificationEmitter
from services.resolution_service import MeetingResolutionCoordinator
from services.response_service import ResponseAggregator
from services.review_service import ReviewService


# ---------------------------------------------------------------------------
# Marker registration
# ---------------------------------------------------------------------------

def pytest_configure(config):
    config.addinivalue_line("markers", "integration: mark test as integration test")


# ---------------------------------------------------------------------------
# Sample data
# ---------------------------------------------------------------------------

MEETING_ID = "m-1"
HOST_ID = "host-1"
ADMIN_ID = "admin-1"
REQUESTER_ID = "alice"
ACCEPTER_ID = "bob"
OUTSIDER_ID = "carol"
SCHEDULED_AT = datetime(2026, 3, 7, 18, 0, tzinfo=timezone.utc)
FEE_CENTS = 2500

ACCOUNTS = [
    UserAccount(user_id=REQUESTER_ID, email="alice@example.com", first_name="Alice", last_name="Smith"),
    UserAccount(user_id=ACCEPTER_ID, email="bob@example.com", first_name="Bob", last_name="Jones"),
    UserAccount(user_id=OUTSIDER_ID, email="carol@example.com", first_name="Carol"),
    UserAccount(user_id=HOST_ID, role=UserRole.HOST, first_name="Hana"),
    UserAccount(user_id=ADMIN_ID, role=UserRole.ADMIN, first_name="Ada"),
]


def make_meeting(**overrides) -> MeetingRecord:
    """Completed, unfinalized two-participant meeting; override any field."""
    fields = dict(
        meeting_id=MEETING_ID,
        scheduled_at=SCHEDULED_AT,
        host_id=HOST_ID,
        status=MeetingStatus.COMPLETED,
        fee_cents=FEE_CENTS,
        participants=[
            Participant(user_id=REQUESTER_ID, role=ParticipantRole.REQUESTER),
            Participant(user_id=ACCEPTER_ID, role=ParticipantRole.ACCEPTER),
        ],
    )
    fields.update(overrides)
    return MeetingRecord(**fields)


def notices_of(store: InMemoryNotificationStoreAdapter, kind: NotificationKind) -> List:
    """In-app notifications of one kind."""
    return [n for n in store.notifications if n.kind == kind]


# ---------------------------------------------------------------------------
# In-memory adapters
# ---------------------------------------------------------------------------

@pytest.fixture()
def meeting_store() -> InMemoryMeetingStoreAdapter:
    store = InMemoryMeetingStoreAdapter()
    store.put_meeting(make_meeting())
    return store


@pytest.fixture()
def credit_ledger() -> InMemoryCreditLedgerAdapter:
    ledger = InMemoryCreditLedgerAdapter()
    ledger.seed(REQUESTER_ID, used_credits=2, balance_cents=10_000)
    ledger.seed(ACCEPTER_ID, used_credits=1, balance_cents=5_000)
    return ledger


@pytest.fixture()
def user_directory() -> InMemoryUserDirectoryAdapter:
    directory = InMemoryUserDirectoryAdapter()
    for account in ACCOUNTS:
        directory.add_account(account)
    return directory


@pytest.fixture()
def identity() -> StaticTokenIdentityAdapter:
    return StaticTokenIdentityAdapter(
        {
            "tok-alice": REQUESTER_ID,
            "tok-bob": ACCEPTER_ID,
            "tok-carol": OUTSIDER_ID,
            "tok-host": HOST_ID,
            "tok-admin": ADMIN_ID,
        }
    )


@pytest.fixture()
def notification_store() -> InMemoryNotificationStoreAdapter:
    return InMemoryNotificationStoreAdapter()


@pytest.fixture()
def email_sender() -> RecordingEmailSenderAdapter:
    return RecordingEmailSenderAdapter()


@pytest.fixture()
def operations_channel() -> RecordingOperationsChannelAdapter:
    return RecordingOperationsChannelAdapter()


@pytest.fixture()
def audit_log() -> InMemoryAuditLogAdapter:
    return InMemoryAuditLogAdapter()


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------

@pytest.fixture()
def emitter(notification_store, email_sender, operations_channel, user_directory) -> NotificationEmitter:
    return NotificationEmitter(
        in_app=notification_store,
        email_sender=email_sender,
        operations=operations_channel,
        user_directory=user_directory,
        app_url="https://app.example.com",
    )


@pytest.fixture()
def match_service(meeting_store, emitter) -> MatchFormationService:
    return MatchFormationService(meeting_store=meeting_store, emitter=emitter)


@pytest.fixture()
def aggregator(meeting_store, user_directory, match_service, emitter) -> ResponseAggregator:
    return ResponseAggregator(
        meeting_store=meeting_store,
        user_directory=user_directory,
        match_service=match_service,
        emitter=emitter,
    )


@pytest.fixture()
def coordinator(meeting_store, credit_ledger, user_directory, emitter) -> MeetingResolutionCoordinator:
    return MeetingResolutionCoordinator(
        meeting_store=meeting_store,
        credit_ledger=credit_ledger,
        user_directory=user_directory,
        emitter=emitter,
    )


@pytest.fixture()
def review_service(meeting_store, credit_ledger, user_directory, audit_log, emitter) -> ReviewService:
    return ReviewService(
        meeting_store=meeting_store,
        credit_ledger=credit_ledger,
        user_directory=user_directory,
        audit_log=audit_log,
        emitter=emitter,
    )
