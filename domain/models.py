"""
Pure domain models for the Meeting Resolution Engine.

These models contain NO AWS dependencies. They represent the meeting
aggregate (Meeting → Participants, Responses, Match) and the values that
flow through ports and services.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    """Timezone-aware current time; all engine timestamps are UTC."""
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Enumerations (fixed value sets)
# ---------------------------------------------------------------------------


class MeetingStatus(str, Enum):
    """Meeting lifecycle status."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ChargeStatus(str, Enum):
    """Financial state of a meeting's charge."""

    PENDING = "pending"
    CAPTURED = "captured"
    REFUNDED = "refunded"
    PENDING_REVIEW = "pending_review"


class MeetingOutcome(str, Enum):
    """How the meeting ended, as reported by the host."""

    COMPLETED = "completed"
    NO_SHOW = "no_show"
    EARLY_LEAVE = "early_leave"
    NETWORK_DISCONNECT = "network_disconnect"


class FaultDetermination(str, Enum):
    """Which party (if any) is responsible for an unsuccessful meeting."""

    NO_FAULT = "no_fault"
    REQUESTER_FAULT = "requester_fault"
    ACCEPTER_FAULT = "accepter_fault"
    BOTH_FAULT = "both_fault"


class ChargeDecision(str, Enum):
    """Financial instruction chosen by the finalizing actor."""

    CAPTURE = "capture"
    REFUND = "refund"
    PENDING_REVIEW = "pending_review"


class ParticipantRole(str, Enum):
    """Side of the meeting a participant is on."""

    REQUESTER = "requester"
    ACCEPTER = "accepter"


class ResponseDecision(str, Enum):
    """A participant's post-meeting answer."""

    YES = "yes"
    NO = "no"


class UserRole(str, Enum):
    """Account role resolved from the user directory."""

    USER = "user"
    HOST = "host"
    MODERATOR = "moderator"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"


PRIVILEGED_ROLES: FrozenSet[UserRole] = frozenset(
    {UserRole.MODERATOR, UserRole.ADMIN, UserRole.SUPERADMIN}
)

FINALIZABLE_STATUSES: FrozenSet[MeetingStatus] = frozenset(
    {MeetingStatus.CONFIRMED, MeetingStatus.COMPLETED}
)


class ReviewResolution(str, Enum):
    """Administrator outcome for a meeting under investigation."""

    CHARGE_REQUESTER = "charge_requester"
    REFUND_REQUESTER = "refund_requester"
    CHARGE_ACCEPTER = "charge_accepter"
    NO_CHARGE = "no_charge"
    SPLIT = "split"


class NotificationKind(str, Enum):
    """Notification types emitted by the engine."""

    MEETING_FINALIZED = "meeting_finalized"
    MEETING_PENDING_REVIEW = "meeting_pending_review"
    MEETING_INVESTIGATION = "meeting_investigation"
    MEETING_RESPONSE_SUBMITTED = "meeting_response_submitted"
    MEETING_RESPONSES_COMPLETE = "meeting_responses_complete"
    MATCH_CREATED = "match_created"
    INVESTIGATION_RESOLVED = "investigation_resolved"


class NotificationCategory(str, Enum):
    """Preference bucket a notification kind belongs to."""

    MATCHES = "matches"
    MEETINGS = "meetings"
    SYSTEM = "system"


class NotificationChannel(str, Enum):
    """Delivery channel."""

    INAPP = "inapp"
    EMAIL = "email"


# ---------------------------------------------------------------------------
# Meeting aggregate
# ---------------------------------------------------------------------------


class Participant(BaseModel):
    """One user's role in a meeting."""

    user_id: str
    role: ParticipantRole


class MeetingRecord(BaseModel):
    """Meeting aggregate root (maps to one DynamoDB item).

    ``outcome``, ``fault_determination``, ``finalized_*`` and the
    ``admin_resolution*`` fields are write-once.
    """

    meeting_id: str
    scheduled_at: datetime
    host_id: Optional[str] = None
    status: MeetingStatus = MeetingStatus.PENDING
    charge_status: ChargeStatus = ChargeStatus.PENDING
    fee_cents: int = 0
    participants: List[Participant] = []
    # Finalize (write-once)
    outcome: Optional[MeetingOutcome] = None
    fault_determination: Optional[FaultDetermination] = None
    finalized_by: Optional[str] = None
    finalized_at: Optional[datetime] = None
    host_notes: Optional[str] = None
    # Finalize refund: owed until claimed by the single caller that applies it
    refund_pending: bool = False
    refund_applied_at: Optional[datetime] = None
    # Match formation
    matched: bool = False
    matched_at: Optional[datetime] = None
    responses_complete_notified_at: Optional[datetime] = None
    # Admin investigation (write-once)
    admin_resolution: Optional[ReviewResolution] = None
    admin_resolution_notes: Optional[str] = None
    admin_resolved_at: Optional[datetime] = None
    admin_resolved_by: Optional[str] = None

    @property
    def is_finalized(self) -> bool:
        return self.finalized_at is not None

    def participant_for(self, user_id: str) -> Optional[Participant]:
        return next((p for p in self.participants if p.user_id == user_id), None)

    def participant_with_role(self, role: ParticipantRole) -> Optional[Participant]:
        return next((p for p in self.participants if p.role == role), None)

    def partner_of(self, user_id: str) -> Optional[Participant]:
        """The other participant, if known."""
        return next((p for p in self.participants if p.user_id != user_id), None)


class MeetingFinalization(BaseModel):
    """Write-once field set persisted by a successful finalize."""

    status: MeetingStatus = MeetingStatus.COMPLETED
    charge_status: ChargeStatus
    outcome: MeetingOutcome
    fault_determination: FaultDetermination
    finalized_by: str
    finalized_at: datetime
    host_notes: Optional[str] = None
    refund_pending: bool = False


class ReviewResolutionUpdate(BaseModel):
    """Write-once field set persisted when an investigation is resolved."""

    charge_status: ChargeStatus
    admin_resolution: ReviewResolution
    admin_resolution_notes: Optional[str] = None
    admin_resolved_at: datetime
    admin_resolved_by: str


class MeetingResponse(BaseModel):
    """One participant's post-meeting decision. Unique per (meeting, user)."""

    meeting_id: str
    user_id: str
    decision: ResponseDecision
    agreement_text: str
    signed_at: datetime


class MatchRecord(BaseModel):
    """Durable match, at most one per meeting."""

    meeting_id: str
    user1_id: str
    user2_id: str
    matched_at: datetime
    messaging_enabled: bool = True


# ---------------------------------------------------------------------------
# Settlement & operation results
# ---------------------------------------------------------------------------


class Settlement(BaseModel):
    """Derived (charge_status, refund_issued) pair. Never stored on its own."""

    model_config = ConfigDict(frozen=True)

    charge_status: ChargeStatus
    refund_issued: bool


class FinalizeResult(BaseModel):
    """What finalize returns to its caller."""

    meeting_id: str
    charge_status: ChargeStatus
    refund_issued: bool
    outcome: MeetingOutcome
    fault: FaultDetermination


class ResponseSubmissionResult(BaseModel):
    """Combined state after one response submission.

    ``matched`` is None while incomplete, and also when match formation
    failed so the outcome is unknown.
    """

    meeting_id: str
    complete: bool
    matched: Optional[bool] = None
    match: Optional[MatchRecord] = None


class ReviewOutcome(BaseModel):
    """Result of resolving an investigation."""

    meeting_id: str
    resolution: ReviewResolution
    charge_status: ChargeStatus
    refund_user_id: Optional[str] = None
    charge_user_id: Optional[str] = None

    @property
    def refund_issued(self) -> bool:
        return self.refund_user_id is not None


class ReviewParticipant(BaseModel):
    """Participant enriched with directory data for the review queue."""

    user_id: str
    role: ParticipantRole
    name: str
    email: str = ""


class ReviewCase(BaseModel):
    """One meeting in the admin review queue."""

    meeting: MeetingRecord
    participants: List[ReviewParticipant] = []
    responses: List[MeetingResponse] = []


# ---------------------------------------------------------------------------
# Users & notifications
# ---------------------------------------------------------------------------


class UserAccount(BaseModel):
    """Directory view of a user."""

    user_id: str
    role: UserRole = UserRole.USER
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    @property
    def is_privileged(self) -> bool:
        return self.role in PRIVILEGED_ROLES

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()


class NotificationPreferences(BaseModel):
    """Per-user channel opt-ins. Defaults apply when nothing is stored."""

    matches_inapp: bool = True
    matches_email: bool = True
    meetings_inapp: bool = True
    meetings_email: bool = True
    system_inapp: bool = True
    system_email: bool = True

    def allows(self, category: NotificationCategory, channel: NotificationChannel) -> bool:
        # System notices are always delivered in-app.
        if category == NotificationCategory.SYSTEM and channel == NotificationChannel.INAPP:
            return True
        return bool(getattr(self, f"{category.value}_{channel.value}", False))


class Notification(BaseModel):
    """In-app notification row."""

    notification_id: str
    user_id: str
    kind: NotificationKind
    title: str
    message: str
    data: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)
    read_at: Optional[datetime] = None


class AdminAuditEntry(BaseModel):
    """Audit log row for privileged actions."""

    log_id: str
    admin_id: str
    action: str
    meta: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)
