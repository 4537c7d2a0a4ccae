"""
Fixed texts used by the engine: agreement statements, in-app notification
copy and email templates.

All builders are pure; lookups of names and addresses happen in the caller.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Tuple

from domain.models import (
    ChargeDecision,
    MeetingOutcome,
    NotificationCategory,
    NotificationKind,
    ResponseDecision,
    ReviewResolution,
)
from shared_utils.constants import Defaults


# ---------------------------------------------------------------------------
# Agreement statements
# ---------------------------------------------------------------------------

AGREEMENT_TEMPLATES: Dict[ResponseDecision, str] = {
    ResponseDecision.YES: (
        "I, {name}, solemnly agree to {partner} in their request for a "
        "relationship after our video dating meeting. Yes, I accept."
    ),
    ResponseDecision.NO: (
        "I, {name}, solemnly agree to {partner} in their request for a "
        "relationship after our video dating meeting. NO, I do not accept."
    ),
}


def build_agreement_text(decision: ResponseDecision, submitter_name: str, partner_name: str) -> str:
    """Deterministic agreement statement for a response."""
    return AGREEMENT_TEMPLATES[decision].format(name=submitter_name, partner=partner_name)


# ---------------------------------------------------------------------------
# Finalize notices
# ---------------------------------------------------------------------------

OUTCOME_SENTENCES: Dict[MeetingOutcome, str] = {
    MeetingOutcome.COMPLETED: "Your video dating meeting has been concluded. ",
    MeetingOutcome.NO_SHOW: "The video dating meeting has been concluded due to a no-show. ",
    MeetingOutcome.EARLY_LEAVE: (
        "The video dating meeting has been concluded due to an early departure. "
    ),
    MeetingOutcome.NETWORK_DISCONNECT: (
        "The video dating meeting has been concluded due to a network disconnection. "
    ),
}

CHARGE_SENTENCES: Dict[ChargeDecision, str] = {
    ChargeDecision.CAPTURE: "The meeting charges have been finalized.",
    ChargeDecision.REFUND: "Your credits have been refunded to your account.",
    ChargeDecision.PENDING_REVIEW: (
        "The charges are under review. This may take "
        f"{Defaults.REVIEW_WINDOW}. You will be notified of the outcome."
    ),
}

FINALIZED_TITLE = "Meeting Review Complete"
PENDING_REVIEW_TITLE = "Meeting Pending Admin Review"
INVESTIGATION_TITLE = "Meeting Under Review"

INVESTIGATION_NOTICE = (
    "In your previous video dating meeting held on {meeting_date}, the meeting "
    "will be reviewed to determine if there is irregularity and inconsistency "
    "which determines the charges. This review may take "
    f"{Defaults.REVIEW_WINDOW}."
)


def build_finalize_message(outcome: MeetingOutcome, charge_decision: ChargeDecision) -> str:
    """Requester notice body keyed by (outcome, charge_decision)."""
    return OUTCOME_SENTENCES[outcome] + CHARGE_SENTENCES[charge_decision]


def build_pending_review_message(meeting_id: str, fault: str) -> str:
    return (
        f"Meeting {meeting_id} has been flagged for admin review. Fault: {fault}. "
        f"Please review within {Defaults.REVIEW_WINDOW}."
    )


def format_meeting_date(value: datetime) -> str:
    """Human date used in notices, e.g. 'March 07, 2026'."""
    return value.strftime("%B %d, %Y")


# ---------------------------------------------------------------------------
# Response / match notices
# ---------------------------------------------------------------------------

RESPONSE_RECEIVED_TITLE = "Meeting Response Received"
RESPONSE_RECEIVED_MESSAGE = (
    "{partner_name} has submitted their response for your video dating meeting."
)

RESPONSES_COMPLETE_TITLE = "Meeting Responses Complete"
RESPONSES_COMPLETE_MESSAGE = (
    "Dear {name}, both responses for your video dating meeting have been "
    "submitted. Your profile remains active and visible."
)

MATCH_TITLE = "It's a Match!"
MATCH_MESSAGE = (
    "Congratulations {name}! Both you and {partner_name} accepted. "
    "Messaging is now enabled between you."
)


# ---------------------------------------------------------------------------
# Investigation resolution notices
# ---------------------------------------------------------------------------

RESOLVED_TITLE = "Investigation Complete"

RESOLVED_REFUND = (
    "Dear {name}, after reviewing your video dating meeting held on {meeting_date}, "
    "we have determined that a refund is warranted. Your credits have been "
    "returned to your account."
)
RESOLVED_CHARGED = (
    "Dear {name}, after reviewing your video dating meeting held on {meeting_date}, "
    "charges have been applied to your account based on our investigation findings."
)
RESOLVED_NO_CHARGE = (
    "Dear {name}, after reviewing your video dating meeting held on {meeting_date}, "
    "no charges have been applied. Credits have been refunded."
)
RESOLVED_SPLIT = (
    "Dear {name}, after reviewing your video dating meeting held on {meeting_date}, "
    "both parties share responsibility. Charges remain as finalized."
)
RESOLVED_GENERIC = (
    "Dear {name}, the investigation for your video dating meeting held on "
    "{meeting_date} has been concluded. Please check your account for details."
)


def build_resolution_message(
    *,
    name: str,
    meeting_date: str,
    resolution: ReviewResolution,
    refunded: bool,
    charged: bool,
) -> str:
    """Per-participant wording of an investigation outcome."""
    if refunded:
        template = RESOLVED_REFUND
    elif charged:
        template = RESOLVED_CHARGED
    elif resolution == ReviewResolution.NO_CHARGE:
        template = RESOLVED_NO_CHARGE
    elif resolution == ReviewResolution.SPLIT:
        template = RESOLVED_SPLIT
    else:
        template = RESOLVED_GENERIC
    return template.format(name=name, meeting_date=meeting_date)


# ---------------------------------------------------------------------------
# Kind → preference category
# ---------------------------------------------------------------------------

KIND_CATEGORIES: Dict[NotificationKind, NotificationCategory] = {
    NotificationKind.MATCH_CREATED: NotificationCategory.MATCHES,
    NotificationKind.MEETING_FINALIZED: NotificationCategory.MEETINGS,
    NotificationKind.MEETING_PENDING_REVIEW: NotificationCategory.MEETINGS,
    NotificationKind.MEETING_INVESTIGATION: NotificationCategory.MEETINGS,
    NotificationKind.MEETING_RESPONSE_SUBMITTED: NotificationCategory.MEETINGS,
    NotificationKind.MEETING_RESPONSES_COMPLETE: NotificationCategory.MEETINGS,
    NotificationKind.INVESTIGATION_RESOLVED: NotificationCategory.SYSTEM,
}


def category_for(kind: NotificationKind) -> NotificationCategory:
    return KIND_CATEGORIES.get(kind, NotificationCategory.SYSTEM)


# ---------------------------------------------------------------------------
# Email templates
# ---------------------------------------------------------------------------


class EmailTemplate:
    """Names of the supported email templates."""
    INVESTIGATION_NOTICE = "investigation_notice"
    INVESTIGATION_RESOLVED = "investigation_resolved"
    MATCH_FOUND = "match_found"
    RESPONSE_SUBMITTED = "response_submitted"


_EMAIL_TEMPLATES: Dict[str, Tuple[str, str]] = {
    EmailTemplate.INVESTIGATION_NOTICE: (
        "Your video dating meeting is under review",
        "Hi {recipientName},\n\n"
        "In your previous video dating meeting held on {meetingDate}, the meeting "
        "will be reviewed to determine if there is irregularity and inconsistency "
        "which determines the charges. This review may take 1-2 business days.\n\n"
        "You can follow the review from your dashboard: {dashboardUrl}\n",
    ),
    EmailTemplate.INVESTIGATION_RESOLVED: (
        "Investigation complete for meeting {meetingRef}",
        "Hi {recipientName},\n\n"
        "The review of your video dating meeting held on {meetingDate} is complete.\n"
        "{outcomeLine}\n\n"
        "Details are available in your wallet: {dashboardUrl}\n",
    ),
    EmailTemplate.MATCH_FOUND: (
        "It's a Match! You and {partnerName} both said yes",
        "Hi {recipientName},\n\n"
        "Great news: you and {partnerName} both accepted after your video dating "
        "meeting. Messaging is now enabled between you.\n\n"
        "Say hello: {dashboardUrl}\n",
    ),
    EmailTemplate.RESPONSE_SUBMITTED: (
        "{partnerName} responded to your video dating meeting",
        "Hi {recipientName},\n\n"
        "{partnerName} has submitted their response for your video dating meeting "
        "held on {meetingDate}.\n"
        "{pendingLine}\n\n"
        "{actionUrl}\n",
    ),
}


def render_email(template: str, data: Dict[str, Any], app_url: str) -> Tuple[str, str]:
    """Render a named email template to (subject, body).

    Raises:
        KeyError: If the template name or a required placeholder is unknown.
    """
    subject_tpl, body_tpl = _EMAIL_TEMPLATES[template]
    values = dict(data)
    base = app_url.rstrip("/")

    if template == EmailTemplate.MATCH_FOUND:
        values.setdefault("dashboardUrl", f"{base}/dashboard/matches")
    elif template == EmailTemplate.INVESTIGATION_NOTICE:
        values.setdefault("dashboardUrl", f"{base}/dashboard/meetings")
    elif template == EmailTemplate.INVESTIGATION_RESOLVED:
        values.setdefault("dashboardUrl", f"{base}/dashboard/profile/wallet")
        if values.get("refundIssued"):
            outcome_line = "A refund has been issued to your account."
        elif values.get("chargeApplied"):
            outcome_line = "Charges have been applied to your account."
        else:
            outcome_line = "No further changes were made to your account."
        if values.get("adminNotes"):
            outcome_line += f"\nReviewer notes: {values['adminNotes']}"
        values["outcomeLine"] = outcome_line
    elif template == EmailTemplate.RESPONSE_SUBMITTED:
        if values.get("yourResponsePending"):
            values["pendingLine"] = "We are still waiting for your response."
            values["actionUrl"] = f"Respond here: {base}/dashboard/meetings/{values['meetingId']}/response"
        else:
            values["pendingLine"] = "Both responses are now in."
            values["actionUrl"] = f"See your meetings: {base}/dashboard/meetings"

    return subject_tpl.format(**values), body_tpl.format(**values)
