"""
Settlement policy: pure decision table for a meeting's financial outcome.

``charge_decision`` is authoritative. ``outcome`` and ``fault`` are accepted
for every value so callers can record them, but they never change the result.
Side effects of a refund (credit decrement) belong to the caller.
"""

from __future__ import annotations

from typing import Dict

from domain.models import (
    ChargeDecision,
    ChargeStatus,
    FaultDetermination,
    MeetingOutcome,
    Settlement,
)


_DECISION_TABLE: Dict[ChargeDecision, Settlement] = {
    ChargeDecision.CAPTURE: Settlement(
        charge_status=ChargeStatus.CAPTURED, refund_issued=False
    ),
    ChargeDecision.REFUND: Settlement(
        charge_status=ChargeStatus.REFUNDED, refund_issued=True
    ),
    ChargeDecision.PENDING_REVIEW: Settlement(
        charge_status=ChargeStatus.PENDING_REVIEW, refund_issued=False
    ),
}


def decide(
    outcome: MeetingOutcome,
    fault: FaultDetermination,
    charge_decision: ChargeDecision,
) -> Settlement:
    """Map (outcome, fault, charge_decision) to a Settlement.

    Raises:
        ValueError: If any argument is not a member of its enum. Callers
            validate input first, so this only fires on programming errors.
    """
    if not isinstance(outcome, MeetingOutcome):
        raise ValueError(f"outcome must be a MeetingOutcome, got {outcome!r}")
    if not isinstance(fault, FaultDetermination):
        raise ValueError(f"fault must be a FaultDetermination, got {fault!r}")
    try:
        return _DECISION_TABLE[ChargeDecision(charge_decision)]
    except ValueError:
        raise ValueError(
            f"charge_decision must be a ChargeDecision, got {charge_decision!r}"
        ) from None


def is_fault_override(fault: FaultDetermination, charge_decision: ChargeDecision) -> bool:
    """True when shared blame was recorded but the charge was captured anyway.

    Permitted as an administrative override; flagged in logs for audit.
    """
    return fault == FaultDetermination.BOTH_FAULT and charge_decision == ChargeDecision.CAPTURE
