"""
Refund eligibility evaluation.

Pure functions with no side effects or I/O. The evaluation instant is always
passed in. All monetary math uses Decimal; rounding uses ROUND_HALF_UP to
2 decimal places, applied at final output only.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from eventpass.models.policy import RefundPolicy, RefundEligibilityResult
from eventpass.models.refund import RefundRequest, RefundStatus
from eventpass.models.ticket import Ticket, Event, EventStatus, ScanStatus

CENTS = Decimal("0.01")
FULL = Decimal("1")
SECONDS_PER_HOUR = Decimal("3600")


def _quantize(value: Decimal) -> Decimal:
    """Round to 2 decimal places using ROUND_HALF_UP."""
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def hours_until(start: datetime, now: datetime) -> Decimal:
    """Hours from now until start, negative once start has passed."""
    return Decimal(str((start - now).total_seconds())) / SECONDS_PER_HOUR


def evaluate(
    ticket: Ticket,
    event: Event,
    policy: RefundPolicy,
    now: datetime,
    existing_requests: Iterable[RefundRequest] = (),
) -> RefundEligibilityResult:
    """
    Decide whether a refund may be requested for a ticket at a given instant.

    Checks run in order and the first refusal wins: ticket usage, other
    requests on the ticket, the policy's refundable flag, event status, the
    refund deadline. An eligible result carries the amounts owed.

    Args:
        ticket: The ticket to refund; its ticket_type.price is the refundable amount.
        event: The event the ticket admits to.
        policy: The refund policy in force for the event.
        now: The evaluation instant.
        existing_requests: Refund requests already filed against this ticket.

    Returns:
        RefundEligibilityResult; reason explains the outcome.

    Example:
        policy(deadline=48h, full=72h, fee=0.05), price=100000, event in 100h
        → refund_percentage=1, processing_fee=5000.00, net_refund=95000.00
    """
    if ticket.scan_status == ScanStatus.SCANNED:
        return RefundEligibilityResult.not_eligible("This ticket has already been used")
    if ticket.scan_status == ScanStatus.EXPIRED:
        return RefundEligibilityResult.not_eligible("This ticket has expired")

    own_requests = [r for r in existing_requests if r.ticket_id == ticket.id]
    if any(not r.status.is_final for r in own_requests):
        return RefundEligibilityResult.not_eligible("A refund request is already pending for this ticket")
    if any(r.status == RefundStatus.COMPLETED for r in own_requests):
        return RefundEligibilityResult.not_eligible("This ticket has already been refunded")

    if not policy.is_refundable:
        return RefundEligibilityResult.not_eligible("This event is non-refundable.")

    if event.status == EventStatus.COMPLETED:
        return RefundEligibilityResult.not_eligible("The event has already ended")

    if event.status == EventStatus.CANCELLED:
        # Cancelled events refund in full with no fee and no deadline.
        return _eligible(ticket.ticket_type.price, FULL, Decimal("0"), None, policy)

    if policy.refund_deadline_at is not None and now > policy.refund_deadline_at:
        return RefundEligibilityResult.not_eligible(
            f"Refund deadline has passed (refunds closed at {policy.refund_deadline_at.isoformat()})"
        )

    hours_left = hours_until(event.start_date, now)
    if hours_left < policy.refund_deadline_hours:
        return RefundEligibilityResult.not_eligible(
            f"Refund deadline has passed (must be {policy.refund_deadline_hours}+ hours before event)"
        )

    percentage = select_refund_percentage(policy, hours_left)
    if percentage is None:
        return RefundEligibilityResult.not_eligible(
            "No refund window applies this close to the event and the policy defines no fallback percentage"
        )

    deadline = policy.refund_deadline_at or event.start_date - timedelta(hours=policy.refund_deadline_hours)
    return _eligible(ticket.ticket_type.price, percentage, policy.processing_fee_percentage, deadline, policy)


def select_refund_percentage(policy: RefundPolicy, hours_left: Decimal) -> Optional[Decimal]:
    """
    Pick the refund fraction for the window the moment falls into.

    Returns None when tiers are configured, none matches and the policy sets
    no explicit refund_percentage fallback.
    """
    if policy.full_refund_deadline_hours is not None and hours_left >= policy.full_refund_deadline_hours:
        return FULL
    if (
        policy.partial_refund_deadline_hours is not None
        and policy.partial_refund_percentage is not None
        and hours_left >= policy.partial_refund_deadline_hours
    ):
        return policy.partial_refund_percentage
    if policy.refund_percentage is not None:
        return policy.refund_percentage
    if not policy.has_tiers:
        return FULL
    return None


def _eligible(
    price: Decimal,
    percentage: Decimal,
    fee_percentage: Decimal,
    deadline: Optional[datetime],
    policy: RefundPolicy,
) -> RefundEligibilityResult:
    gross = price * percentage
    fee = gross * fee_percentage
    net = max(gross - fee, Decimal("0"))
    return RefundEligibilityResult(
        is_eligible=True,
        reason="Eligible for refund",
        refundable_amount=_quantize(price),
        refund_percentage=percentage,
        processing_fee=_quantize(fee),
        net_refund=_quantize(net),
        deadline=deadline,
        policy=policy,
    )
