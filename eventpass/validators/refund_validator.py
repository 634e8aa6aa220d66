from __future__ import annotations

"""
Business rule validation for refund submissions and organizer decisions.

Validators never write to the store — no side effects. Each raises the
matching RefundError on the first failing rule.
"""
from decimal import Decimal
from typing import Optional

from eventpass.errors import InvalidAmount, InvalidDecision, InvalidStateTransition, NotEligible
from eventpass.models.policy import RefundEligibilityResult
from eventpass.models.refund import RefundRequest, RefundStatus
from eventpass.models.ticket import Ticket


def validate_eligible(result: RefundEligibilityResult, ticket: Ticket) -> None:
    """Rule 1: A request may only be filed against an eligible ticket."""
    if not result.is_eligible:
        raise NotEligible(
            result.reason,
            details={"ticket_id": ticket.id, "ticket_number": ticket.ticket_number},
        )


def validate_pending(request: RefundRequest, action: str) -> None:
    """Rule 2: Decisions and cancellations apply to pending requests only."""
    if request.status != RefundStatus.PENDING:
        raise InvalidStateTransition(
            f"Cannot {action} refund {request.id}: status is {request.status.value}, expected pending",
            details={"refund_id": request.id, "status": request.status.value},
        )


def validate_approved_amount(request: RefundRequest, approved_amount: Optional[Decimal]) -> Decimal:
    """Rule 3: An approved amount must lie in [0, requested_amount]. Defaults to the full request."""
    if approved_amount is None:
        return request.requested_amount

    if approved_amount < Decimal("0") or approved_amount > request.requested_amount:
        raise InvalidAmount(
            (
                f"Approved amount {approved_amount} {request.currency} must be between 0 "
                f"and the requested {request.requested_amount} {request.currency}"
            ),
            details={
                "approved_amount": str(approved_amount),
                "requested_amount": str(request.requested_amount),
            },
        )
    return approved_amount


def validate_reviewer_note(note: Optional[str]) -> str:
    """Rule 4: Rejections must tell the requester why."""
    if note is None or not note.strip():
        raise InvalidDecision("A rejection note is required so the requester knows why")
    return note.strip()


def validate_manual_amount(ticket: Ticket, amount: Decimal) -> None:
    """Rule 5: Organizer-issued refunds must be positive and at most the ticket price."""
    price = ticket.ticket_type.price
    if amount <= Decimal("0") or amount > price:
        raise InvalidAmount(
            f"Manual refund amount {amount} must be greater than 0 and at most the ticket price {price}",
            details={"amount": str(amount), "ticket_price": str(price)},
        )
