"""
Refund request lifecycle.

    pending ──► approved ──► processing ──► completed
       │                          │
       └──► rejected              └──► failed

Every function returns a new RefundRequest; nothing is mutated in place.
Each successful transition appends exactly one RefundStatusChange.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from eventpass.errors import InvalidStateTransition
from eventpass.models.refund import RefundRequest, RefundStatus, RefundStatusChange, RefundReason
from eventpass.models.ticket import Ticket, Event

ALLOWED_TRANSITIONS: dict[RefundStatus, frozenset[RefundStatus]] = {
    RefundStatus.PENDING: frozenset({RefundStatus.APPROVED, RefundStatus.REJECTED}),
    RefundStatus.APPROVED: frozenset({RefundStatus.PROCESSING}),
    RefundStatus.PROCESSING: frozenset({RefundStatus.COMPLETED, RefundStatus.FAILED}),
    RefundStatus.REJECTED: frozenset(),
    RefundStatus.COMPLETED: frozenset(),
    RefundStatus.FAILED: frozenset(),
}


def can_transition(from_status: RefundStatus, to_status: RefundStatus) -> bool:
    return to_status in ALLOWED_TRANSITIONS[from_status]


def open_request(
    request_id: str,
    ticket: Ticket,
    event: Event,
    reason: RefundReason,
    requested_amount: Decimal,
    requested_at: datetime,
    currency: str,
    user_note: Optional[str] = None,
    idempotency_key: Optional[str] = None,
) -> RefundRequest:
    """Create a request in pending with its initial history entry."""
    return RefundRequest(
        id=request_id,
        ticket_id=ticket.id,
        ticket_number=ticket.ticket_number,
        event_id=event.id,
        event_title=event.title,
        user_id=ticket.user_id,
        user_name=ticket.user_name,
        user_email=ticket.user_email,
        user_phone=ticket.user_phone,
        reason=reason,
        user_note=user_note,
        requested_amount=requested_amount,
        currency=currency,
        status=RefundStatus.PENDING,
        original_purchase_date=ticket.purchase_date,
        requested_at=requested_at,
        idempotency_key=idempotency_key,
        status_history=(
            RefundStatusChange(
                from_status=None,
                to_status=RefundStatus.PENDING,
                changed_at=requested_at,
                changed_by=ticket.user_id,
                note="Request submitted",
            ),
        ),
    )


def transition(
    request: RefundRequest,
    to_status: RefundStatus,
    changed_at: datetime,
    note: Optional[str] = None,
    changed_by: Optional[str] = None,
    **updates: Any,
) -> RefundRequest:
    """
    Move a request to to_status, applying field updates in the same step.

    Args:
        request: The current request.
        to_status: Target status; must be allowed from request.status.
        changed_at: Timestamp recorded on the history entry.
        note: Optional note recorded on the history entry.
        changed_by: Optional actor id recorded on the history entry.
        **updates: Other RefundRequest fields to set (e.g. approved_amount).

    Returns:
        A new, fully validated RefundRequest.

    Raises:
        InvalidStateTransition: If the transition is not in ALLOWED_TRANSITIONS.
    """
    if not can_transition(request.status, to_status):
        raise InvalidStateTransition(
            f"Refund {request.id} cannot move from {request.status.value} to {to_status.value}",
            details={"refund_id": request.id, "status": request.status.value, "target": to_status.value},
        )

    change = RefundStatusChange(
        from_status=request.status,
        to_status=to_status,
        changed_at=changed_at,
        changed_by=changed_by,
        note=note,
    )
    fields = dict(request)
    fields.update(updates)
    fields["status"] = to_status
    fields["status_history"] = request.status_history + (change,)
    return RefundRequest(**fields)
