"""Read-side aggregation of refund requests for the organizer dashboard."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Iterable

from eventpass.models.refund import RefundRequest, RefundStatus, RefundSummary

_APPROVED = (RefundStatus.APPROVED, RefundStatus.COMPLETED)


def summarize(requests: Iterable[RefundRequest], as_of: datetime) -> RefundSummary:
    """
    Count requests by outcome and total the refunds approved this month.

    The month is the calendar month of as_of; a request belongs to it when its
    requested_at falls in the same year and month.

    Example:
        approved 40000 of 50000 this month, completed 20000 last month,
        one pending, one rejected
        → pending=1, approved=2, rejected=1, monthly_refund_total=40000
    """
    pending = approved = rejected = 0
    monthly_total = Decimal("0")

    for request in requests:
        if request.status == RefundStatus.PENDING:
            pending += 1
        elif request.status == RefundStatus.REJECTED:
            rejected += 1
        elif request.status in _APPROVED:
            approved += 1
            if _same_month(request.requested_at, as_of):
                amount = request.approved_amount if request.approved_amount is not None else request.requested_amount
                monthly_total += amount

    return RefundSummary(
        pending_count=pending,
        approved_count=approved,
        rejected_count=rejected,
        monthly_refund_total=monthly_total,
        month=f"{as_of.year:04d}-{as_of.month:02d}",
    )


def _same_month(moment: datetime, as_of: datetime) -> bool:
    return moment.year == as_of.year and moment.month == as_of.month
