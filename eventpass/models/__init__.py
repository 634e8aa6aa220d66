from .ticket import Ticket, TicketType, Event, EventStatus, ScanStatus
from .policy import RefundPolicy, RefundEligibilityResult
from .refund import (
    RefundRequest,
    RefundStatus,
    RefundStatusChange,
    RefundReason,
    RefundSummary,
    USER_SELECTABLE_REASONS,
)
from .outbox import OutboxMessage

__all__ = [
    "Ticket", "TicketType", "Event", "EventStatus", "ScanStatus",
    "RefundPolicy", "RefundEligibilityResult",
    "RefundRequest", "RefundStatus", "RefundStatusChange", "RefundReason", "RefundSummary",
    "USER_SELECTABLE_REASONS",
    "OutboxMessage",
]
