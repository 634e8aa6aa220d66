from .eligibility import evaluate, select_refund_percentage, hours_until
from .lifecycle import open_request, transition, can_transition, ALLOWED_TRANSITIONS
from .summary import summarize

__all__ = [
    "evaluate",
    "select_refund_percentage",
    "hours_until",
    "open_request",
    "transition",
    "can_transition",
    "ALLOWED_TRANSITIONS",
    "summarize",
]
