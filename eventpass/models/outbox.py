from decimal import Decimal
from datetime import datetime
from typing import Optional, Literal
from pydantic import BaseModel

from eventpass.models.refund import RefundReason, RefundStatus

Topic = Literal[
    "refund_requested",
    "refund_approved",
    "refund_rejected",
    "refund_cancelled",
    "refund_status_changed",
]


class OutboxMessage(BaseModel):
    model_config = {"frozen": True}

    id: str
    topic: Topic
    occurred_at: datetime
    refund_id: str
    ticket_id: str
    event_id: str
    user_id: str
    from_status: Optional[RefundStatus] = None
    to_status: RefundStatus
    amount: Decimal
    currency: str
    reason: RefundReason
    note: Optional[str] = None
