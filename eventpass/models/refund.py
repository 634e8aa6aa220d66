from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from pydantic import AwareDatetime, BaseModel, Field, model_validator


class RefundStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_final(self) -> bool:
        return self in _FINAL_STATUSES


_FINAL_STATUSES = frozenset({RefundStatus.REJECTED, RefundStatus.COMPLETED, RefundStatus.FAILED})


class RefundReason(str, Enum):
    EVENT_CANCELLED = "event_cancelled"
    EVENT_RESCHEDULED = "event_rescheduled"
    CANNOT_ATTEND = "cannot_attend"
    DUPLICATE_PURCHASE = "duplicate_purchase"
    ORGANIZER_DECISION = "organizer_decision"
    FRAUDULENT = "fraudulent"
    TICKET_DOWNGRADE = "ticket_downgrade"
    OTHER = "other"

    @property
    def is_auto_approved(self) -> bool:
        return self in (RefundReason.EVENT_CANCELLED, RefundReason.DUPLICATE_PURCHASE, RefundReason.FRAUDULENT)

    @property
    def is_user_selectable(self) -> bool:
        return self in USER_SELECTABLE_REASONS


USER_SELECTABLE_REASONS = (
    RefundReason.CANNOT_ATTEND,
    RefundReason.DUPLICATE_PURCHASE,
    RefundReason.EVENT_RESCHEDULED,
    RefundReason.OTHER,
)


class RefundStatusChange(BaseModel):
    model_config = {"extra": "forbid", "frozen": True}

    from_status: Optional[RefundStatus] = None
    to_status: RefundStatus
    changed_at: datetime
    changed_by: Optional[str] = None
    note: Optional[str] = None


class RefundRequest(BaseModel):
    """A ticket holder's request for money back, with its full status history.

    Instances are immutable; lifecycle changes build a new validated copy
    (see eventpass.engine.lifecycle).
    """

    model_config = {"extra": "forbid", "frozen": True}

    id: str
    ticket_id: str
    ticket_number: str
    event_id: str
    event_title: str
    user_id: str
    user_name: str
    user_email: Optional[str] = None
    user_phone: Optional[str] = None
    reason: RefundReason
    user_note: Optional[str] = None
    requested_amount: Decimal = Field(..., ge=Decimal("0"))
    approved_amount: Optional[Decimal] = Field(None, ge=Decimal("0"))
    currency: str = Field("UGX", min_length=3, max_length=3)
    status: RefundStatus
    reviewer_note: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    payout_reference: Optional[str] = None
    failure_reason: Optional[str] = None
    original_purchase_date: datetime
    requested_at: datetime
    idempotency_key: Optional[str] = None
    status_history: tuple[RefundStatusChange, ...]

    @model_validator(mode="after")
    def _check_invariants(self) -> "RefundRequest":
        if self.approved_amount is not None and self.approved_amount > self.requested_amount:
            raise ValueError(
                f"approved_amount {self.approved_amount} exceeds requested_amount {self.requested_amount}"
            )
        if not self.status_history:
            raise ValueError("status_history must not be empty")
        first = self.status_history[0]
        if first.from_status is not None or first.to_status != RefundStatus.PENDING:
            raise ValueError("status_history must begin with the transition into pending")
        if self.status_history[-1].to_status != self.status:
            raise ValueError("last status_history entry must match the current status")
        return self


class RefundSummary(BaseModel):
    pending_count: int
    approved_count: int
    rejected_count: int
    monthly_refund_total: Decimal
    month: str


# ── API bodies ───────────────────────────────────────────────────────────────

class SubmitRefundBody(BaseModel):
    model_config = {"extra": "forbid"}

    ticket_id: str = Field(..., min_length=1, max_length=50, pattern=r'^[A-Za-z0-9_-]+$')
    reason: RefundReason
    user_note: Optional[str] = Field(None, max_length=500)


class ApproveBody(BaseModel):
    model_config = {"extra": "forbid"}

    approved_amount: Optional[Decimal] = None
    note: Optional[str] = Field(None, max_length=500)
    reviewer_id: Optional[str] = Field(None, max_length=50, pattern=r'^[a-zA-Z0-9_-]+$')


class RejectBody(BaseModel):
    model_config = {"extra": "forbid"}

    note: str = Field(..., max_length=500)
    reviewer_id: Optional[str] = Field(None, max_length=50, pattern=r'^[a-zA-Z0-9_-]+$')


class ManualRefundBody(BaseModel):
    model_config = {"extra": "forbid"}

    amount: Decimal
    reason: RefundReason = RefundReason.ORGANIZER_DECISION
    note: Optional[str] = Field(None, max_length=500)
    reviewer_id: Optional[str] = Field(None, max_length=50, pattern=r'^[a-zA-Z0-9_-]+$')


class PayoutConfirmBody(BaseModel):
    model_config = {"extra": "forbid"}

    reference: str = Field(..., min_length=1, max_length=100)


class PayoutFailBody(BaseModel):
    model_config = {"extra": "forbid"}

    reason: str = Field(..., min_length=1, max_length=500)


class RescheduleBody(BaseModel):
    model_config = {"extra": "forbid"}

    deadline: AwareDatetime
