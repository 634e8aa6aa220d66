from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import AwareDatetime, BaseModel, Field, model_validator


class RefundPolicy(BaseModel):
    """Refund rules for one event, or the platform default when event_id is None.

    Windows are expressed in hours before the event starts and must nest:
    full_refund_deadline_hours >= partial_refund_deadline_hours >= refund_deadline_hours.
    """

    model_config = {"extra": "forbid", "frozen": True}

    event_id: Optional[str] = None
    is_refundable: bool = True
    refund_deadline_hours: int = Field(..., ge=0, le=24 * 365)
    # Absolute cutoff; when set, refunds close at this instant even if the hour window is looser.
    refund_deadline_at: Optional[AwareDatetime] = None
    full_refund_deadline_hours: Optional[int] = Field(None, ge=0, le=24 * 365)
    partial_refund_deadline_hours: Optional[int] = Field(None, ge=0, le=24 * 365)
    partial_refund_percentage: Optional[Decimal] = Field(None, ge=Decimal("0"), le=Decimal("1"))
    # Applied when the deadline check passes but no tier matches.
    refund_percentage: Optional[Decimal] = Field(None, ge=Decimal("0"), le=Decimal("1"))
    processing_fee_percentage: Decimal = Field(Decimal("0"), ge=Decimal("0"), lt=Decimal("1"))
    requires_approval: bool = True
    policy_text: str = Field("", max_length=2000)

    @model_validator(mode="after")
    def _check_windows(self) -> "RefundPolicy":
        if (self.partial_refund_deadline_hours is None) != (self.partial_refund_percentage is None):
            raise ValueError(
                "partial_refund_deadline_hours and partial_refund_percentage must be set together"
            )

        bounds = [
            ("full_refund_deadline_hours", self.full_refund_deadline_hours),
            ("partial_refund_deadline_hours", self.partial_refund_deadline_hours),
            ("refund_deadline_hours", self.refund_deadline_hours),
        ]
        present = [(name, hours) for name, hours in bounds if hours is not None]
        for (outer, outer_hours), (inner, inner_hours) in zip(present, present[1:]):
            if outer_hours < inner_hours:
                raise ValueError(f"{outer} ({outer_hours}) must be >= {inner} ({inner_hours})")
        return self

    @property
    def has_tiers(self) -> bool:
        return self.full_refund_deadline_hours is not None or self.partial_refund_deadline_hours is not None

    @classmethod
    def for_cancelled_event(cls, event_id: str) -> "RefundPolicy":
        return cls(
            event_id=event_id,
            is_refundable=True,
            refund_deadline_hours=0,
            refund_percentage=Decimal("1"),
            processing_fee_percentage=Decimal("0"),
            requires_approval=False,
            policy_text="The event was cancelled. All tickets are refunded in full with no processing fee.",
        )

    @classmethod
    def for_reschedule(cls, event_id: str, deadline_hours: int, deadline: datetime) -> "RefundPolicy":
        return cls(
            event_id=event_id,
            is_refundable=True,
            refund_deadline_hours=max(0, deadline_hours),
            refund_deadline_at=deadline,
            refund_percentage=Decimal("1"),
            processing_fee_percentage=Decimal("0"),
            policy_text=f"Full refunds available due to event reschedule. Deadline: {deadline.isoformat()}",
        )


PLATFORM_DEFAULT_POLICY = RefundPolicy(
    is_refundable=True,
    refund_deadline_hours=24,
    full_refund_deadline_hours=72,
    partial_refund_deadline_hours=24,
    partial_refund_percentage=Decimal("0.5"),
    processing_fee_percentage=Decimal("0.05"),
    requires_approval=False,
    policy_text=(
        "Full refunds available up to 72 hours before the event. "
        "50% refund available 24-72 hours before. No refunds within 24 hours of the event."
    ),
)


class RefundEligibilityResult(BaseModel):
    is_eligible: bool
    reason: str
    refundable_amount: Decimal = Decimal("0")
    refund_percentage: Decimal = Decimal("0")
    processing_fee: Decimal = Decimal("0")
    net_refund: Decimal = Decimal("0")
    deadline: Optional[datetime] = None
    policy: Optional[RefundPolicy] = None

    @classmethod
    def not_eligible(cls, reason: str) -> "RefundEligibilityResult":
        return cls(is_eligible=False, reason=reason)
