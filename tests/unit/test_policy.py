"""Unit tests for eventpass/models/policy.py."""
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError

from eventpass.models.policy import RefundPolicy, PLATFORM_DEFAULT_POLICY


def test_platform_default_windows_nest():
    p = PLATFORM_DEFAULT_POLICY
    assert p.full_refund_deadline_hours >= p.partial_refund_deadline_hours >= p.refund_deadline_hours
    assert p.has_tiers


def test_partial_window_wider_than_full_window_is_rejected():
    with pytest.raises(ValidationError) as exc_info:
        RefundPolicy(
            refund_deadline_hours=24,
            full_refund_deadline_hours=48,
            partial_refund_deadline_hours=72,
            partial_refund_percentage=Decimal("0.5"),
        )
    assert "full_refund_deadline_hours" in str(exc_info.value)


def test_deadline_wider_than_partial_window_is_rejected():
    with pytest.raises(ValidationError):
        RefundPolicy(
            refund_deadline_hours=48,
            partial_refund_deadline_hours=24,
            partial_refund_percentage=Decimal("0.5"),
        )


def test_partial_hours_without_percentage_is_rejected():
    with pytest.raises(ValidationError) as exc_info:
        RefundPolicy(refund_deadline_hours=24, partial_refund_deadline_hours=48)
    assert "set together" in str(exc_info.value)


@pytest.mark.parametrize("field,value", [
    ("processing_fee_percentage", Decimal("1")),
    ("processing_fee_percentage", Decimal("-0.01")),
    ("refund_percentage", Decimal("1.5")),
    ("refund_deadline_hours", -1),
])
def test_out_of_range_values_are_rejected(field, value):
    with pytest.raises(ValidationError):
        RefundPolicy(**{"refund_deadline_hours": 24, field: value})


def test_unknown_fields_are_rejected():
    with pytest.raises(ValidationError):
        RefundPolicy(refund_deadline_hours=24, refund_everything=True)


def test_policy_without_windows_has_no_tiers():
    assert not RefundPolicy(refund_deadline_hours=0).has_tiers


def test_cancelled_event_policy_is_full_and_fee_free():
    policy = RefundPolicy.for_cancelled_event("EVT-1")
    assert policy.event_id == "EVT-1"
    assert policy.is_refundable
    assert policy.refund_percentage == Decimal("1")
    assert policy.processing_fee_percentage == Decimal("0")
    assert not policy.requires_approval


def test_reschedule_policy_clamps_negative_deadline():
    deadline = datetime(2026, 11, 1, tzinfo=timezone.utc)
    policy = RefundPolicy.for_reschedule("EVT-1", -5, deadline)
    assert policy.refund_deadline_hours == 0
    assert deadline.isoformat() in policy.policy_text
