"""Unit tests for eventpass/services/refund_service.py against the seeded catalog."""
import threading
from datetime import timedelta
from decimal import Decimal

import pytest

from eventpass.errors import (
    InvalidAmount,
    InvalidDecision,
    InvalidStateTransition,
    NotEligible,
    RequestNotFound,
    ServiceUnavailable,
    TicketNotFound,
)
from eventpass.models.policy import RefundPolicy
from eventpass.models.refund import RefundReason, RefundStatus
from eventpass.models.ticket import EventStatus
from eventpass.repository.catalog import InMemoryCatalog
from eventpass.repository.store import InMemoryStore
from eventpass.services.refund_service import RefundService
from seed_data import load_seed_data


def _cancel_event(catalog, event_id):
    event = catalog.get_event(event_id)
    catalog.save_event(event.model_copy(update={"status": EventStatus.CANCELLED}))


# ── Eligibility ─────────────────────────────────────────────────────────────

def test_full_window_eligibility(service):
    result = service.check_eligibility("TKT-NYEGE-001")
    assert result.is_eligible
    assert result.net_refund == Decimal("95000")
    assert result.policy.event_id == "EVT-NYEGE"


def test_partial_window_eligibility(service):
    result = service.check_eligibility("TKT-COMEDY-001")
    assert result.refund_percentage == Decimal("0.5")
    assert result.net_refund == Decimal("23750")


@pytest.mark.parametrize("ticket_id,fragment", [
    ("TKT-JAZZ-001", "deadline has passed"),
    ("TKT-EXPO-001", "non-refundable"),
    ("TKT-ARCHIVE-001", "already ended"),
    ("TKT-NYEGE-SCANNED", "already been used"),
])
def test_ineligible_seed_tickets(service, ticket_id, fragment):
    result = service.check_eligibility(ticket_id)
    assert not result.is_eligible
    assert fragment in result.reason


def test_unknown_ticket(service):
    with pytest.raises(TicketNotFound):
        service.check_eligibility("TKT-NOPE")


def test_unreachable_catalog_is_service_unavailable(store):
    class DownCatalog:
        def get_ticket(self, ticket_id):
            raise ConnectionError("catalog down")

        def get_event(self, event_id):
            raise ConnectionError("catalog down")

    service = RefundService(store, DownCatalog())
    with pytest.raises(ServiceUnavailable) as exc_info:
        service.submit_request("TKT-NYEGE-001", RefundReason.CANNOT_ATTEND)
    assert exc_info.value.http_status == 503
    assert store.list_requests() == []


# ── Submission ──────────────────────────────────────────────────────────────

def test_submit_creates_pending_request_for_net_amount(service, clock):
    request, replayed = service.submit_request("TKT-NYEGE-001", RefundReason.CANNOT_ATTEND, "Travelling")
    assert not replayed
    assert request.status == RefundStatus.PENDING
    assert request.requested_amount == Decimal("95000")
    assert request.currency == "UGX"
    assert request.requested_at == clock.now
    assert request.user_id == "USR-001"
    assert request.event_title == "Nyege Nyege Festival"
    assert request.user_note == "Travelling"
    assert request.id.startswith("RF-")


def test_ineligible_submission_is_refused_and_not_stored(service, store):
    with pytest.raises(NotEligible) as exc_info:
        service.submit_request("TKT-JAZZ-001", RefundReason.CANNOT_ATTEND)
    assert exc_info.value.details["ticket_id"] == "TKT-JAZZ-001"
    assert store.list_requests() == []


def test_auto_approved_reason_is_approved_immediately(service):
    request, _ = service.submit_request("TKT-NYEGE-002", RefundReason.DUPLICATE_PURCHASE)
    assert request.status == RefundStatus.APPROVED
    assert request.approved_amount == Decimal("95000")
    assert len(request.status_history) == 2
    assert request.status_history[-1].note == "Auto-approved: duplicate_purchase"


def test_auto_approved_reason_waits_when_policy_requires_review(service):
    request, _ = service.submit_request("TKT-MARATHON-001", RefundReason.DUPLICATE_PURCHASE)
    assert request.status == RefundStatus.PENDING
    assert request.requested_amount == Decimal("47500")


def test_auto_approval_yields_to_a_decision_made_first(service, store, monkeypatch):
    original_approve = service.approve

    def organizer_rejects_first(request_id, **kwargs):
        service.reject(request_id, "Duplicate confirmed as intentional")
        return original_approve(request_id, **kwargs)

    monkeypatch.setattr(service, "approve", organizer_rejects_first)
    request, replayed = service.submit_request("TKT-NYEGE-002", RefundReason.DUPLICATE_PURCHASE)
    assert not replayed
    assert request.status == RefundStatus.REJECTED
    assert store.get_request(request.id) == request


def test_second_request_on_same_ticket_is_refused(service):
    first, _ = service.submit_request("TKT-NYEGE-001", RefundReason.CANNOT_ATTEND)
    with pytest.raises(NotEligible) as exc_info:
        service.submit_request("TKT-NYEGE-001", RefundReason.OTHER)
    assert "already pending" in exc_info.value.message


def test_resubmission_allowed_after_rejection(service):
    first, _ = service.submit_request("TKT-NYEGE-001", RefundReason.CANNOT_ATTEND)
    service.reject(first.id, "Resale window still open")
    second, _ = service.submit_request("TKT-NYEGE-001", RefundReason.CANNOT_ATTEND)
    assert second.id != first.id
    assert service.get_request_for_ticket("TKT-NYEGE-001").id == second.id


def test_idempotency_key_replays_original(service, store):
    first, replayed_first = service.submit_request("TKT-NYEGE-003", RefundReason.OTHER, idempotency_key="k-1")
    again, replayed_again = service.submit_request("TKT-NYEGE-003", RefundReason.OTHER, idempotency_key="k-1")
    assert not replayed_first
    assert replayed_again
    assert again.id == first.id
    assert len(store.list_requests()) == 1


def test_cancel_by_user(service):
    request, _ = service.submit_request("TKT-NYEGE-001", RefundReason.CANNOT_ATTEND)
    cancelled = service.cancel_request(request.id)
    assert cancelled.status == RefundStatus.REJECTED
    assert cancelled.status_history[-1].note == "Cancelled by user"
    assert cancelled.status_history[-1].changed_by == "USR-001"
    with pytest.raises(InvalidStateTransition):
        service.cancel_request(request.id)


# ── Decisions ───────────────────────────────────────────────────────────────

def test_approve_in_full(service, clock):
    request, _ = service.submit_request("TKT-MARATHON-001", RefundReason.CANNOT_ATTEND)
    clock.advance(hours=2)
    approved = service.approve(request.id, reviewer_id="ORG-1")
    assert approved.status == RefundStatus.APPROVED
    assert approved.approved_amount == request.requested_amount
    assert approved.reviewed_by == "ORG-1"
    assert approved.reviewed_at == clock.now
    assert approved.status_history[-1].note == "Approved by organizer"


def test_partial_approval(service):
    service.set_policy("EVT-MARATHON", RefundPolicy(refund_deadline_hours=48, requires_approval=True))
    request, _ = service.submit_request("TKT-MARATHON-001", RefundReason.CANNOT_ATTEND)
    assert request.requested_amount == Decimal("50000")
    approved = service.approve(request.id, Decimal("40000"), note="Fees retained")
    assert approved.approved_amount == Decimal("40000")
    assert approved.reviewer_note == "Fees retained"
    assert service.summary().monthly_refund_total == Decimal("40000")


def test_zero_approval_is_allowed(service):
    request, _ = service.submit_request("TKT-MARATHON-001", RefundReason.CANNOT_ATTEND)
    assert service.approve(request.id, Decimal("0")).approved_amount == Decimal("0")


@pytest.mark.parametrize("amount", [Decimal("60000"), Decimal("-1")])
def test_out_of_range_approval_is_refused(service, amount):
    request, _ = service.submit_request("TKT-MARATHON-001", RefundReason.CANNOT_ATTEND)
    with pytest.raises(InvalidAmount):
        service.approve(request.id, amount)
    assert service.get_request(request.id).status == RefundStatus.PENDING


def test_reject_requires_note(service):
    request, _ = service.submit_request("TKT-MARATHON-001", RefundReason.CANNOT_ATTEND)
    with pytest.raises(InvalidDecision):
        service.reject(request.id, "   ")
    rejected = service.reject(request.id, "  Outside policy  ", reviewer_id="ORG-1")
    assert rejected.reviewer_note == "Outside policy"
    assert rejected.status_history[-1].changed_by == "ORG-1"


def test_second_decision_is_refused(service):
    request, _ = service.submit_request("TKT-MARATHON-001", RefundReason.CANNOT_ATTEND)
    service.reject(request.id, "Outside policy")
    with pytest.raises(InvalidStateTransition):
        service.reject(request.id, "Again")
    with pytest.raises(InvalidStateTransition):
        service.approve(request.id)
    assert len(service.get_request(request.id).status_history) == 2


def test_unknown_request(service):
    with pytest.raises(RequestNotFound):
        service.approve("RF-MISSING")


def test_manual_refund_skips_eligibility(service):
    refund = service.issue_manual_refund("TKT-JAZZ-001", Decimal("30000"), reviewer_id="ORG-1")
    assert refund.status == RefundStatus.APPROVED
    assert refund.reason == RefundReason.ORGANIZER_DECISION
    assert refund.approved_amount == Decimal("30000")
    assert refund.status_history[-1].note == "Manual refund issued by organizer"


@pytest.mark.parametrize("amount", [Decimal("0"), Decimal("50000.01")])
def test_manual_refund_amount_bounds(service, amount):
    with pytest.raises(InvalidAmount):
        service.issue_manual_refund("TKT-JAZZ-001", amount)


def test_manual_refund_blocked_by_open_request(service):
    service.submit_request("TKT-MARATHON-001", RefundReason.CANNOT_ATTEND)
    with pytest.raises(NotEligible):
        service.issue_manual_refund("TKT-MARATHON-001", Decimal("10000"))


# ── Events ──────────────────────────────────────────────────────────────────

def test_event_cancellation_approves_pending_requests(service, catalog):
    pending, _ = service.submit_request("TKT-MARATHON-001", RefundReason.CANNOT_ATTEND)
    _cancel_event(catalog, "EVT-MARATHON")
    approved = service.handle_event_cancelled("EVT-MARATHON")
    assert [r.id for r in approved] == [pending.id]
    assert approved[0].status_history[-1].note.startswith("Auto-approved: Event cancelled")

    result = service.check_eligibility("TKT-MARATHON-002")
    assert result.net_refund == Decimal("100000")
    assert result.processing_fee == Decimal("0")


def test_event_cancellation_pays_full_price_for_partial_window_request(service, catalog):
    pending, _ = service.submit_request("TKT-COMEDY-001", RefundReason.CANNOT_ATTEND)
    assert pending.requested_amount == Decimal("23750")

    _cancel_event(catalog, "EVT-COMEDY")
    [approved] = service.handle_event_cancelled("EVT-COMEDY")
    assert approved.status == RefundStatus.APPROVED
    assert approved.requested_amount == Decimal("50000")
    assert approved.approved_amount == Decimal("50000")
    assert "raised from 23750.00 to 50000.00" in approved.status_history[-1].note
    assert len(approved.status_history) == 2
    assert service.get_request(pending.id) == approved


def test_event_cancellation_skips_already_decided_requests(service, catalog):
    decided, _ = service.submit_request("TKT-MARATHON-001", RefundReason.CANNOT_ATTEND)
    service.reject(decided.id, "Resold")
    _cancel_event(catalog, "EVT-MARATHON")
    assert service.handle_event_cancelled("EVT-MARATHON") == []
    assert service.get_request(decided.id).status == RefundStatus.REJECTED


def test_cancelled_event_overrides_deadline(service, catalog):
    _cancel_event(catalog, "EVT-JAZZ")
    request, _ = service.submit_request("TKT-JAZZ-001", RefundReason.EVENT_CANCELLED)
    assert request.status == RefundStatus.APPROVED
    assert request.approved_amount == Decimal("50000")


def test_reschedule_reopens_refunds_until_deadline(service, clock):
    policy = service.reopen_for_reschedule("EVT-JAZZ", clock.now + timedelta(hours=5))
    assert policy.refund_deadline_hours == 5
    result = service.check_eligibility("TKT-JAZZ-001")
    assert result.is_eligible
    assert result.net_refund == Decimal("50000")

    clock.advance(hours=6)
    assert not service.check_eligibility("TKT-JAZZ-001").is_eligible


def test_reschedule_deadline_is_exact_to_the_minute(service, clock):
    deadline = clock.now + timedelta(hours=5, minutes=30)
    service.reopen_for_reschedule("EVT-JAZZ", deadline)
    assert service.check_eligibility("TKT-JAZZ-001").deadline == deadline

    clock.advance(hours=5, minutes=30)
    assert service.check_eligibility("TKT-JAZZ-001").is_eligible

    clock.advance(minutes=15)
    result = service.check_eligibility("TKT-JAZZ-001")
    assert not result.is_eligible
    assert "refunds closed" in result.reason


# ── Payout ──────────────────────────────────────────────────────────────────

def test_payout_completion_blocks_further_requests(service):
    request, _ = service.submit_request("TKT-NYEGE-001", RefundReason.DUPLICATE_PURCHASE)
    service.begin_payout(request.id)
    completed = service.confirm_payout(request.id, "MM-778899")
    assert completed.status == RefundStatus.COMPLETED
    assert completed.payout_reference == "MM-778899"
    with pytest.raises(NotEligible) as exc_info:
        service.submit_request("TKT-NYEGE-001", RefundReason.OTHER)
    assert "already been refunded" in exc_info.value.message


def test_failed_payout_is_terminal(service):
    request, _ = service.submit_request("TKT-NYEGE-001", RefundReason.DUPLICATE_PURCHASE)
    service.begin_payout(request.id)
    failed = service.fail_payout(request.id, "Wallet closed")
    assert failed.status == RefundStatus.FAILED
    assert failed.failure_reason == "Wallet closed"
    with pytest.raises(InvalidStateTransition):
        service.confirm_payout(request.id, "MM-1")


def test_payout_cannot_start_before_approval(service):
    request, _ = service.submit_request("TKT-MARATHON-001", RefundReason.CANNOT_ATTEND)
    with pytest.raises(InvalidStateTransition):
        service.begin_payout(request.id)


# ── Queries and outbox ──────────────────────────────────────────────────────

def test_list_requests_newest_first_with_filters(service, clock):
    first, _ = service.submit_request("TKT-NYEGE-001", RefundReason.CANNOT_ATTEND)
    clock.advance(minutes=5)
    second, _ = service.submit_request("TKT-NYEGE-002", RefundReason.CANNOT_ATTEND)
    clock.advance(minutes=5)
    third, _ = service.submit_request("TKT-MARATHON-001", RefundReason.CANNOT_ATTEND)

    assert [r.id for r in service.list_requests()] == [third.id, second.id, first.id]
    assert [r.id for r in service.list_requests(event_id="EVT-MARATHON")] == [third.id]
    assert [r.id for r in service.list_requests(user_id="USR-001")] == [first.id]
    assert len(service.list_requests(status=RefundStatus.APPROVED)) == 0


def test_every_transition_is_recorded_in_outbox(service, store):
    request, _ = service.submit_request("TKT-NYEGE-001", RefundReason.DUPLICATE_PURCHASE)
    service.begin_payout(request.id)
    service.confirm_payout(request.id, "MM-1")
    topics = [m.topic for m in store.get_outbox(refund_id=request.id)]
    assert topics == ["refund_requested", "refund_approved", "refund_status_changed", "refund_status_changed"]


def test_user_withdrawal_is_published_apart_from_rejections(service, store):
    withdrawn, _ = service.submit_request("TKT-NYEGE-001", RefundReason.CANNOT_ATTEND)
    service.cancel_request(withdrawn.id)
    rejected, _ = service.submit_request("TKT-MARATHON-001", RefundReason.CANNOT_ATTEND)
    service.reject(rejected.id, "Outside policy")

    assert [m.topic for m in store.get_outbox(refund_id=withdrawn.id)] == ["refund_requested", "refund_cancelled"]
    assert [m.refund_id for m in store.get_outbox(topic="refund_rejected")] == [rejected.id]


def test_get_policy_falls_back_to_platform_default(service):
    policy = service.get_policy("EVT-NYEGE")
    assert policy.event_id == "EVT-NYEGE"
    assert policy.full_refund_deadline_hours == 72


# ── Concurrency ─────────────────────────────────────────────────────────────

def _race(*targets):
    barrier = threading.Barrier(len(targets))
    outcomes = [None] * len(targets)

    def run(i, target):
        barrier.wait()
        try:
            outcomes[i] = target()
        except Exception as exc:
            outcomes[i] = exc

    threads = [threading.Thread(target=run, args=(i, t)) for i, t in enumerate(targets)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return outcomes


@pytest.mark.parametrize("attempt", range(10))
def test_concurrent_decisions_have_one_winner(service, attempt):
    request, _ = service.submit_request("TKT-MARATHON-001", RefundReason.CANNOT_ATTEND)
    outcomes = _race(
        lambda: service.approve(request.id),
        lambda: service.reject(request.id, "No"),
    )
    winners = [o for o in outcomes if not isinstance(o, Exception)]
    losers = [o for o in outcomes if isinstance(o, Exception)]
    assert len(winners) == 1
    assert len(losers) == 1
    assert isinstance(losers[0], InvalidStateTransition)
    stored = service.get_request(request.id)
    assert stored.status == winners[0].status
    assert len(stored.status_history) == 2


@pytest.mark.parametrize("attempt", range(10))
def test_concurrent_submissions_create_one_request(attempt):
    store = InMemoryStore()
    catalog = InMemoryCatalog()
    load_seed_data(catalog, store)
    service = RefundService(store, catalog)

    outcomes = _race(*[
        (lambda: service.submit_request("TKT-NYEGE-004", RefundReason.CANNOT_ATTEND)) for _ in range(5)
    ])
    successes = [o for o in outcomes if not isinstance(o, Exception)]
    assert len(successes) == 1
    assert all(isinstance(o, NotEligible) for o in outcomes if isinstance(o, Exception))
    assert len(store.get_requests_by_ticket("TKT-NYEGE-004")) == 1


class _GatedCatalog(InMemoryCatalog):
    """Holds the first two ticket lookups until both have arrived."""

    def __init__(self):
        super().__init__()
        self._gate = threading.Barrier(2, timeout=5)
        self._waiting = 2
        self._count_lock = threading.Lock()

    def get_ticket(self, ticket_id):
        with self._count_lock:
            wait = self._waiting > 0
            self._waiting -= 1
        if wait:
            self._gate.wait()
        return super().get_ticket(ticket_id)


def _gated_service():
    store = InMemoryStore()
    catalog = _GatedCatalog()
    load_seed_data(catalog, store)
    return RefundService(store, catalog), store


@pytest.mark.parametrize("attempt", range(10))
def test_concurrent_retries_with_one_key_replay_the_winner(attempt):
    service, store = _gated_service()
    outcomes = _race(*[
        (lambda: service.submit_request("TKT-NYEGE-004", RefundReason.CANNOT_ATTEND, idempotency_key="retry-1"))
        for _ in range(2)
    ])
    assert not any(isinstance(o, Exception) for o in outcomes)
    assert sorted(replayed for _, replayed in outcomes) == [False, True]
    assert outcomes[0][0].id == outcomes[1][0].id
    assert len(store.get_requests_by_ticket("TKT-NYEGE-004")) == 1


@pytest.mark.parametrize("attempt", range(10))
def test_idempotency_key_reused_across_tickets_inserts_once(attempt):
    service, store = _gated_service()
    outcomes = _race(
        lambda: service.submit_request("TKT-NYEGE-003", RefundReason.CANNOT_ATTEND, idempotency_key="shared-1"),
        lambda: service.submit_request("TKT-NYEGE-004", RefundReason.CANNOT_ATTEND, idempotency_key="shared-1"),
    )
    assert not any(isinstance(o, Exception) for o in outcomes)
    assert outcomes[0][0].id == outcomes[1][0].id
    assert sorted(replayed for _, replayed in outcomes) == [False, True]
    assert len(store.list_requests()) == 1
