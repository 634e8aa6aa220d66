"""
Refund service — orchestrates eligibility, submission, decisions and payout state.

Flow: load ticket/event → evaluate → validate → transition → commit (CAS) → outbox

Collaborators are passed in explicitly; the service holds no module-level state.
"""
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional

from eventpass.engine.eligibility import evaluate, hours_until
from eventpass.engine.lifecycle import open_request, transition
from eventpass.engine.summary import summarize
from eventpass.errors import (
    InvalidStateTransition,
    NotEligible,
    RequestNotFound,
    ServiceUnavailable,
    TicketNotFound,
)
from eventpass.models.policy import RefundPolicy, RefundEligibilityResult, PLATFORM_DEFAULT_POLICY
from eventpass.models.outbox import Topic
from eventpass.models.refund import RefundRequest, RefundStatus, RefundReason, RefundSummary
from eventpass.models.ticket import Ticket, Event, EventStatus
from eventpass.repository.catalog import TicketCatalog
from eventpass.repository.store import InMemoryStore
from eventpass.services.outbox_service import record_transition
from eventpass.validators.refund_validator import (
    validate_eligible,
    validate_pending,
    validate_approved_amount,
    validate_reviewer_note,
    validate_manual_amount,
)

logger = logging.getLogger(__name__)

# A ticket may not get a new request while one of these exists.
BLOCKING_STATUSES = (
    RefundStatus.PENDING,
    RefundStatus.APPROVED,
    RefundStatus.PROCESSING,
    RefundStatus.COMPLETED,
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RefundService:
    """Attendee, organizer and payout operations over one store and one catalog."""

    def __init__(
        self,
        store: InMemoryStore,
        catalog: TicketCatalog,
        clock: Callable[[], datetime] = utc_now,
        default_policy: RefundPolicy = PLATFORM_DEFAULT_POLICY,
        currency: str = "UGX",
    ):
        self.store = store
        self.catalog = catalog
        self._clock = clock
        self._default_policy = default_policy
        self._currency = currency

    # ── Policies ────────────────────────────────────────────────────────────

    def get_policy(self, event_id: str) -> RefundPolicy:
        """Return the event's own policy, or the platform default bound to the event."""
        policy = self.store.get_policy(event_id)
        if policy is not None:
            return policy
        return self._default_policy.model_copy(update={"event_id": event_id})

    def set_policy(self, event_id: str, policy: RefundPolicy) -> RefundPolicy:
        bound = policy.model_copy(update={"event_id": event_id})
        self.store.save_policy(event_id, bound)
        logger.info("Refund policy updated for event %s", event_id)
        return bound

    def reopen_for_reschedule(self, event_id: str, deadline: datetime) -> RefundPolicy:
        """
        Allow full, fee-free refunds until deadline after an event moves.

        Raises:
            TicketNotFound: If the event is unknown.
            ServiceUnavailable: If the catalog cannot be reached.
        """
        event = self._load_event(event_id)
        deadline_hours = int(hours_until(event.start_date, deadline))
        policy = RefundPolicy.for_reschedule(event_id, deadline_hours, deadline)
        self.store.save_policy(event_id, policy)
        logger.info("Event %s reopened for refunds until %s", event_id, deadline.isoformat())
        return policy

    # ── Eligibility ─────────────────────────────────────────────────────────

    def check_eligibility(self, ticket_id: str) -> RefundEligibilityResult:
        ticket, event = self._load_ticket(ticket_id)
        return self._evaluate(ticket, event)

    def _evaluate(self, ticket: Ticket, event: Event) -> RefundEligibilityResult:
        return evaluate(
            ticket,
            event,
            self._policy_for(event),
            self._clock(),
            self.store.get_requests_by_ticket(ticket.id),
        )

    def _policy_for(self, event: Event) -> RefundPolicy:
        if event.status == EventStatus.CANCELLED:
            return RefundPolicy.for_cancelled_event(event.id)
        return self.get_policy(event.id)

    # ── Attendee actions ────────────────────────────────────────────────────

    def submit_request(
        self,
        ticket_id: str,
        reason: RefundReason,
        user_note: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> tuple[RefundRequest, bool]:
        """
        File a refund request against an eligible ticket.

        Steps:
          1. Replay: an idempotency key already seen returns the original request.
          2. Evaluate eligibility (raises NotEligible on refusal).
          3. Insert in pending unless the ticket already has an open or completed request.
          4. Record the submission in the outbox.
          5. Auto-approve when the reason qualifies and the policy needs no manual review.

        Returns:
            (request, was_replayed)

        Raises:
            TicketNotFound: Unknown ticket or event.
            NotEligible: The ticket cannot be refunded now.
            ServiceUnavailable: The catalog cannot be reached.
        """
        replayed = self._replay(idempotency_key)
        if replayed is not None:
            return replayed, True

        ticket, event = self._load_ticket(ticket_id)
        eligibility = self._evaluate(ticket, event)
        try:
            validate_eligible(eligibility, ticket)
        except NotEligible as exc:
            # A concurrent retry with the same key may have inserted since the first lookup.
            replayed = self._replay(idempotency_key)
            if replayed is not None:
                return replayed, True
            logger.warning("Refund refused for ticket %s: %s", ticket.id, exc.message)
            raise

        request = open_request(
            request_id=_new_request_id(),
            ticket=ticket,
            event=event,
            reason=reason,
            requested_amount=eligibility.net_refund,
            requested_at=self._clock(),
            currency=self._currency,
            user_note=user_note,
            idempotency_key=idempotency_key,
        )
        stored, was_replayed = self._insert(request)
        if was_replayed:
            return stored, True
        logger.info("Refund %s requested for ticket %s (%s %s)",
                    request.id, ticket.id, request.requested_amount, request.currency)

        policy = eligibility.policy
        if reason.is_auto_approved and policy is not None and not policy.requires_approval:
            try:
                request = self.approve(request.id, note=f"Auto-approved: {reason.value}")
            except InvalidStateTransition:
                # Someone decided the request between insert and auto-approval; theirs stands.
                logger.warning("Auto-approval of refund %s skipped: request already decided", request.id)
                request = self.store.get_request(request.id) or request

        return request, False

    def cancel_request(self, request_id: str, user_id: Optional[str] = None) -> RefundRequest:
        """Withdraw a pending request on behalf of its requester."""
        request = self._get_or_raise(request_id)
        validate_pending(request, "cancel")
        updated = transition(
            request,
            RefundStatus.REJECTED,
            self._clock(),
            note="Cancelled by user",
            changed_by=user_id or request.user_id,
        )
        return self._commit(request, updated, topic="refund_cancelled")

    # ── Organizer decisions ─────────────────────────────────────────────────

    def approve(
        self,
        request_id: str,
        approved_amount: Optional[Decimal] = None,
        note: Optional[str] = None,
        reviewer_id: Optional[str] = None,
    ) -> RefundRequest:
        """
        Approve a pending request in full (no amount) or in part.

        Raises:
            RequestNotFound: Unknown request id.
            InvalidStateTransition: The request is not pending, or another decision won the race.
            InvalidAmount: approved_amount outside [0, requested_amount].
        """
        request = self._get_or_raise(request_id)
        validate_pending(request, "approve")
        amount = validate_approved_amount(request, approved_amount)

        now = self._clock()
        updated = transition(
            request,
            RefundStatus.APPROVED,
            now,
            note=note or "Approved by organizer",
            changed_by=reviewer_id,
            approved_amount=amount,
            reviewer_note=note,
            reviewed_by=reviewer_id,
            reviewed_at=now,
        )
        return self._commit(request, updated)

    def reject(self, request_id: str, note: Optional[str], reviewer_id: Optional[str] = None) -> RefundRequest:
        """
        Reject a pending request. The note is shown to the requester.

        Raises:
            RequestNotFound: Unknown request id.
            InvalidStateTransition: The request is not pending, or another decision won the race.
            InvalidDecision: The note is missing or blank.
        """
        request = self._get_or_raise(request_id)
        validate_pending(request, "reject")
        reviewer_note = validate_reviewer_note(note)

        now = self._clock()
        updated = transition(
            request,
            RefundStatus.REJECTED,
            now,
            note=reviewer_note,
            changed_by=reviewer_id,
            reviewer_note=reviewer_note,
            reviewed_by=reviewer_id,
            reviewed_at=now,
        )
        return self._commit(request, updated)

    def issue_manual_refund(
        self,
        ticket_id: str,
        amount: Decimal,
        reason: RefundReason = RefundReason.ORGANIZER_DECISION,
        note: Optional[str] = None,
        reviewer_id: Optional[str] = None,
    ) -> RefundRequest:
        """Organizer-initiated refund: created pending and approved for amount in one call."""
        ticket, event = self._load_ticket(ticket_id)
        validate_manual_amount(ticket, amount)

        request = open_request(
            request_id=_new_request_id(),
            ticket=ticket,
            event=event,
            reason=reason,
            requested_amount=amount,
            requested_at=self._clock(),
            currency=self._currency,
            user_note=note,
        )
        self._insert(request)
        return self.approve(
            request.id,
            approved_amount=amount,
            note=note or "Manual refund issued by organizer",
            reviewer_id=reviewer_id,
        )

    def handle_event_cancelled(self, event_id: str) -> list[RefundRequest]:
        """
        Approve every pending request for a cancelled event at the cancellation entitlement.

        A request filed before the cancellation asked for its tiered, fee-reduced
        amount; it is raised to the full refund the cancellation grants, and the
        raise is noted on the approval's history entry.

        Returns:
            The approved requests.
        """
        event = self._load_event(event_id)
        approved = []
        for request in self.list_requests(status=RefundStatus.PENDING, event_id=event_id):
            try:
                approved.append(self._approve_for_cancellation(request.id, event))
            except InvalidStateTransition:
                # Decided by someone else since the listing; their decision stands.
                logger.warning("Refund %s changed while processing cancellation of event %s",
                               request.id, event_id)
        logger.info("Event %s cancelled: %d pending refunds approved", event_id, len(approved))
        return approved

    def _approve_for_cancellation(self, request_id: str, event: Event) -> RefundRequest:
        request = self._get_or_raise(request_id)
        validate_pending(request, "approve")
        ticket, _ = self._load_ticket(request.ticket_id)

        now = self._clock()
        entitlement = evaluate(ticket, event, RefundPolicy.for_cancelled_event(event.id), now)
        amount = max(entitlement.net_refund, request.requested_amount)
        note = "Auto-approved: Event cancelled"
        if amount != request.requested_amount:
            note = f"{note} (requested amount raised from {request.requested_amount} to {amount})"

        updated = transition(
            request,
            RefundStatus.APPROVED,
            now,
            note=note,
            requested_amount=amount,
            approved_amount=amount,
            reviewed_at=now,
        )
        return self._commit(request, updated)

    # ── Payout (driven by the payment collaborator) ─────────────────────────

    def begin_payout(self, request_id: str) -> RefundRequest:
        request = self._get_or_raise(request_id)
        updated = transition(request, RefundStatus.PROCESSING, self._clock(), note="Processing refund")
        return self._commit(request, updated)

    def confirm_payout(self, request_id: str, reference: str) -> RefundRequest:
        request = self._get_or_raise(request_id)
        updated = transition(
            request,
            RefundStatus.COMPLETED,
            self._clock(),
            note=f"Refund completed. Reference: {reference}",
            payout_reference=reference,
        )
        return self._commit(request, updated)

    def fail_payout(self, request_id: str, reason: str) -> RefundRequest:
        request = self._get_or_raise(request_id)
        updated = transition(
            request,
            RefundStatus.FAILED,
            self._clock(),
            note=f"Refund failed: {reason}",
            failure_reason=reason,
        )
        return self._commit(request, updated)

    # ── Queries ─────────────────────────────────────────────────────────────

    def get_request(self, request_id: str) -> Optional[RefundRequest]:
        return self.store.get_request(request_id)

    def get_request_for_ticket(self, ticket_id: str) -> Optional[RefundRequest]:
        """Most recent request filed against a ticket, if any."""
        requests = self.store.get_requests_by_ticket(ticket_id)
        return requests[-1] if requests else None

    def list_requests(
        self,
        status: Optional[RefundStatus] = None,
        event_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> list[RefundRequest]:
        """List requests newest first, optionally filtered."""
        requests = self.store.list_requests()
        if status is not None:
            requests = [r for r in requests if r.status == status]
        if event_id:
            requests = [r for r in requests if r.event_id == event_id]
        if user_id:
            requests = [r for r in requests if r.user_id == user_id]
        return sorted(requests, key=lambda r: r.requested_at, reverse=True)

    def summary(self, as_of: Optional[datetime] = None, event_id: Optional[str] = None) -> RefundSummary:
        return summarize(self.list_requests(event_id=event_id), as_of or self._clock())

    # ── Internals ───────────────────────────────────────────────────────────

    def _replay(self, idempotency_key: Optional[str]) -> Optional[RefundRequest]:
        if not idempotency_key:
            return None
        existing_id = self.store.get_idempotency_key(idempotency_key)
        return self.store.get_request(existing_id) if existing_id else None

    def _insert(self, request: RefundRequest) -> tuple[RefundRequest, bool]:
        """
        Store a new request and record it in the outbox.

        Returns:
            (request, was_replayed); was_replayed is True when the request's
            idempotency key already belonged to a stored request, which is returned instead.
        """
        blocker = self.store.add_request_unless_blocked(request, BLOCKING_STATUSES)
        if blocker is not None:
            if request.idempotency_key and blocker.idempotency_key == request.idempotency_key:
                return blocker, True
            if blocker.status == RefundStatus.COMPLETED:
                message = "This ticket has already been refunded"
            else:
                message = "A refund request is already pending for this ticket"
            logger.warning("Refund refused for ticket %s: %s (%s)", request.ticket_id, message, blocker.id)
            raise NotEligible(
                message,
                details={"ticket_id": request.ticket_id, "existing_refund_id": blocker.id},
            )
        record_transition(self.store, request)
        return request, False

    def _commit(
        self,
        current: RefundRequest,
        updated: RefundRequest,
        topic: Optional[Topic] = None,
    ) -> RefundRequest:
        """Swap in updated only if nobody moved the request since it was read."""
        if not self.store.replace_request(updated, expected_status=current.status):
            latest = self.store.get_request(current.id)
            status = latest.status.value if latest else "missing"
            logger.warning("Refund %s lost a concurrent update (now %s)", current.id, status)
            raise InvalidStateTransition(
                f"Refund {current.id} was changed by another operation (now {status}); refresh and retry",
                details={"refund_id": current.id, "status": status},
            )
        record_transition(self.store, updated, topic=topic)
        logger.info("Refund %s %s -> %s", updated.id, current.status.value, updated.status.value)
        return updated

    def _get_or_raise(self, request_id: str) -> RefundRequest:
        request = self.store.get_request(request_id)
        if request is None:
            raise RequestNotFound(f"Refund {request_id} not found", details={"refund_id": request_id})
        return request

    def _load_ticket(self, ticket_id: str) -> tuple[Ticket, Event]:
        try:
            ticket = self.catalog.get_ticket(ticket_id)
        except OSError as exc:
            raise ServiceUnavailable("Ticket catalog is unavailable; try again shortly") from exc
        if ticket is None:
            raise TicketNotFound(f"Ticket {ticket_id} not found", details={"ticket_id": ticket_id})
        return ticket, self._load_event(ticket.event_id)

    def _load_event(self, event_id: str) -> Event:
        try:
            event = self.catalog.get_event(event_id)
        except OSError as exc:
            raise ServiceUnavailable("Event catalog is unavailable; try again shortly") from exc
        if event is None:
            raise TicketNotFound(f"Event {event_id} not found", details={"event_id": event_id})
        return event


def _new_request_id() -> str:
    return f"RF-{str(uuid.uuid4())[:8].upper()}"
