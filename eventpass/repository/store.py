"""
In-memory refund store with thread-safe operations.

No business logic — only data access primitives. Writes that depend on the
current state (compare-and-swap on status, insert-unless-active) happen under
the same lock as the read they depend on.
"""
import threading
from typing import Iterable, Optional
from eventpass.models.policy import RefundPolicy
from eventpass.models.refund import RefundRequest, RefundStatus
from eventpass.models.outbox import OutboxMessage


class InMemoryStore:
    """Thread-safe in-memory store for refund requests, policies and the outbox."""

    def __init__(self):
        self._lock = threading.Lock()
        self._requests: dict[str, RefundRequest] = {}
        # ticket_id -> list of request ids, oldest first
        self._requests_by_ticket: dict[str, list[str]] = {}
        # idempotency_key -> request id
        self._idempotency_keys: dict[str, str] = {}
        # event_id -> policy
        self._policies: dict[str, RefundPolicy] = {}
        self._outbox: list[OutboxMessage] = []
        self._outbox_cursor = 0

    # ── Refund requests ─────────────────────────────────────────────────────

    def get_request(self, request_id: str) -> Optional[RefundRequest]:
        with self._lock:
            return self._requests.get(request_id)

    def get_requests_by_ticket(self, ticket_id: str) -> list[RefundRequest]:
        with self._lock:
            ids = self._requests_by_ticket.get(ticket_id, [])
            return [self._requests[rid] for rid in ids if rid in self._requests]

    def list_requests(self) -> list[RefundRequest]:
        with self._lock:
            return list(self._requests.values())

    def add_request_unless_blocked(
        self,
        request: RefundRequest,
        blocking_statuses: Iterable[RefundStatus],
    ) -> Optional[RefundRequest]:
        """
        Insert a new request unless its idempotency key is already taken or the
        ticket already has a request in a blocking status.

        Returns:
            None when inserted, otherwise the existing request that blocked the
            insert (the key's owner when the idempotency key is taken).
        """
        blocking = set(blocking_statuses)
        with self._lock:
            if request.idempotency_key:
                owner_id = self._idempotency_keys.get(request.idempotency_key)
                if owner_id is not None:
                    return self._requests[owner_id]
            for rid in self._requests_by_ticket.get(request.ticket_id, []):
                existing = self._requests[rid]
                if existing.status in blocking:
                    return existing
            self._requests[request.id] = request
            self._requests_by_ticket.setdefault(request.ticket_id, []).append(request.id)
            if request.idempotency_key:
                self._idempotency_keys[request.idempotency_key] = request.id
            return None

    def replace_request(self, updated: RefundRequest, expected_status: RefundStatus) -> bool:
        """
        Compare-and-swap: store updated only if the stored request is still in expected_status.

        Returns:
            True if the swap happened, False if the request is missing or has moved on.
        """
        with self._lock:
            current = self._requests.get(updated.id)
            if current is None or current.status != expected_status:
                return False
            self._requests[updated.id] = updated
            return True

    # ── Idempotency ─────────────────────────────────────────────────────────

    def get_idempotency_key(self, key: str) -> Optional[str]:
        """Return the request id associated with an idempotency key, if any."""
        with self._lock:
            return self._idempotency_keys.get(key)

    # ── Policies ────────────────────────────────────────────────────────────

    def get_policy(self, event_id: str) -> Optional[RefundPolicy]:
        with self._lock:
            return self._policies.get(event_id)

    def save_policy(self, event_id: str, policy: RefundPolicy) -> None:
        with self._lock:
            self._policies[event_id] = policy

    # ── Outbox ──────────────────────────────────────────────────────────────

    def append_outbox(self, message: OutboxMessage) -> None:
        """Append-only outbound message log. No update or delete."""
        with self._lock:
            self._outbox.append(message)

    def take_undelivered(self) -> list[OutboxMessage]:
        """Return messages appended since the last call and advance the delivery cursor."""
        with self._lock:
            batch = self._outbox[self._outbox_cursor:]
            self._outbox_cursor = len(self._outbox)
            return batch

    def get_outbox(
        self,
        refund_id: Optional[str] = None,
        topic: Optional[str] = None,
    ) -> list[OutboxMessage]:
        with self._lock:
            messages = list(self._outbox)

        if refund_id:
            messages = [m for m in messages if m.refund_id == refund_id]
        if topic:
            messages = [m for m in messages if m.topic == topic]
        return messages
