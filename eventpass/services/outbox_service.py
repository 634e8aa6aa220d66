"""
Outbox service — outbound messages for notification and analytics collaborators.

Every status transition of a refund request is recorded here in the same
step that commits it. Delivery happens later through OutboxDispatcher, so
a collaborator failure can never undo a committed transition.
"""
import logging
import uuid
from collections import defaultdict
from typing import Callable, Optional

from eventpass.models.outbox import OutboxMessage, Topic
from eventpass.models.refund import RefundRequest, RefundStatus
from eventpass.repository.store import InMemoryStore

logger = logging.getLogger(__name__)

Handler = Callable[[OutboxMessage], None]

_TOPIC_BY_STATUS: dict[RefundStatus, Topic] = {
    RefundStatus.PENDING: "refund_requested",
    RefundStatus.APPROVED: "refund_approved",
    RefundStatus.REJECTED: "refund_rejected",
}


def record_transition(
    store: InMemoryStore,
    request: RefundRequest,
    topic: Optional[Topic] = None,
) -> OutboxMessage:
    """
    Record the latest transition of a request in the outbox.

    Args:
        store: The store holding the outbox.
        request: The request as committed; its last history entry is recorded.
        topic: Overrides the topic derived from the new status.

    Returns:
        The appended OutboxMessage.
    """
    change = request.status_history[-1]
    amount = request.approved_amount if request.approved_amount is not None else request.requested_amount

    message = OutboxMessage(
        id=str(uuid.uuid4()),
        topic=topic or _TOPIC_BY_STATUS.get(change.to_status, "refund_status_changed"),
        occurred_at=change.changed_at,
        refund_id=request.id,
        ticket_id=request.ticket_id,
        event_id=request.event_id,
        user_id=request.user_id,
        from_status=change.from_status,
        to_status=change.to_status,
        amount=amount,
        currency=request.currency,
        reason=request.reason,
        note=change.note,
    )
    store.append_outbox(message)
    return message


def get_outbox_messages(
    store: InMemoryStore,
    refund_id: Optional[str] = None,
    topic: Optional[str] = None,
) -> list[OutboxMessage]:
    """Retrieve outbox messages in the order they were recorded."""
    return store.get_outbox(refund_id=refund_id, topic=topic)


class OutboxDispatcher:
    """Deliver undelivered outbox messages to subscribed handlers.

    Handlers subscribe to a topic or to "*" for every topic. A failing handler
    is logged and skipped; it never stops delivery to the others.
    """

    def __init__(self, store: InMemoryStore):
        self._store = store
        self._handlers: dict[str, list[Handler]] = defaultdict(list)

    def subscribe(self, topic: str, handler: Handler) -> None:
        self._handlers[topic].append(handler)

    def dispatch_pending(self) -> int:
        """Deliver every message recorded since the last dispatch. Returns the number delivered."""
        batch = self._store.take_undelivered()
        for message in batch:
            for handler in self._handlers.get(message.topic, []) + self._handlers.get("*", []):
                try:
                    handler(message)
                except Exception:
                    logger.exception(
                        "Outbox handler %s failed for %s on refund %s",
                        getattr(handler, "__name__", repr(handler)),
                        message.topic,
                        message.refund_id,
                    )
        return len(batch)


def log_notification(message: OutboxMessage) -> None:
    """Stand-in notification collaborator: logs the user-facing status change."""
    logger.info(
        "notify user=%s refund=%s status=%s",
        message.user_id,
        message.refund_id,
        message.to_status.value,
    )


def log_analytics(message: OutboxMessage) -> None:
    """Stand-in analytics collaborator: logs the tracked refund event."""
    logger.info(
        "analytics event=%s refund=%s amount=%s %s reason=%s",
        message.topic,
        message.refund_id,
        message.amount,
        message.currency,
        message.reason.value,
    )


ANALYTICS_TOPICS: tuple[Topic, ...] = (
    "refund_requested",
    "refund_approved",
    "refund_rejected",
    "refund_cancelled",
)
