"""
Ticket and event catalog.

The refund workflow only reads from it. InMemoryCatalog backs the service in
development and tests; any object with the same get_* methods can replace it.
"""
import threading
from typing import Optional, Protocol
from eventpass.models.ticket import Ticket, Event


class TicketCatalog(Protocol):
    def get_ticket(self, ticket_id: str) -> Optional[Ticket]: ...

    def get_event(self, event_id: str) -> Optional[Event]: ...


class InMemoryCatalog:
    """Thread-safe in-memory tickets and events."""

    def __init__(self):
        self._lock = threading.Lock()
        self._tickets: dict[str, Ticket] = {}
        self._events: dict[str, Event] = {}

    def get_ticket(self, ticket_id: str) -> Optional[Ticket]:
        with self._lock:
            return self._tickets.get(ticket_id)

    def list_tickets(self) -> list[Ticket]:
        with self._lock:
            return list(self._tickets.values())

    def save_ticket(self, ticket: Ticket) -> None:
        with self._lock:
            self._tickets[ticket.id] = ticket

    def get_event(self, event_id: str) -> Optional[Event]:
        with self._lock:
            return self._events.get(event_id)

    def list_events(self) -> list[Event]:
        with self._lock:
            return list(self._events.values())

    def save_event(self, event: Event) -> None:
        with self._lock:
            self._events[event.id] = event
