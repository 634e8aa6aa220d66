"""
Seed data for the EventPass refund service.

Events are placed relative to `now` so every refund window (full, partial,
past deadline) is represented whenever the app starts.
Run via: python seed_data.py (standalone) or loaded by create_app.
"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional

from eventpass.models.policy import RefundPolicy
from eventpass.models.ticket import Ticket, TicketType, Event, EventStatus, ScanStatus
from eventpass.repository.catalog import InMemoryCatalog
from eventpass.repository.store import InMemoryStore

ORGANIZER_ID = "ORG-KAMPALA-LIVE"

REGULAR = TicketType(id="TT-REGULAR", name="Regular", price=Decimal("50000"))
VIP = TicketType(id="TT-VIP", name="VIP", price=Decimal("100000"))
VVIP = TicketType(id="TT-VVIP", name="VVIP", price=Decimal("150000"))


def load_seed_data(
    catalog: InMemoryCatalog,
    store: Optional[InMemoryStore] = None,
    now: Optional[datetime] = None,
) -> None:
    """Populate the catalog with events and tickets, and the store with event policies."""
    now = now or datetime.now(timezone.utc)
    for event in _build_events(now):
        catalog.save_event(event)
    for ticket in _build_tickets(now):
        catalog.save_ticket(ticket)
    if store is not None:
        for event_id, policy in _build_policies().items():
            store.save_policy(event_id, policy)


def _build_events(now: datetime) -> list[Event]:
    return [
        # Full-refund window under the platform default (72h+)
        Event(id="EVT-NYEGE", title="Nyege Nyege Festival", organizer_id=ORGANIZER_ID,
              start_date=now + timedelta(days=30)),
        # Partial window (24h-72h)
        Event(id="EVT-COMEDY", title="Comedy Night at Theatre Labonita", organizer_id=ORGANIZER_ID,
              start_date=now + timedelta(hours=50)),
        # Past the 24h deadline
        Event(id="EVT-JAZZ", title="Jazz Safari", organizer_id=ORGANIZER_ID,
              start_date=now + timedelta(hours=10)),
        # Non-refundable policy
        Event(id="EVT-EXPO", title="Kampala Tech Expo", organizer_id=ORGANIZER_ID,
              start_date=now + timedelta(days=14)),
        Event(id="EVT-ARCHIVE", title="Blankets and Wine", organizer_id=ORGANIZER_ID,
              start_date=now - timedelta(days=7), status=EventStatus.COMPLETED),
        # Manual review required for every request
        Event(id="EVT-MARATHON", title="MTN Kampala Marathon", organizer_id=ORGANIZER_ID,
              start_date=now + timedelta(days=21)),
    ]


def _build_tickets(now: datetime) -> list[Ticket]:
    plan = [
        ("EVT-NYEGE", [VIP, VIP, REGULAR, REGULAR, VVIP]),
        ("EVT-COMEDY", [REGULAR, VIP]),
        ("EVT-JAZZ", [REGULAR]),
        ("EVT-EXPO", [REGULAR]),
        ("EVT-ARCHIVE", [REGULAR]),
        ("EVT-MARATHON", [REGULAR, VIP]),
    ]
    holders = [
        ("USR-001", "John Mukasa", "john@example.com", "+256700123456"),
        ("USR-002", "Sarah Nambi", "sarah@example.com", "+256701234567"),
        ("USR-003", "Peter Okello", None, "+256702345678"),
    ]

    tickets = []
    serial = 1000
    for event_id, types in plan:
        short = event_id.split("-", 1)[1]
        for i, ticket_type in enumerate(types, start=1):
            user_id, name, email, phone = holders[(serial - 1000) % len(holders)]
            serial += 1
            tickets.append(Ticket(
                id=f"TKT-{short}-{i:03d}",
                ticket_number=f"TKT-{serial:06d}",
                event_id=event_id,
                user_id=user_id,
                user_name=name,
                user_email=email,
                user_phone=phone,
                ticket_type=ticket_type,
                purchase_date=now - timedelta(days=7),
            ))

    tickets.append(Ticket(
        id="TKT-NYEGE-SCANNED",
        ticket_number="TKT-009999",
        event_id="EVT-NYEGE",
        user_id="USR-001",
        user_name="John Mukasa",
        ticket_type=REGULAR,
        purchase_date=now - timedelta(days=3),
        scan_status=ScanStatus.SCANNED,
    ))
    return tickets


def _build_policies() -> dict[str, RefundPolicy]:
    return {
        "EVT-EXPO": RefundPolicy(
            event_id="EVT-EXPO",
            is_refundable=False,
            refund_deadline_hours=0,
            policy_text=(
                "This ticket is non-refundable. In case of event cancellation, "
                "a full refund will be processed automatically."
            ),
        ),
        "EVT-MARATHON": RefundPolicy(
            event_id="EVT-MARATHON",
            refund_deadline_hours=48,
            full_refund_deadline_hours=72,
            processing_fee_percentage=Decimal("0.05"),
            requires_approval=True,
            policy_text="Full refunds up to 72 hours before the race, reviewed by the organizer.",
        ),
    }


if __name__ == "__main__":
    seeded_catalog = InMemoryCatalog()
    seeded_store = InMemoryStore()
    load_seed_data(seeded_catalog, seeded_store)
    print(f"Loaded {len(seeded_catalog.list_events())} events:")
    for event in sorted(seeded_catalog.list_events(), key=lambda e: e.start_date):
        tickets = [t for t in seeded_catalog.list_tickets() if t.event_id == event.id]
        print(f"  {event.id}: {event.status.value} | {event.start_date.isoformat()} | {len(tickets)} tickets")
