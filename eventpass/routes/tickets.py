"""Ticket endpoints — catalog reads, eligibility checks and organizer-issued refunds."""
from typing import Optional
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status

from eventpass.errors import RefundError
from eventpass.models.refund import ManualRefundBody
from eventpass.repository.catalog import InMemoryCatalog
from eventpass.routes.deps import envelope, to_http, get_service, get_catalog, get_dispatcher
from eventpass.security.auth import require_api_key, get_actor_id
from eventpass.services.outbox_service import OutboxDispatcher
from eventpass.services.refund_service import RefundService

router = APIRouter(prefix="/api/v1/tickets", tags=["tickets"], dependencies=[Depends(require_api_key)])


@router.get("")
async def list_tickets(
    request: Request,
    event_id: Optional[str] = None,
    catalog: InMemoryCatalog = Depends(get_catalog),
) -> dict:
    tickets = catalog.list_tickets()
    if event_id:
        tickets = [t for t in tickets if t.event_id == event_id]
    return envelope([t.model_dump(mode="json") for t in tickets], request)


@router.get("/{ticket_id}")
async def get_ticket(
    ticket_id: str,
    request: Request,
    catalog: InMemoryCatalog = Depends(get_catalog),
) -> dict:
    ticket = catalog.get_ticket(ticket_id)
    if ticket is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": {"code": "TICKET_NOT_FOUND", "message": f"Ticket {ticket_id} not found"}},
        )
    return envelope(ticket.model_dump(mode="json"), request)


@router.get("/{ticket_id}/eligibility")
async def get_eligibility(
    ticket_id: str,
    request: Request,
    service: RefundService = Depends(get_service),
) -> dict:
    """Evaluate whether the ticket can be refunded right now and for how much."""
    try:
        result = service.check_eligibility(ticket_id)
    except RefundError as exc:
        raise to_http(exc) from exc
    return envelope(result.model_dump(mode="json"), request)


@router.get("/{ticket_id}/refund")
async def get_ticket_refund(
    ticket_id: str,
    request: Request,
    service: RefundService = Depends(get_service),
) -> dict:
    """Latest refund request filed against the ticket, or null."""
    result = service.get_request_for_ticket(ticket_id)
    return envelope(result.model_dump(mode="json") if result else None, request)


@router.post("/{ticket_id}/manual-refunds", status_code=status.HTTP_201_CREATED)
async def issue_manual_refund(
    ticket_id: str,
    body: ManualRefundBody,
    request: Request,
    background_tasks: BackgroundTasks,
    actor_id: Optional[str] = Depends(get_actor_id),
    service: RefundService = Depends(get_service),
    dispatcher: OutboxDispatcher = Depends(get_dispatcher),
) -> dict:
    """Organizer-initiated refund, approved immediately for the given amount."""
    try:
        result = service.issue_manual_refund(
            ticket_id,
            body.amount,
            reason=body.reason,
            note=body.note,
            reviewer_id=body.reviewer_id or actor_id,
        )
    except RefundError as exc:
        raise to_http(exc) from exc
    background_tasks.add_task(dispatcher.dispatch_pending)
    return envelope(result.model_dump(mode="json"), request)
