"""Event endpoints — refund policy, cancellation and reschedule."""
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status

from eventpass.errors import RefundError
from eventpass.models.policy import RefundPolicy
from eventpass.models.refund import RescheduleBody
from eventpass.models.ticket import EventStatus
from eventpass.repository.catalog import InMemoryCatalog
from eventpass.routes.deps import envelope, to_http, get_service, get_catalog, get_dispatcher
from eventpass.security.auth import require_api_key
from eventpass.services.outbox_service import OutboxDispatcher
from eventpass.services.refund_service import RefundService

router = APIRouter(prefix="/api/v1/events", tags=["events"], dependencies=[Depends(require_api_key)])


def _require_event(catalog: InMemoryCatalog, event_id: str):
    event = catalog.get_event(event_id)
    if event is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": {"code": "EVENT_NOT_FOUND", "message": f"Event {event_id} not found"}},
        )
    return event


@router.get("/{event_id}/policy")
async def get_policy(
    event_id: str,
    request: Request,
    catalog: InMemoryCatalog = Depends(get_catalog),
    service: RefundService = Depends(get_service),
) -> dict:
    _require_event(catalog, event_id)
    return envelope(service.get_policy(event_id).model_dump(mode="json"), request)


@router.put("/{event_id}/policy")
async def put_policy(
    event_id: str,
    body: RefundPolicy,
    request: Request,
    catalog: InMemoryCatalog = Depends(get_catalog),
    service: RefundService = Depends(get_service),
) -> dict:
    """Replace the event's refund policy. Windows must nest: full >= partial >= deadline."""
    _require_event(catalog, event_id)
    return envelope(service.set_policy(event_id, body).model_dump(mode="json"), request)


@router.post("/{event_id}/cancellation")
async def cancel_event(
    event_id: str,
    request: Request,
    background_tasks: BackgroundTasks,
    catalog: InMemoryCatalog = Depends(get_catalog),
    service: RefundService = Depends(get_service),
    dispatcher: OutboxDispatcher = Depends(get_dispatcher),
) -> dict:
    """Mark the event cancelled and approve all of its pending refund requests."""
    event = _require_event(catalog, event_id)
    catalog.save_event(event.model_copy(update={"status": EventStatus.CANCELLED}))
    try:
        approved = service.handle_event_cancelled(event_id)
    except RefundError as exc:
        raise to_http(exc) from exc
    background_tasks.add_task(dispatcher.dispatch_pending)
    return envelope([r.model_dump(mode="json") for r in approved], request)


@router.post("/{event_id}/reschedule")
async def reschedule_event(
    event_id: str,
    body: RescheduleBody,
    request: Request,
    service: RefundService = Depends(get_service),
) -> dict:
    """Reopen full, fee-free refunds for the event until the given deadline."""
    try:
        policy = service.reopen_for_reschedule(event_id, body.deadline)
    except RefundError as exc:
        raise to_http(exc) from exc
    return envelope(policy.model_dump(mode="json"), request)
