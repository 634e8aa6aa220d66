"""Refund endpoints — submission, organizer decisions, payout state and summary."""
from datetime import datetime, timezone
from typing import Optional
from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Query, Request, Response, status
from fastapi.responses import JSONResponse

from eventpass.errors import RefundError
from eventpass.models.refund import (
    RefundStatus,
    SubmitRefundBody,
    ApproveBody,
    RejectBody,
    PayoutConfirmBody,
    PayoutFailBody,
)
from eventpass.routes.deps import envelope, to_http, get_service, get_dispatcher
from eventpass.security.auth import require_api_key, get_actor_id
from eventpass.services.outbox_service import OutboxDispatcher
from eventpass.services.refund_service import RefundService

router = APIRouter(prefix="/api/v1/refunds", tags=["refunds"], dependencies=[Depends(require_api_key)])


@router.post("", status_code=status.HTTP_201_CREATED)
async def submit_refund(
    body: SubmitRefundBody,
    request: Request,
    background_tasks: BackgroundTasks,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key", max_length=100),
    service: RefundService = Depends(get_service),
    dispatcher: OutboxDispatcher = Depends(get_dispatcher),
) -> Response:
    """File a refund request for an eligible ticket.

    Send an Idempotency-Key header to retry safely. Replays return 200 with
    the original request and the Idempotent-Replayed: true header.
    """
    try:
        refund, was_replayed = service.submit_request(
            body.ticket_id, body.reason, body.user_note, idempotency_key
        )
    except RefundError as exc:
        raise to_http(exc) from exc

    background_tasks.add_task(dispatcher.dispatch_pending)
    status_code = status.HTTP_200_OK if was_replayed else status.HTTP_201_CREATED
    headers = {"Idempotent-Replayed": "true"} if was_replayed else {}
    return JSONResponse(
        content=envelope(refund.model_dump(mode="json"), request),
        status_code=status_code,
        headers=headers,
        background=background_tasks,
    )


@router.get("")
async def list_refunds(
    request: Request,
    status_filter: Optional[RefundStatus] = Query(None, alias="status"),
    event_id: Optional[str] = None,
    user_id: Optional[str] = None,
    service: RefundService = Depends(get_service),
) -> dict:
    """List refund requests newest first, optionally filtered by status, event or user."""
    results = service.list_requests(status=status_filter, event_id=event_id, user_id=user_id)
    return envelope([r.model_dump(mode="json") for r in results], request)


@router.get("/summary")
async def refund_summary(
    request: Request,
    month: Optional[str] = Query(None, pattern=r"^\d{4}-(0[1-9]|1[0-2])$"),
    event_id: Optional[str] = None,
    service: RefundService = Depends(get_service),
) -> dict:
    """Dashboard counts plus the approved total for a month (YYYY-MM, default current)."""
    as_of = None
    if month:
        year, month_number = (int(part) for part in month.split("-"))
        as_of = datetime(year, month_number, 1, tzinfo=timezone.utc)
    result = service.summary(as_of=as_of, event_id=event_id)
    return envelope(result.model_dump(mode="json"), request)


@router.get("/{refund_id}")
async def get_refund(
    refund_id: str,
    request: Request,
    service: RefundService = Depends(get_service),
) -> dict:
    result = service.get_request(refund_id)
    if result is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": {"code": "REFUND_NOT_FOUND", "message": f"Refund {refund_id} not found"}},
        )
    return envelope(result.model_dump(mode="json"), request)


@router.post("/{refund_id}/cancel")
async def cancel_refund(
    refund_id: str,
    request: Request,
    background_tasks: BackgroundTasks,
    actor_id: Optional[str] = Depends(get_actor_id),
    service: RefundService = Depends(get_service),
    dispatcher: OutboxDispatcher = Depends(get_dispatcher),
) -> dict:
    """Withdraw a pending request."""
    try:
        result = service.cancel_request(refund_id, user_id=actor_id)
    except RefundError as exc:
        raise to_http(exc) from exc
    background_tasks.add_task(dispatcher.dispatch_pending)
    return envelope(result.model_dump(mode="json"), request)


@router.post("/{refund_id}/approve")
async def approve_refund(
    refund_id: str,
    body: ApproveBody,
    request: Request,
    background_tasks: BackgroundTasks,
    actor_id: Optional[str] = Depends(get_actor_id),
    service: RefundService = Depends(get_service),
    dispatcher: OutboxDispatcher = Depends(get_dispatcher),
) -> dict:
    """Approve a pending request in full, or in part when approved_amount is given."""
    try:
        result = service.approve(
            refund_id,
            approved_amount=body.approved_amount,
            note=body.note,
            reviewer_id=body.reviewer_id or actor_id,
        )
    except RefundError as exc:
        raise to_http(exc) from exc
    background_tasks.add_task(dispatcher.dispatch_pending)
    return envelope(result.model_dump(mode="json"), request)


@router.post("/{refund_id}/reject")
async def reject_refund(
    refund_id: str,
    body: RejectBody,
    request: Request,
    background_tasks: BackgroundTasks,
    actor_id: Optional[str] = Depends(get_actor_id),
    service: RefundService = Depends(get_service),
    dispatcher: OutboxDispatcher = Depends(get_dispatcher),
) -> dict:
    """Reject a pending request; the note is shown to the requester."""
    try:
        result = service.reject(refund_id, body.note, reviewer_id=body.reviewer_id or actor_id)
    except RefundError as exc:
        raise to_http(exc) from exc
    background_tasks.add_task(dispatcher.dispatch_pending)
    return envelope(result.model_dump(mode="json"), request)


@router.post("/{refund_id}/payout/start")
async def start_payout(
    refund_id: str,
    request: Request,
    background_tasks: BackgroundTasks,
    service: RefundService = Depends(get_service),
    dispatcher: OutboxDispatcher = Depends(get_dispatcher),
) -> dict:
    """Called by the payment collaborator when it begins paying out an approved refund."""
    try:
        result = service.begin_payout(refund_id)
    except RefundError as exc:
        raise to_http(exc) from exc
    background_tasks.add_task(dispatcher.dispatch_pending)
    return envelope(result.model_dump(mode="json"), request)


@router.post("/{refund_id}/payout/confirm")
async def confirm_payout(
    refund_id: str,
    body: PayoutConfirmBody,
    request: Request,
    background_tasks: BackgroundTasks,
    service: RefundService = Depends(get_service),
    dispatcher: OutboxDispatcher = Depends(get_dispatcher),
) -> dict:
    try:
        result = service.confirm_payout(refund_id, body.reference)
    except RefundError as exc:
        raise to_http(exc) from exc
    background_tasks.add_task(dispatcher.dispatch_pending)
    return envelope(result.model_dump(mode="json"), request)


@router.post("/{refund_id}/payout/fail")
async def fail_payout(
    refund_id: str,
    body: PayoutFailBody,
    request: Request,
    background_tasks: BackgroundTasks,
    service: RefundService = Depends(get_service),
    dispatcher: OutboxDispatcher = Depends(get_dispatcher),
) -> dict:
    try:
        result = service.fail_payout(refund_id, body.reason)
    except RefundError as exc:
        raise to_http(exc) from exc
    background_tasks.add_task(dispatcher.dispatch_pending)
    return envelope(result.model_dump(mode="json"), request)
