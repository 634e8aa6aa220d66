"""Outbox endpoint — GET /api/v1/outbox"""
from typing import Optional
from fastapi import APIRouter, Depends, Request
from eventpass.routes.deps import envelope, get_service
from eventpass.security.auth import require_api_key
from eventpass.services.outbox_service import get_outbox_messages
from eventpass.services.refund_service import RefundService

router = APIRouter(prefix="/api/v1/outbox", tags=["outbox"])


@router.get("")
async def get_outbox(
    request: Request,
    refund_id: Optional[str] = None,
    topic: Optional[str] = None,
    service: RefundService = Depends(get_service),
    _: str = Depends(require_api_key),
) -> dict:
    """Recorded outbound messages, optionally filtered by refund_id or topic."""
    messages = get_outbox_messages(service.store, refund_id=refund_id, topic=topic)
    return envelope([m.model_dump(mode="json") for m in messages], request)
