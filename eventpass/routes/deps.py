"""Shared route helpers: response envelope, error translation, service lookup."""
from datetime import datetime, timezone
from fastapi import HTTPException, Request

from eventpass.errors import RefundError
from eventpass.repository.catalog import InMemoryCatalog
from eventpass.services.outbox_service import OutboxDispatcher
from eventpass.services.refund_service import RefundService


def envelope(data, request: Request) -> dict:
    return {
        "data": data,
        "meta": {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "request_id": getattr(request.state, "request_id", "unknown"),
        },
    }


def to_http(exc: RefundError) -> HTTPException:
    return HTTPException(
        status_code=exc.http_status,
        detail={"error": {"code": exc.code, "message": exc.message, "details": exc.details}},
    )


def get_service(request: Request) -> RefundService:
    return request.app.state.refund_service


def get_catalog(request: Request) -> InMemoryCatalog:
    return request.app.state.catalog


def get_dispatcher(request: Request) -> OutboxDispatcher:
    return request.app.state.dispatcher
