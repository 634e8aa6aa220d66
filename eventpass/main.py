"""
FastAPI application entry point.

Builds the refund service and its collaborators, registers middleware (in
order), routes and exception handlers.
"""
import logging
from datetime import datetime
from typing import Callable, Optional
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from eventpass.config import is_production, get_cors_origins, get_default_policy, DEFAULT_CURRENCY, LOG_LEVEL
from eventpass.middleware import (
    SecurityHeadersMiddleware,
    RequestIDMiddleware,
    StructuredLoggingMiddleware,
)
from eventpass.repository.catalog import InMemoryCatalog
from eventpass.repository.store import InMemoryStore
from eventpass.routes.refunds import router as refunds_router
from eventpass.routes.tickets import router as tickets_router
from eventpass.routes.events import router as events_router
from eventpass.routes.outbox import router as outbox_router
from eventpass.services.outbox_service import OutboxDispatcher, log_notification, log_analytics, ANALYTICS_TOPICS
from eventpass.services.refund_service import RefundService, utc_now
from seed_data import load_seed_data

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


def create_app(
    store: Optional[InMemoryStore] = None,
    catalog: Optional[InMemoryCatalog] = None,
    clock: Callable[[], datetime] = utc_now,
    seed: bool = True,
) -> FastAPI:
    configure_logging()
    docs_url = None if is_production() else "/docs"
    redoc_url = None if is_production() else "/redoc"

    application = FastAPI(
        title="EventPass — Refund Workflow Service",
        description="Refund eligibility, organizer review and payout state for event tickets.",
        version="1.0.0",
        docs_url=docs_url,
        redoc_url=redoc_url,
    )

    # ── Collaborators ───────────────────────────────────────────────────────
    store = store if store is not None else InMemoryStore()
    catalog = catalog if catalog is not None else InMemoryCatalog()
    if seed:
        load_seed_data(catalog, store, now=clock())

    dispatcher = OutboxDispatcher(store)
    dispatcher.subscribe("*", log_notification)
    for topic in ANALYTICS_TOPICS:
        dispatcher.subscribe(topic, log_analytics)

    application.state.catalog = catalog
    application.state.dispatcher = dispatcher
    application.state.refund_service = RefundService(
        store,
        catalog,
        clock=clock,
        default_policy=get_default_policy(),
        currency=DEFAULT_CURRENCY,
    )

    # ── Middleware stack (last added runs first) ────────────────────────────
    application.add_middleware(SecurityHeadersMiddleware)
    application.add_middleware(StructuredLoggingMiddleware)
    application.add_middleware(RequestIDMiddleware)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=get_cors_origins(),
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT"],
        allow_headers=["Content-Type", "X-API-Key", "X-Actor-ID", "X-Request-ID", "Idempotency-Key"],
    )

    # ── Routes ──────────────────────────────────────────────────────────────
    application.include_router(refunds_router)
    application.include_router(tickets_router)
    application.include_router(events_router)
    application.include_router(outbox_router)

    # ── Exception handlers ───────────────────────────────────────────────────
    @application.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Never leak stack traces to clients."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"error": {"code": "INTERNAL_ERROR", "message": "An unexpected error occurred"}},
        )

    return application


app = create_app()
