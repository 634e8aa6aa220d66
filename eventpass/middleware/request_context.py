import re
import time
import json
import uuid
import logging
from datetime import datetime, timezone
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("eventpass.access")

_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._-]{1,64}$")
_REFUND_PATH = re.compile(r"^/api/v1/refunds/(RF-[A-Z0-9]+)")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Attach a request id to request.state and echo it as X-Request-ID.

    A well-formed incoming X-Request-ID is reused so callers can correlate retries.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        incoming = request.headers.get("X-Request-ID", "")
        request_id = incoming if _VALID_REQUEST_ID.match(incoming) else str(uuid.uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """One JSON access line per request. Never logs the API key value."""

    async def dispatch(self, request: Request, call_next) -> Response:
        start = time.monotonic()
        response = await call_next(request)
        duration_ms = round((time.monotonic() - start) * 1000)

        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "request_id": getattr(request.state, "request_id", "unknown"),
            "method": request.method,
            "path": str(request.url.path),
            "status_code": response.status_code,
            "duration_ms": duration_ms,
            "auth": "present" if "X-API-Key" in request.headers else "missing",
        }
        match = _REFUND_PATH.match(request.url.path)
        if match:
            log_entry["refund_id"] = match.group(1)

        level = logging.WARNING if response.status_code >= 400 else logging.INFO
        logger.log(level, json.dumps(log_entry))
        return response
