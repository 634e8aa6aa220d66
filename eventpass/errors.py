"""
Refund workflow errors.

Each error carries a stable code, a human-readable message, optional details
and the HTTP status the API layer responds with.
"""
from __future__ import annotations


class RefundError(Exception):
    """Base class for every refusal raised by the refund workflow."""

    code = "REFUND_ERROR"
    http_status = 422

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class NotEligible(RefundError):
    """Refund disallowed for this ticket right now. Not retryable."""

    code = "NOT_ELIGIBLE"
    http_status = 422


class InvalidStateTransition(RefundError):
    """The request is not in a status that allows the operation. Re-fetch before retrying."""

    code = "INVALID_STATE_TRANSITION"
    http_status = 409


class InvalidAmount(RefundError):
    code = "INVALID_AMOUNT"
    http_status = 422


class InvalidDecision(RefundError):
    code = "REVIEWER_NOTE_REQUIRED"
    http_status = 422


class ServiceUnavailable(RefundError):
    """The ticket/event catalog could not be reached. Retryable by the caller."""

    code = "SERVICE_UNAVAILABLE"
    http_status = 503


class RequestNotFound(RefundError):
    code = "REFUND_NOT_FOUND"
    http_status = 404


class TicketNotFound(RefundError):
    code = "TICKET_NOT_FOUND"
    http_status = 404
