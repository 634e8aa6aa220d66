from .security_headers import SecurityHeadersMiddleware
from .request_context import RequestIDMiddleware, StructuredLoggingMiddleware

__all__ = [
    "SecurityHeadersMiddleware",
    "RequestIDMiddleware",
    "StructuredLoggingMiddleware",
]
