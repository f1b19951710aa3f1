"""
Middleware module initialization.
"""
from invoicedesk.middleware.logging import (
    CorrelationIdMiddleware,
    RequestLoggingMiddleware,
    get_correlation_id,
    redact_sensitive_data,
    log_performance,
    add_correlation_id_processor,
    redact_sensitive_processor,
)
from invoicedesk.middleware.rate_limit import (
    limiter,
    rate_limit_exceeded_handler,
    upload_rate_limit,
)
from invoicedesk.middleware.security import SecurityHeadersMiddleware

__all__ = [
    "CorrelationIdMiddleware",
    "RequestLoggingMiddleware",
    "get_correlation_id",
    "redact_sensitive_data",
    "log_performance",
    "add_correlation_id_processor",
    "redact_sensitive_processor",
    "limiter",
    "rate_limit_exceeded_handler",
    "upload_rate_limit",
    "SecurityHeadersMiddleware",
]
