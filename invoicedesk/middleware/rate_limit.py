"""
Rate limiting for the upload endpoint using slowapi.
"""
import os

import structlog
from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from invoicedesk.config import get_settings

logger = structlog.get_logger(__name__)


def get_client_identifier(request: Request) -> str:
    """Identify the caller by forwarded address, falling back to the peer IP."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return get_remote_address(request)


# In-memory storage unless a shared backend is configured
RATE_LIMIT_STORAGE_URI = os.getenv("RATE_LIMIT_STORAGE_URI")
if RATE_LIMIT_STORAGE_URI:
    limiter = Limiter(key_func=get_client_identifier, storage_uri=RATE_LIMIT_STORAGE_URI)
else:
    limiter = Limiter(key_func=get_client_identifier)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """Render rate limit errors in the common error envelope."""
    logger.warning(
        "rate_limit_exceeded",
        client=get_client_identifier(request),
        path=request.url.path,
        limit=str(exc.detail),
    )
    retry_after = 60
    return JSONResponse(
        status_code=429,
        content={
            "error": True,
            "kind": "rate_limited",
            "error_code": "IDK-429",
            "message": "Too many requests. Please slow down.",
            "details": {"limit": str(exc.detail), "retry_after_seconds": retry_after},
        },
        headers={"Retry-After": str(retry_after)},
    )


def upload_rate_limit():
    """Rate limit decorator for upload endpoints."""
    return limiter.limit(lambda: get_settings().upload_rate_limit)
