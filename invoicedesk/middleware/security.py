"""
Security headers middleware.
"""
import os
from typing import Callable, List

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from invoicedesk.config import get_settings


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds standard hardening headers to every API response."""

    ENABLE_HSTS = os.getenv("ENABLE_HSTS", "false").lower() == "true"
    HSTS_MAX_AGE = 31536000

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if self.ENABLE_HSTS:
            response.headers["Strict-Transport-Security"] = f"max-age={self.HSTS_MAX_AGE}; includeSubDomains"

        return response


def get_cors_origins() -> List[str]:
    """Origins allowed to call the API from a browser."""
    return get_settings().cors_origins
