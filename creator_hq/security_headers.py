"""
Security Headers Middleware for FastAPI

Adds security headers to all responses:
- X-Frame-Options / Content-Security-Policy frame-ancestors: clickjacking
- X-Content-Type-Options: MIME sniffing
- Referrer-Policy: referrer leakage
- Strict-Transport-Security: HTTPS only (production)
- Permissions-Policy: browser features the API never needs
- Cache-Control: no caching of API responses
"""

import logging
from typing import Callable, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

logger = logging.getLogger(__name__)


def get_csp_policy(frontend_origins: list[str]) -> str:
    """
    Content-Security-Policy for a JSON API.
    Only the configured frontend origins may frame responses.
    """
    frame_ancestors = " ".join(["'self'"] + frontend_origins)
    directives = [
        "default-src 'none'",
        f"frame-ancestors {frame_ancestors}",
        "base-uri 'none'",
        "form-action 'self'",
    ]
    return "; ".join(directives)


def get_permissions_policy() -> str:
    features = [
        "accelerometer=()",
        "camera=()",
        "geolocation=()",
        "gyroscope=()",
        "magnetometer=()",
        "microphone=()",
        "payment=()",
        "usb=()",
        "interest-cohort=()",  # Disable FLoC tracking
    ]
    return ", ".join(features)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app,
        frontend_origins: Optional[list[str]] = None,
        is_production: bool = False,
        exclude_paths: Optional[list[str]] = None,
    ):
        super().__init__(app)
        self.exclude_paths = exclude_paths or []
        self.is_production = is_production
        self.csp = get_csp_policy(frontend_origins or [])
        self.permissions_policy = get_permissions_policy()

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        # Skip security headers for excluded paths (e.g., health checks)
        path = request.url.path
        if any(path.startswith(excluded) for excluded in self.exclude_paths):
            return response

        response.headers["X-Frame-Options"] = "SAMEORIGIN"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Content-Security-Policy"] = self.csp
        response.headers["Permissions-Policy"] = self.permissions_policy
        response.headers["X-Permitted-Cross-Domain-Policies"] = "none"

        if self.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains; preload"

        if "Cache-Control" not in response.headers:
            response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate"

        return response
