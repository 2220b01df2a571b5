"""
Security middleware for the Flex.IA API.
Adds security headers and request audit logging.
"""

import time

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from flexia.core.config import settings
from flexia.core.logging import get_logger

logger = get_logger(__name__)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Add security headers to all responses.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"

        # JSON API only; docs pages need the relaxed policy in development
        if not settings.DEBUG:
            response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"

        return response


class AuditLoggingMiddleware(BaseHTTPMiddleware):
    """
    Log API requests for audit purposes.
    """

    SENSITIVE_PATHS = ["/auth/", "/admin/", "/affiliate/commission"]

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        start_time = time.time()

        response = await call_next(request)

        duration_ms = (time.time() - start_time) * 1000

        path = request.url.path
        is_sensitive = any(s in path for s in self.SENSITIVE_PATHS)

        log_data = {
            "method": request.method,
            "path": path,
            "status": response.status_code,
            "duration_ms": round(duration_ms, 2),
            "client_ip": request.client.host if request.client else "unknown",
        }

        if response.status_code >= 500:
            logger.error(f"API Request: {log_data}")
        elif is_sensitive or response.status_code >= 400:
            logger.info(f"API Request: {log_data}")

        return response
