"""
Rate limiting middleware for API protection.

Per-client-IP sliding windows on top of the shared RateLimiter:
- Webhooks: WEBHOOK preset
- OAuth: AUTH preset
- Reads under /api/: READ preset
- Writes under /api/: WRITE preset
Health, metrics and docs are never limited.
"""

import time
import logging
from typing import Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from ..services.rate_limiter import RateLimiter, RateLimitConfig, RATE_LIMITS, get_rate_limiter

logger = logging.getLogger(__name__)

UNLIMITED_PATHS = {"/", "/api/health", "/api/metrics", "/metrics", "/docs", "/openapi.json"}
READ_METHODS = {"GET", "HEAD", "OPTIONS"}


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Sliding window rate limiting by client IP and endpoint group."""

    def __init__(self, app, limiter: Optional[RateLimiter] = None):
        super().__init__(app)
        self.limiter = limiter or get_rate_limiter()

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        group = self._get_limit_group(path, request.method)
        if not group:
            return await call_next(request)

        config: RateLimitConfig = RATE_LIMITS[group]
        client_ip = self._get_client_ip(request)
        result = self.limiter.check_rate_limit(f"{group.lower()}:{client_ip}", config)

        if not result.allowed:
            retry_after = max(0, int(result.reset_time - time.time()))
            logger.warning(f"Rate limit exceeded for {client_ip} on {path}")
            return JSONResponse(
                status_code=429,
                content={
                    "error": "Rate limit exceeded",
                    "retry_after": retry_after,
                    "limit": config.max_requests,
                    "window": config.window_seconds,
                },
                headers={"Retry-After": str(retry_after)},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(config.max_requests)
        response.headers["X-RateLimit-Remaining"] = str(result.remaining)
        response.headers["X-RateLimit-Reset"] = str(int(result.reset_time))
        return response

    def _get_limit_group(self, path: str, method: str) -> Optional[str]:
        """Name of the RATE_LIMITS preset for a request, or None for no limit."""
        if path in UNLIMITED_PATHS:
            return None
        if path.startswith("/api/webhooks/"):
            return "WEBHOOK"
        if path.startswith("/api/oauth/"):
            return "AUTH"
        if path.startswith("/api/"):
            return "READ" if method.upper() in READ_METHODS else "WRITE"
        return None

    def _get_client_ip(self, request: Request) -> str:
        """Extract client IP from request, checking proxy headers."""
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip

        return request.client.host if request.client else "unknown"
