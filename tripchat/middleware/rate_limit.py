"""
Rate Limit Middleware

Simple in-memory rate limiting using sliding window.
"""

from typing import Callable, Tuple

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from tripchat.config import settings
from tripchat.realtime.throttle import SendThrottle
from tripchat.services.auth_service import AuthService

EXEMPT_PATHS = {"/health", "/", "/docs", "/redoc", "/openapi.json"}


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Rate limiting middleware using sliding window algorithm.

    SECURITY: Protects against brute force and DoS attacks.
    Uses IP-based limiting for unauthenticated requests and
    user-based limiting for authenticated requests.

    Socket.IO traffic is not covered here; sends are throttled per
    connection by the chat gateway.
    """

    def __init__(self, app):
        super().__init__(app)
        self.window_size = 60  # 1 minute window
        self.auth_service = AuthService()
        self.user_limiter = SendThrottle(settings.rate_limit_auth_per_minute, self.window_size)
        self.ip_limiter = SendThrottle(settings.rate_limit_per_minute, self.window_size)

    def _get_key(self, request: Request) -> Tuple[str, SendThrottle]:
        """
        Get rate limit key and limiter based on request.

        Returns (key, limiter) tuple.
        """
        authorization = request.headers.get("Authorization", "")
        if authorization.startswith("Bearer "):
            user_id, _ = self.auth_service.verify_token(authorization[7:])
            if user_id:
                return f"user:{user_id}", self.user_limiter

        # Fall back to IP-based limiting
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            client_ip = forwarded.split(",")[0].strip()
        else:
            client_ip = request.client.host if request.client else "unknown"

        return f"ip:{client_ip}", self.ip_limiter

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request with rate limiting."""
        if request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        key, limiter = self._get_key(request)

        if not limiter.allow(key):
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    "detail": "Rate limit exceeded. Please try again later.",
                    "retry_after_seconds": self.window_size
                },
                headers={"Retry-After": str(self.window_size)}
            )

        return await call_next(request)
