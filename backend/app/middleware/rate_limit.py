"""Rate limiting middleware using Redis.

Protects the API from abuse with per-user (JWT `sub`) or per-IP limits,
plus a tighter limit on task creation. Uses a sliding window kept in a
Redis sorted set per key.
"""

import logging
import time
from typing import Callable, Optional

from fastapi import Request, Response, status
from starlette.middleware.base import BaseHTTPMiddleware

from app.auth.jwt import decode_token
from app.middleware.exceptions import create_error_response
from app.utils.redis import get_redis

logger = logging.getLogger(__name__)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Rate limiting middleware with Redis backend.

    Features:
    - Per-user rate limits (authenticated requests)
    - Per-IP rate limits (unauthenticated requests)
    - Sliding window algorithm
    - Custom limits per (method, path) pair
    """

    def __init__(
        self,
        app,
        default_limit: int = 100,  # requests
        default_window: int = 900,  # seconds
        exempt_paths: Optional[list[str]] = None,
        custom_limits: Optional[dict[tuple[str, str], tuple[int, int]]] = None,
    ):
        super().__init__(app)
        self.default_limit = default_limit
        self.default_window = default_window
        self.exempt_paths = exempt_paths or ["/health", "/docs", "/openapi.json", "/ws"]

        # (METHOD, exact path) → (limit, window seconds)
        self.custom_limits = custom_limits or {}

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Check rate limit before processing request."""

        # Skip exempt paths
        if any(request.url.path.startswith(path) for path in self.exempt_paths):
            return await call_next(request)

        bucket, limit, window = self._get_limit_for(request.method, request.url.path)

        # Determine rate limit key (user ID or IP)
        key = f"{bucket}:{self._get_rate_limit_key(request)}"

        allowed, remaining, reset_time = await self._check_rate_limit(
            key, limit, window
        )

        if not allowed:
            retry_after = max(int(reset_time - time.time()), 1)
            return create_error_response(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                message=f"Too many requests, please try again in {retry_after} seconds",
                error_code="RATE_LIMITED",
                headers={
                    "X-RateLimit-Limit": str(limit),
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Reset": str(int(reset_time)),
                    "Retry-After": str(retry_after),
                },
            )

        # Process request
        response = await call_next(request)

        # Add rate limit headers
        response.headers["X-RateLimit-Limit"] = str(limit)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        response.headers["X-RateLimit-Reset"] = str(int(reset_time))

        return response

    def _get_limit_for(self, method: str, path: str) -> tuple[str, int, int]:
        """Return (bucket name, limit, window) for a request."""
        normalized = path.rstrip("/") or "/"
        custom = self.custom_limits.get((method.upper(), normalized))
        if custom:
            limit, window = custom
            return f"{method.lower()}{normalized}", limit, window
        return "api", self.default_limit, self.default_window

    def _get_rate_limit_key(self, request: Request) -> str:
        """Get rate limit key (user ID or IP address)."""
        auth_header = request.headers.get("authorization", "")
        if auth_header.startswith("Bearer "):
            user_id = decode_token(auth_header[7:]).get("sub")
            if user_id:
                return f"user:{user_id}"

        # Check for X-Forwarded-For (load balancer)
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            ip = forwarded.split(",")[0].strip()
        else:
            ip = request.client.host if request.client else "unknown"

        return f"ip:{ip}"

    async def _check_rate_limit(
        self, key: str, limit: int, window: int
    ) -> tuple[bool, int, float]:
        """Check rate limit using sliding window algorithm.

        Returns:
            (allowed, remaining, reset_time)
        """
        current_time = time.time()
        window_start = current_time - window

        # Redis key for this rate limit
        redis_key = f"ratelimit:{key}"

        try:
            redis_client = await get_redis()

            # Remove old entries outside the window
            await redis_client.zremrangebyscore(redis_key, 0, window_start)

            # Count requests in current window
            count = await redis_client.zcard(redis_key)

            if count >= limit:
                # Get oldest entry to calculate reset time
                oldest = await redis_client.zrange(redis_key, 0, 0, withscores=True)
                if oldest:
                    reset_time = oldest[0][1] + window
                else:
                    reset_time = current_time + window
                return False, 0, reset_time

            # Add current request
            await redis_client.zadd(redis_key, {str(current_time): current_time})

            # Set expiry on the key (cleanup)
            await redis_client.expire(redis_key, window)

            remaining = limit - count - 1
            reset_time = current_time + window

            return True, remaining, reset_time

        except Exception as e:
            # If Redis fails, allow request (fail open)
            logger.error(f"Rate limit check failed: {e}")
            return True, limit, current_time + window
