"""
Rate limiting middleware for the Dekop store API
Uses in-memory storage with sliding window algorithm
"""
import time
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional, Tuple

from fastapi import Request, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse


class RateLimiter:
    """
    In-memory rate limiter using sliding window algorithm.

    State is per process; every worker keeps its own windows.
    """

    def __init__(self):
        # {identifier: [(timestamp, count), ...]}
        self._requests: Dict[str, list] = defaultdict(list)
        self._last_cleanup = time.time()
        self._cleanup_interval = 60  # seconds

    def _cleanup_old_entries(self, window_seconds: int = 60):
        """Remove entries older than the largest window we care about"""
        now = time.time()

        if now - self._last_cleanup < self._cleanup_interval:
            return

        cutoff = now - max(window_seconds, max(c.window_seconds for c in RATE_LIMITS.values())) * 2

        for identifier in list(self._requests.keys()):
            self._requests[identifier] = [
                (ts, count) for ts, count in self._requests[identifier]
                if ts > cutoff
            ]
            if not self._requests[identifier]:
                del self._requests[identifier]

        self._last_cleanup = now

    def is_allowed(
        self,
        identifier: str,
        max_requests: int,
        window_seconds: int = 60
    ) -> Tuple[bool, int, int]:
        """
        Check if a request is allowed under the rate limit.

        Returns:
            Tuple of (is_allowed, remaining_requests, retry_after_seconds)
        """
        self._cleanup_old_entries(window_seconds)

        now = time.time()
        window_start = now - window_seconds

        requests_in_window = [
            (ts, count) for ts, count in self._requests[identifier]
            if ts > window_start
        ]

        total_requests = sum(count for _, count in requests_in_window)

        if total_requests >= max_requests:
            # Calculate when the oldest request in window will expire
            if requests_in_window:
                oldest_timestamp = min(ts for ts, _ in requests_in_window)
                retry_after = int(oldest_timestamp + window_seconds - now) + 1
            else:
                retry_after = 1

            return False, 0, retry_after

        self._requests[identifier].append((now, 1))

        remaining = max_requests - total_requests - 1
        return True, remaining, 0

    def reset(self):
        """Drop all windows (used by tests)"""
        self._requests.clear()
        self._last_cleanup = time.time()


@dataclass(frozen=True)
class RateLimitConfig:
    max_requests: int
    window_seconds: int


# Rate limit configurations
RATE_LIMITS: Dict[str, RateLimitConfig] = {
    "PAYMENT": RateLimitConfig(max_requests=10, window_seconds=60),
    "ORDER_CREATE": RateLimitConfig(max_requests=5, window_seconds=60),
    "CART": RateLimitConfig(max_requests=30, window_seconds=60),
    "READ": RateLimitConfig(max_requests=100, window_seconds=60),
    "WEBHOOK": RateLimitConfig(max_requests=20, window_seconds=60),
    "TEST": RateLimitConfig(max_requests=5, window_seconds=300),
}

# Global rate limiter instance
rate_limiter = RateLimiter()

# Paths that are exempt from rate limiting
EXEMPT_PATHS = {
    "/",
    "/health",
    "/docs",
    "/openapi.json",
    "/redoc",
}


def get_client_identifier(request: Request) -> str:
    """Client IP as seen through Cloudflare / reverse proxies"""
    cf_ip = request.headers.get("cf-connecting-ip")
    if cf_ip:
        return cf_ip.strip()

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        # Take the first IP in the chain (original client)
        return forwarded_for.split(",")[0].strip()

    return "unknown"


def resolve_rate_limit(method: str, path: str) -> Optional[str]:
    """Pick the named limit that applies to a request, or None"""
    if path in EXEMPT_PATHS or method == "OPTIONS":
        return None
    if path.startswith("/api/v1/webhooks"):
        return "WEBHOOK"
    if path.startswith("/api/v1/payments"):
        return "PAYMENT"
    if path.startswith("/api/v1/maintenance"):
        return "TEST"
    if method == "POST" and path.rstrip("/") == "/api/v1/orders":
        return "ORDER_CREATE"
    if path.startswith("/api/v1/cart") and method != "GET":
        return "CART"
    if method in ("GET", "HEAD"):
        return "READ"
    return None


def rate_limit_exceeded_response(config: RateLimitConfig, retry_after: int) -> JSONResponse:
    reset_at = datetime.fromtimestamp(time.time() + retry_after, tz=timezone.utc)
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={
            "error": "Too Many Requests",
            "message": f"Rate limit exceeded. Please try again in {retry_after} seconds.",
            "retryAfter": retry_after,
        },
        headers={
            "X-RateLimit-Limit": str(config.max_requests),
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": reset_at.isoformat(),
            "Retry-After": str(retry_after),
        }
    )


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Middleware that applies a named rate limit per client IP.

    Limits (requests / window):
    - PAYMENT: 10/min, ORDER_CREATE: 5/min, CART: 30/min
    - READ: 100/min, WEBHOOK: 20/min, TEST: 5 per 5 min

    Headers returned:
    - X-RateLimit-Limit: Maximum requests per window
    - X-RateLimit-Remaining: Remaining requests in current window
    - X-RateLimit-Reset / Retry-After: when limited
    """

    async def dispatch(self, request: Request, call_next):
        limit_name = resolve_rate_limit(request.method, request.url.path)
        if limit_name is None:
            return await call_next(request)

        config = RATE_LIMITS[limit_name]
        identifier = f"{limit_name}:{get_client_identifier(request)}"

        is_allowed, remaining, retry_after = rate_limiter.is_allowed(
            identifier=identifier,
            max_requests=config.max_requests,
            window_seconds=config.window_seconds
        )

        if not is_allowed:
            # Return JSONResponse instead of raising so CORS headers still apply
            return rate_limit_exceeded_response(config, retry_after)

        response = await call_next(request)

        response.headers["X-RateLimit-Limit"] = str(config.max_requests)
        response.headers["X-RateLimit-Remaining"] = str(remaining)

        return response
