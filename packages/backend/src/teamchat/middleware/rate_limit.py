"""Rate limiting middleware: per API key, falling back to client IP.

Uses the process-local RateLimiter. Blocked requests get a 429 with
Retry-After; allowed ones carry X-RateLimit-* headers so integrations can
pace themselves. Health checks and WebSocket upgrades are not counted.
"""

from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from teamchat.ratelimit.limiter import RateLimiter, rate_limit_headers

EXEMPT_PATHS = ("/api/v1/health",)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Fixed-window limit per caller key."""

    def __init__(
        self,
        app,
        limiter: Optional[RateLimiter] = None,
        limit: int = 1000,
        window_ms: int = 60 * 60 * 1000,
    ):
        super().__init__(app)
        if limiter is None:
            from teamchat.ratelimit.limiter import rate_limiter

            limiter = rate_limiter
        self.limiter = limiter
        self.limit = limit
        self.window_ms = window_ms

    @staticmethod
    def caller_key(request: Request) -> str:
        api_key = request.headers.get("x-api-key")
        if api_key:
            return f"key:{api_key}"
        client_ip = request.client.host if request.client else "unknown"
        return f"ip:{client_ip}"

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path.startswith(EXEMPT_PATHS):
            return await call_next(request)

        result = self.limiter.check(self.caller_key(request), self.limit, self.window_ms)
        headers = rate_limit_headers(result)

        if not result.allowed:
            return JSONResponse(
                status_code=429,
                content={"detail": "Rate limit exceeded. Try again later."},
                headers=headers,
            )

        response = await call_next(request)
        response.headers.update(headers)
        return response
