from teamchat.ratelimit.limiter import (
    InMemoryRateLimiter,
    RateLimiter,
    RateLimitResult,
    rate_limit_headers,
)

__all__ = [
    "InMemoryRateLimiter",
    "RateLimiter",
    "RateLimitResult",
    "rate_limit_headers",
]
