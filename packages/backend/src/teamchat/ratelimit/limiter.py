"""Fixed-window rate limiting with lazy reset.

Each key gets a counter and a reset time. The first check after reset_at
opens a new window; there is no timer driving resets. cleanup() only
reclaims memory for keys nobody has checked in a while.

State is process-local. Behind several workers each process counts on its
own, so callers should depend on RateLimiter, not on the in-memory class,
and a shared-store implementation can be dropped in later.
"""

import abc
import asyncio
import math
import time
from dataclasses import dataclass
from typing import Callable, Optional

import structlog

logger = structlog.get_logger()


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: int  # epoch milliseconds
    retry_after_seconds: Optional[int] = None


@dataclass
class RateLimitEntry:
    count: int
    reset_at: int


class RateLimiter(abc.ABC):
    """Interface every limiter implementation honours."""

    @abc.abstractmethod
    def check(self, key: str, limit: int, window_ms: int) -> RateLimitResult:
        """Count one request for key and report whether it is allowed."""


class InMemoryRateLimiter(RateLimiter):
    """Per-process limiter backed by a dict."""

    def __init__(self, clock: Callable[[], int] = _now_ms):
        self._clock = clock
        self._entries: dict[str, RateLimitEntry] = {}

    @staticmethod
    def _store_key(key: str) -> str:
        return f"rate_limit:{key}"

    def check(self, key: str, limit: int, window_ms: int) -> RateLimitResult:
        now = self._clock()
        store_key = self._store_key(key)

        entry = self._entries.get(store_key)
        if entry is None or now >= entry.reset_at:
            entry = RateLimitEntry(count=0, reset_at=now + window_ms)
            self._entries[store_key] = entry

        if entry.count >= limit:
            return RateLimitResult(
                allowed=False,
                limit=limit,
                remaining=0,
                reset_at=entry.reset_at,
                retry_after_seconds=math.ceil((entry.reset_at - now) / 1000),
            )

        entry.count += 1
        return RateLimitResult(
            allowed=True,
            limit=limit,
            remaining=limit - entry.count,
            reset_at=entry.reset_at,
        )

    def cleanup(self) -> int:
        """Drop expired entries. Returns how many were removed."""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if now >= e.reset_at]
        for k in expired:
            del self._entries[k]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)

    async def run_cleanup_loop(self, interval_seconds: float) -> None:
        """Periodically reclaim memory. Cancel the task to stop it."""
        while True:
            await asyncio.sleep(interval_seconds)
            removed = self.cleanup()
            if removed:
                logger.debug("ratelimit.cleanup", removed=removed, remaining=len(self))


def rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    """Standard rate-limit response headers for a check result."""
    headers = {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(result.reset_at),
    }
    if result.retry_after_seconds:
        headers["Retry-After"] = str(result.retry_after_seconds)
    return headers


# Shared instance for the app process
rate_limiter = InMemoryRateLimiter()
