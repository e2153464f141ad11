"""Redis pub/sub: event broadcasting from services to subscribers.

Redis pub/sub is fire-and-forget. If no one is listening, the message is
lost. That's fine for live UI updates: clients can always query the API
to catch up, and the mutation behind every event is already committed.

Channel naming: {prefix}{topic}, e.g. teamchat:thread:42
"""

import json
from typing import Any, Optional

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError

from teamchat.config import settings

logger = structlog.get_logger()

# Global Redis connection pool (initialized in lifespan)
_redis: Optional[aioredis.Redis] = None
_publisher: Optional["EventPublisher"] = None


class PublishError(Exception):
    """Raised when the transport rejects or cannot receive a publish."""


class EventPublisher:
    """Publishes events on topics over a single Redis connection pool.

    publish() awaits each PUBLISH before returning, so events on one topic
    reach Redis in call order. Nothing here waits for subscribers.
    """

    def __init__(self, redis: aioredis.Redis, prefix: Optional[str] = None):
        self.redis = redis
        self.prefix = settings.realtime_channel_prefix if prefix is None else prefix

    def channel_name(self, topic: str) -> str:
        return f"{self.prefix}{topic}"

    @staticmethod
    def encode(event_name: str, payload: Any) -> str:
        return json.dumps({"event": event_name, "data": payload}, default=str)

    async def publish(self, topic: str, event_name: str, payload: Any) -> None:
        """Publish one event. Raises PublishError if Redis is unreachable."""
        message = self.encode(event_name, payload)
        try:
            await self.redis.publish(self.channel_name(topic), message)
        except (RedisError, OSError) as e:
            raise PublishError(f"Failed to publish {event_name} on {topic}: {e}") from e

    async def broadcast(self, topic: str, event_name: str, payload: Any) -> bool:
        """Best-effort publish used after a committed mutation.

        Returns False instead of raising; the failure is logged.
        """
        try:
            await self.publish(topic, event_name, payload)
        except PublishError as e:
            logger.warning(
                "realtime.publish_failed",
                topic=topic,
                event_name=event_name,
                error=str(e),
            )
            return False
        return True


class DisabledPublisher(EventPublisher):
    """Stand-in used when Redis never came up at startup.

    Every publish fails, so broadcast() logs and carries on.
    """

    def __init__(self):
        self.redis = None
        self.prefix = settings.realtime_channel_prefix

    async def publish(self, topic: str, event_name: str, payload: Any) -> None:
        raise PublishError("Redis not initialized")


async def init_redis() -> aioredis.Redis:
    """Initialize the Redis connection pool."""
    global _redis, _publisher
    _redis = aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    # Verify connection
    await _redis.ping()
    _publisher = EventPublisher(_redis)
    return _redis


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _redis, _publisher
    if _redis:
        await _redis.aclose()
        _redis = None
    _publisher = None


def get_redis() -> aioredis.Redis:
    """Get the Redis connection (must be initialized first)."""
    if _redis is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis


def get_publisher() -> EventPublisher:
    """FastAPI dependency: the shared publisher, or a disabled one without Redis."""
    if _publisher is None:
        return DisabledPublisher()
    return _publisher
