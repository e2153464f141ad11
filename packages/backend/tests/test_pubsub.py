"""Tests for the event publisher.

Learn: publish() is strict and raises PublishError; broadcast() is the
fire-and-forget wrapper services use after a commit. Redis is replaced
with a tiny fake that records PUBLISH calls.
"""

import json

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from teamchat.realtime.pubsub import (
    DisabledPublisher,
    EventPublisher,
    PublishError,
    get_publisher,
    get_redis,
)


class FakeRedis:
    def __init__(self, fail: bool = False):
        self.published: list[tuple[str, str]] = []
        self.fail = fail

    async def publish(self, channel, message):
        if self.fail:
            raise RedisConnectionError("Connection refused")
        self.published.append((channel, message))
        return 0


@pytest.mark.asyncio
async def test_publish_prefixes_channel_and_wraps_payload():
    redis = FakeRedis()
    publisher = EventPublisher(redis, prefix="teamchat:")

    await publisher.publish("thread:1", "message:sent", {"id": 5})

    assert len(redis.published) == 1
    channel, raw = redis.published[0]
    assert channel == "teamchat:thread:1"
    assert json.loads(raw) == {"event": "message:sent", "data": {"id": 5}}


@pytest.mark.asyncio
async def test_publish_preserves_order_per_topic():
    redis = FakeRedis()
    publisher = EventPublisher(redis, prefix="")

    for i in range(5):
        await publisher.publish("thread:1", "message:sent", {"seq": i})

    seqs = [json.loads(raw)["data"]["seq"] for _, raw in redis.published]
    assert seqs == [0, 1, 2, 3, 4]


@pytest.mark.asyncio
async def test_publish_raises_when_transport_down():
    publisher = EventPublisher(FakeRedis(fail=True), prefix="")
    with pytest.raises(PublishError):
        await publisher.publish("thread:1", "message:sent", {})


@pytest.mark.asyncio
async def test_broadcast_swallows_transport_failure():
    publisher = EventPublisher(FakeRedis(fail=True), prefix="")
    assert await publisher.broadcast("thread:1", "message:sent", {}) is False


@pytest.mark.asyncio
async def test_broadcast_reports_success():
    redis = FakeRedis()
    publisher = EventPublisher(redis, prefix="")
    assert await publisher.broadcast("project:3", "task:created", {"id": 1}) is True
    assert redis.published[0][0] == "project:3"


def test_encode_stringifies_non_json_values():
    import uuid

    user_id = uuid.uuid4()
    decoded = json.loads(EventPublisher.encode("notification", {"userId": user_id}))
    assert decoded["data"]["userId"] == str(user_id)


@pytest.mark.asyncio
async def test_disabled_publisher_without_redis():
    """Before init_redis() the dependency hands out a publisher that always fails."""
    publisher = get_publisher()
    assert isinstance(publisher, DisabledPublisher)
    with pytest.raises(PublishError):
        await publisher.publish("thread:1", "message:sent", {})
    assert await publisher.broadcast("thread:1", "message:sent", {}) is False


def test_get_redis_requires_init():
    with pytest.raises(RuntimeError):
        get_redis()
