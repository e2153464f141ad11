"""WebSocket endpoint: live event delivery to clients.

Clients connect to /ws?topics=thread:1,notifications:<user>&token=JWT.
The handler:
1. Authenticates via the token query param (required outside development)
2. Refuses notifications:/user: topics of other users (4003)
3. Subscribes to the Redis channel of every requested topic
4. Forwards each Redis message to the socket as-is ({"event", "data"})
5. Accepts ping and typing:start / typing:stop frames from the client

A client that joins late computes the same topic names the services
publish on, so it only misses events sent before it subscribed.
"""

import asyncio
import json

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from teamchat.config import settings
from teamchat.events.types import TYPING_START, TYPING_STOP, parse_topic
from teamchat.realtime.pubsub import get_publisher, get_redis

logger = structlog.get_logger()
router = APIRouter()

CLIENT_EVENTS = {TYPING_START, TYPING_STOP}

# Topics carrying one user's private events; only that user may subscribe
PERSONAL_TOPIC_KINDS = {"notifications", "user"}


def parse_topics(raw: str) -> list[str]:
    """Comma-separated topics, validated and deduplicated in order."""
    topics: list[str] = []
    for part in raw.split(","):
        topic = part.strip()
        if not topic:
            continue
        parse_topic(topic)
        if topic not in topics:
            topics.append(topic)
    return topics


def foreign_topics(topics: list[str], user_id) -> list[str]:
    """Personal topics in the list that belong to someone other than user_id."""
    owner = str(user_id) if user_id else None
    foreign = []
    for topic in topics:
        kind, entity_id = parse_topic(topic)
        if kind in PERSONAL_TOPIC_KINDS and entity_id != owner:
            foreign.append(topic)
    return foreign


@router.websocket("/ws")
async def events_websocket(websocket: WebSocket):
    # ── Authentication ──────────────────────────────────────
    token = websocket.query_params.get("token")
    user_id = None

    if not token and settings.environment != "development":
        await websocket.close(code=4001, reason="Authentication required")
        return

    if token:
        from teamchat.auth.dependencies import identity_from_token
        from teamchat.auth.jwt import TokenError

        try:
            user_id = identity_from_token(token).user_id
        except TokenError:
            await websocket.close(code=4001, reason="Invalid or expired token")
            return

    try:
        topics = parse_topics(websocket.query_params.get("topics", ""))
    except ValueError as e:
        await websocket.close(code=4002, reason=str(e))
        return
    if not topics:
        await websocket.close(code=4002, reason="No topics requested")
        return

    forbidden = foreign_topics(topics, user_id)
    if forbidden:
        await websocket.close(code=4003, reason=f"Not allowed: {', '.join(forbidden)}")
        return

    try:
        r = get_redis()
    except RuntimeError:
        await websocket.close(code=1013, reason="Real-time transport unavailable")
        return

    # ── Connection accepted ─────────────────────────────────
    await websocket.accept()

    publisher = get_publisher()
    channels = [publisher.channel_name(t) for t in topics]
    pubsub = r.pubsub()
    await pubsub.subscribe(*channels)
    log = logger.bind(user_id=str(user_id) if user_id else None, topics=topics)
    log.info("realtime.subscribed")

    async def redis_listener():
        """Forward Redis messages to the WebSocket client."""
        try:
            async for message in pubsub.listen():
                if message["type"] == "message":
                    await websocket.send_text(message["data"])
        except asyncio.CancelledError:
            pass

    async def client_listener():
        """Handle pings and typing indicators from the client."""
        try:
            while True:
                data = await websocket.receive_text()
                try:
                    msg = json.loads(data)
                except json.JSONDecodeError:
                    continue
                kind = msg.get("type")
                if kind == "ping":
                    await websocket.send_text(json.dumps({"type": "pong"}))
                elif kind in CLIENT_EVENTS and msg.get("topic") in topics:
                    await publisher.broadcast(
                        msg["topic"],
                        kind,
                        {"userId": str(user_id) if user_id else None},
                    )
        except (WebSocketDisconnect, asyncio.CancelledError):
            pass

    # Run both listeners concurrently
    redis_task = asyncio.create_task(redis_listener())
    client_task = asyncio.create_task(client_listener())

    try:
        # Wait for either to finish (usually client disconnect)
        done, pending = await asyncio.wait(
            [redis_task, client_task],
            return_when=asyncio.FIRST_COMPLETED,
        )
        for task in pending:
            task.cancel()
    finally:
        await pubsub.unsubscribe(*channels)
        await pubsub.aclose()
        log.info("realtime.unsubscribed")
        if websocket.client_state == WebSocketState.CONNECTED:
            await websocket.close()
