"""Messages API: post, reply, edit, delete, react, watch threads.

Each mutating route runs mutation → broadcast → fan-out via
MessageService. Only the mutation can fail the request; live updates and
notifications are best-effort.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.ext.asyncio import AsyncSession

from teamchat.auth.dependencies import CurrentIdentity, get_current_user
from teamchat.db.engine import get_db
from teamchat.notifications.push import get_push_sender
from teamchat.realtime.pubsub import EventPublisher, get_publisher
from teamchat.schemas.message import (
    MessageCreate,
    MessageRead,
    MessageUpdate,
    ReactionRead,
    ReactionState,
    ReactionToggle,
    WatcherChange,
    watcher_target,
)
from teamchat.services.errors import ForbiddenError, NotFoundError
from teamchat.services.message_service import MessageService

router = APIRouter()


def _get_service(
    db: AsyncSession = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
) -> MessageService:
    return MessageService(db, publisher, get_push_sender(db))


# ─── Post + reply ────────────────────────────────────────


@router.post("/threads/{thread_id}/messages", response_model=MessageRead, status_code=201)
async def post_message(
    thread_id: int,
    body: MessageCreate,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: MessageService = Depends(_get_service),
):
    try:
        return await svc.send_message(thread_id, identity.user_id, body.content)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/messages/{message_id}/reply", response_model=MessageRead, status_code=201)
async def reply_to_message(
    message_id: int,
    body: MessageCreate,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: MessageService = Depends(_get_service),
):
    try:
        return await svc.reply(message_id, identity.user_id, body.content)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Parent message not found")


# ─── Edit + delete ───────────────────────────────────────


@router.patch("/messages/{message_id}", response_model=MessageRead)
async def edit_message(
    message_id: int,
    body: MessageUpdate,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: MessageService = Depends(_get_service),
):
    try:
        return await svc.update_message(message_id, identity.user_id, body.content)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Message not found")
    except ForbiddenError as e:
        raise HTTPException(status_code=403, detail=str(e))


@router.delete("/messages/{message_id}", status_code=204)
async def delete_message(
    message_id: int,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: MessageService = Depends(_get_service),
):
    try:
        await svc.delete_message(message_id, identity.user_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Message not found")
    except ForbiddenError as e:
        raise HTTPException(status_code=403, detail=str(e))
    return Response(status_code=204)


# ─── Reactions ───────────────────────────────────────────


@router.post("/messages/{message_id}/reactions", response_model=ReactionState)
async def toggle_reaction(
    message_id: int,
    body: ReactionToggle,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: MessageService = Depends(_get_service),
):
    """Add the emoji, or remove it if the caller already reacted with it."""
    try:
        added, reactions = await svc.toggle_reaction(
            message_id, identity.user_id, body.emoji
        )
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Message not found")
    return ReactionState(
        message_id=message_id,
        added=added,
        reactions=[ReactionRead.model_validate(r) for r in reactions],
    )


# ─── Thread watchers ─────────────────────────────────────


@router.post("/threads/{thread_id}/watchers")
async def watch_thread(
    thread_id: int,
    body: Optional[WatcherChange] = None,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: MessageService = Depends(_get_service),
):
    try:
        changed = await svc.watch_thread(thread_id, watcher_target(body, identity.user_id))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"success": True, "changed": changed}


@router.delete("/threads/{thread_id}/watchers")
async def unwatch_thread(
    thread_id: int,
    body: Optional[WatcherChange] = None,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: MessageService = Depends(_get_service),
):
    try:
        changed = await svc.unwatch_thread(thread_id, watcher_target(body, identity.user_id))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"success": True, "changed": changed}
