"""Notifications API: the caller's inbox.

- GET /notifications?unread_only=true&limit=50
- GET /notifications/unread-count
- PATCH /notifications/:id → mark read
- POST /notifications/mark-all-read
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from teamchat.auth.dependencies import CurrentIdentity, get_current_user
from teamchat.db.engine import get_db
from teamchat.schemas.notification import (
    MarkAllReadResponse,
    NotificationRead,
    NotificationUpdate,
)
from teamchat.services.errors import NotFoundError
from teamchat.services.notification_service import NotificationService

router = APIRouter()


def _get_service(db: AsyncSession = Depends(get_db)) -> NotificationService:
    return NotificationService(db)


@router.get("/notifications", response_model=list[NotificationRead])
async def list_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    identity: CurrentIdentity = Depends(get_current_user),
    svc: NotificationService = Depends(_get_service),
):
    return await svc.list_for_user(
        identity.user_id, unread_only=unread_only, limit=limit
    )


@router.get("/notifications/unread-count")
async def unread_count(
    identity: CurrentIdentity = Depends(get_current_user),
    svc: NotificationService = Depends(_get_service),
):
    return {"unread": await svc.unread_count(identity.user_id)}


@router.patch("/notifications/{notification_id}", response_model=NotificationRead)
async def mark_notification_read(
    notification_id: int,
    body: NotificationUpdate,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: NotificationService = Depends(_get_service),
):
    if not body.is_read:
        raise HTTPException(status_code=400, detail="Notifications cannot be marked unread")
    try:
        return await svc.mark_read(notification_id, identity.user_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Notification not found")


@router.post("/notifications/mark-all-read", response_model=MarkAllReadResponse)
async def mark_all_read(
    identity: CurrentIdentity = Depends(get_current_user),
    svc: NotificationService = Depends(_get_service),
):
    updated = await svc.mark_all_read(identity.user_id)
    return MarkAllReadResponse(updated=updated)
