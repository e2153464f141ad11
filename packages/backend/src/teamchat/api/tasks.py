"""Tasks API: create/update tasks, comment, manage watchers.

Changes go out on project:{id}; watchers get notifications.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from teamchat.auth.dependencies import CurrentIdentity, get_current_user
from teamchat.db.engine import get_db
from teamchat.notifications.push import get_push_sender
from teamchat.realtime.pubsub import EventPublisher, get_publisher
from teamchat.schemas.message import WatcherChange, watcher_target
from teamchat.schemas.task import (
    CommentCreate,
    CommentRead,
    TaskCreate,
    TaskRead,
    TaskUpdate,
)
from teamchat.services.errors import NotFoundError
from teamchat.services.task_service import TaskService

router = APIRouter()


def _get_service(
    db: AsyncSession = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
) -> TaskService:
    return TaskService(db, publisher, get_push_sender(db))


@router.post("/projects/{project_id}/tasks", response_model=TaskRead, status_code=201)
async def create_task(
    project_id: int,
    body: TaskCreate,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: TaskService = Depends(_get_service),
):
    try:
        return await svc.create_task(
            project_id,
            identity.user_id,
            title=body.title,
            description=body.description,
            priority=body.priority,
            due_date=body.due_date,
            watcher_ids=body.watcher_ids,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.patch("/tasks/{task_id}", response_model=TaskRead)
async def update_task(
    task_id: int,
    body: TaskUpdate,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: TaskService = Depends(_get_service),
):
    try:
        return await svc.update_task(
            task_id,
            identity.user_id,
            title=body.title,
            description=body.description,
            status=body.status,
            priority=body.priority,
            due_date=body.due_date,
        )
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Task not found")


@router.post("/tasks/{task_id}/comments", response_model=CommentRead, status_code=201)
async def add_comment(
    task_id: int,
    body: CommentCreate,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: TaskService = Depends(_get_service),
):
    try:
        return await svc.add_comment(task_id, identity.user_id, body.content)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Task not found")


# ─── Watchers ────────────────────────────────────────────


@router.post("/tasks/{task_id}/watchers")
async def add_watcher(
    task_id: int,
    body: Optional[WatcherChange] = None,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: TaskService = Depends(_get_service),
):
    try:
        changed = await svc.add_watcher(task_id, watcher_target(body, identity.user_id))
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Task not found")
    return {"success": True, "changed": changed}


@router.delete("/tasks/{task_id}/watchers")
async def remove_watcher(
    task_id: int,
    body: Optional[WatcherChange] = None,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: TaskService = Depends(_get_service),
):
    try:
        changed = await svc.remove_watcher(task_id, watcher_target(body, identity.user_id))
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Task not found")
    return {"success": True, "changed": changed}
