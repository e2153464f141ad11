"""Project membership + note sharing API."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from teamchat.auth.dependencies import CurrentIdentity, get_current_user
from teamchat.db.engine import get_db
from teamchat.notifications.push import get_push_sender
from teamchat.realtime.pubsub import EventPublisher, get_publisher
from teamchat.schemas.project import (
    NoteShare,
    NoteShareRead,
    ProjectMemberAdd,
    ProjectMemberRead,
)
from teamchat.services.errors import ConflictError, ForbiddenError, NotFoundError
from teamchat.services.project_service import ProjectService

router = APIRouter()


def _get_service(
    db: AsyncSession = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
) -> ProjectService:
    return ProjectService(db, publisher, get_push_sender(db))


@router.post(
    "/projects/{project_id}/members",
    response_model=ProjectMemberRead,
    status_code=201,
)
async def add_project_member(
    project_id: int,
    body: ProjectMemberAdd,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: ProjectService = Depends(_get_service),
):
    try:
        return await svc.add_member(
            project_id, body.user_id, added_by=identity.user_id, role=body.role
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.post("/notes/{note_id}/share", response_model=NoteShareRead)
async def share_note(
    note_id: int,
    body: NoteShare,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: ProjectService = Depends(_get_service),
):
    try:
        shared = await svc.share_note(note_id, body.user_id, shared_by=identity.user_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ForbiddenError as e:
        raise HTTPException(status_code=403, detail=str(e))
    return NoteShareRead(note_id=note_id, user_id=body.user_id, shared=shared)
