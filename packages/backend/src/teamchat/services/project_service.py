"""Project membership and note sharing.

Both hand something to a single user, so both notify exactly that user
(unless they did it to themselves) and broadcast on a topic the UI of
the affected entity listens to. Adding a member is also announced with a
system message in the project's channel.
"""

import uuid
from typing import Optional

from sqlalchemy import insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from teamchat.db.models import Note, Project, ProjectMember, User, note_collaborators
from teamchat.events.types import NOTE_SHARED, PROJECT_MEMBER_ADDED, Topics
from teamchat.notifications.audience import explicit
from teamchat.notifications.fanout import NotificationEvent, NotificationFanout
from teamchat.notifications.push import PushSender
from teamchat.realtime.pubsub import EventPublisher
from teamchat.schemas.project import ProjectMemberRead
from teamchat.services.errors import ConflictError, ForbiddenError, NotFoundError
from teamchat.services.message_service import MessageService


class ProjectService:
    def __init__(
        self,
        db: AsyncSession,
        publisher: EventPublisher,
        push: Optional[PushSender] = None,
    ):
        self.db = db
        self.publisher = publisher
        self.fanout = NotificationFanout(db, publisher, push)

    async def _require_user(self, user_id: uuid.UUID) -> User:
        user = await self.db.get(User, user_id)
        if not user:
            raise NotFoundError(f"User {user_id} not found")
        return user

    # ─── Project members ─────────────────────────────────

    async def add_member(
        self,
        project_id: int,
        user_id: uuid.UUID,
        added_by: uuid.UUID,
        role: str = "member",
    ) -> ProjectMember:
        project = await self.db.get(Project, project_id)
        if not project:
            raise NotFoundError(f"Project {project_id} not found")
        await self._require_user(user_id)

        result = await self.db.execute(
            select(ProjectMember).where(
                ProjectMember.project_id == project_id,
                ProjectMember.user_id == user_id,
            )
        )
        if result.scalars().first():
            raise ConflictError("User is already a member of this project")

        member = ProjectMember(project_id=project_id, user_id=user_id, role=role)
        self.db.add(member)
        await self.db.commit()

        await self.publisher.broadcast(
            Topics.project(project_id),
            PROJECT_MEMBER_ADDED,
            ProjectMemberRead.model_validate(member).model_dump(mode="json"),
        )
        await self.fanout.fan_out(
            NotificationEvent(
                actor_id=added_by,
                type="project_invitation",
                title="Added to Project",
                message=f"You've been added to {project.name}",
                entity_type="project",
                entity_id=str(project_id),
                link_url=f"/projects/{project_id}",
                metadata={"projectName": project.name, "addedBy": str(added_by)},
            ),
            explicit(user_id),
        )

        adder = await self.fanout.actor_name(added_by)
        await MessageService(self.db, self.publisher).post_to_project(
            project_id,
            f"{adder} added a new member to the project",
            {"type": "member_added", "userId": str(user_id), "projectId": project_id},
        )
        return member

    # ─── Notes ───────────────────────────────────────────

    async def share_note(
        self, note_id: int, user_id: uuid.UUID, shared_by: uuid.UUID
    ) -> bool:
        """Make user_id a collaborator. Returns False if they already were."""
        note = await self.db.get(Note, note_id)
        if not note:
            raise NotFoundError(f"Note {note_id} not found")
        if note.owner_id != shared_by:
            raise ForbiddenError("Only the owner can share a note")
        await self._require_user(user_id)

        result = await self.db.execute(
            select(note_collaborators.c.user_id).where(
                note_collaborators.c.note_id == note_id,
                note_collaborators.c.user_id == user_id,
            )
        )
        if result.first() is not None:
            return False

        await self.db.execute(
            insert(note_collaborators).values(note_id=note_id, user_id=user_id)
        )
        await self.db.commit()

        sharer_name = await self.fanout.actor_name(shared_by)
        await self.publisher.broadcast(
            Topics.user(user_id),
            NOTE_SHARED,
            {"noteId": note.id, "title": note.title, "sharedBy": str(shared_by)},
        )
        await self.fanout.fan_out(
            NotificationEvent(
                actor_id=shared_by,
                type="note_shared",
                title="Note Shared With You",
                message=f'{sharer_name} shared "{note.title}" with you',
                entity_type="note",
                entity_id=str(note.id),
                link_url=f"/notes?noteId={note.id}",
                metadata={"noteTitle": note.title, "sharedBy": sharer_name},
            ),
            explicit(user_id),
        )
        return True
