"""Task service: task CRUD, comments and watchers.

Task changes are broadcast on project:{id} and fanned out to the task's
watchers. The creator and anyone listed at creation time watch the task
from the start; others opt in through the watcher endpoints.
Completing a task also posts a system message in the project's channel.
"""

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import delete, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from teamchat.db.models import Comment, Project, Task, task_watchers
from teamchat.events.types import TASK_CREATED, TASK_UPDATED, Topics
from teamchat.notifications.audience import explicit, task_watchers as task_watcher_audience
from teamchat.notifications.fanout import NotificationEvent, NotificationFanout
from teamchat.notifications.push import PushSender
from teamchat.realtime.pubsub import EventPublisher
from teamchat.schemas.task import CommentRead, TaskRead
from teamchat.services.errors import NotFoundError
from teamchat.services.message_service import MessageService

# (title, message template) per kind of change; {actor} and {task} are filled in
WATCHER_MESSAGES: dict[str, tuple[str, str]] = {
    "updated": ("Task Updated", '{actor} updated "{task}"'),
    "status_changed": ("Task Status Changed", '{actor} changed status of "{task}" to {status}'),
    "commented": ("New Comment on Task", '{actor} commented on "{task}"'),
    "priority_changed": ("Task Priority Changed", '{actor} changed priority of "{task}" to {priority}'),
    "due_date_changed": ("Task Due Date Changed", '{actor} changed due date of "{task}"'),
    "completed": ("Task Completed", '{actor} marked "{task}" as completed'),
}


def _jsonable(changes: dict[str, Any]) -> dict[str, Any]:
    return {k: v.isoformat() if isinstance(v, datetime) else v for k, v in changes.items()}


def classify_change(changes: dict[str, Any]) -> str:
    """Pick the most specific watcher message for a set of field changes."""
    if changes.get("status") == "done":
        return "completed"
    if "status" in changes:
        return "status_changed"
    if "priority" in changes:
        return "priority_changed"
    if "due_date" in changes:
        return "due_date_changed"
    return "updated"


class TaskService:
    def __init__(
        self,
        db: AsyncSession,
        publisher: EventPublisher,
        push: Optional[PushSender] = None,
    ):
        self.db = db
        self.publisher = publisher
        self.fanout = NotificationFanout(db, publisher, push)

    async def get_task(self, task_id: int) -> Task:
        task = await self.db.get(Task, task_id)
        if not task:
            raise NotFoundError(f"Task {task_id} not found")
        return task

    def _task_payload(self, task: Task) -> dict:
        return TaskRead.model_validate(task).model_dump(mode="json")

    # ─── Create ──────────────────────────────────────────

    async def create_task(
        self,
        project_id: int,
        user_id: uuid.UUID,
        title: str,
        description: str = "",
        priority: str = "medium",
        due_date: Optional[datetime] = None,
        watcher_ids: Optional[list[uuid.UUID]] = None,
    ) -> Task:
        project = await self.db.get(Project, project_id)
        if not project:
            raise NotFoundError(f"Project {project_id} not found")

        task = Task(
            project_id=project_id,
            title=title,
            description=description,
            priority=priority,
            due_date=due_date,
            created_by=user_id,
        )
        self.db.add(task)
        await self.db.flush()

        watchers = list(dict.fromkeys([user_id, *(watcher_ids or [])]))
        await self.db.execute(
            insert(task_watchers),
            [{"task_id": task.id, "user_id": w} for w in watchers],
        )
        await self.db.commit()

        await self.publisher.broadcast(
            Topics.project(project_id), TASK_CREATED, self._task_payload(task)
        )

        actor = await self.fanout.actor_name(user_id)
        await self.fanout.fan_out(
            NotificationEvent(
                actor_id=user_id,
                type="task_assigned",
                title="Task Assigned",
                message=f'{actor} added you to "{task.title}"',
                entity_type="task",
                entity_id=str(task.id),
                link_url=f"/projects/{project_id}?taskId={task.id}",
                metadata={"taskTitle": task.title, "projectName": project.name},
            ),
            explicit(*watchers),
        )
        return task

    # ─── Update ──────────────────────────────────────────

    async def update_task(
        self,
        task_id: int,
        user_id: uuid.UUID,
        *,
        title: Optional[str] = None,
        description: Optional[str] = None,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        due_date: Optional[datetime] = None,
    ) -> Task:
        task = await self.get_task(task_id)

        changes: dict[str, Any] = {}
        for field, value in (
            ("title", title),
            ("description", description),
            ("status", status),
            ("priority", priority),
            ("due_date", due_date),
        ):
            if value is not None and getattr(task, field) != value:
                setattr(task, field, value)
                changes[field] = value

        if not changes:
            return task

        await self.db.commit()

        await self.publisher.broadcast(
            Topics.project(task.project_id),
            TASK_UPDATED,
            {
                "task": self._task_payload(task),
                "changes": _jsonable(changes),
            },
        )
        kind = classify_change(changes)
        await self._notify_watchers(task, user_id, kind, changes)
        if kind == "completed":
            await self._announce_completion(task, user_id)
        return task

    async def _announce_completion(self, task: Task, user_id: uuid.UUID) -> None:
        actor = await self.fanout.actor_name(user_id)
        await MessageService(self.db, self.publisher).post_to_project(
            task.project_id,
            f'Task "{task.title}" has been completed by {actor}',
            {"taskId": task.id, "taskTitle": task.title, "completedBy": actor},
        )

    # ─── Comments ────────────────────────────────────────

    async def add_comment(
        self, task_id: int, user_id: uuid.UUID, content: str
    ) -> Comment:
        task = await self.get_task(task_id)
        comment = Comment(task_id=task.id, user_id=user_id, content=content)
        self.db.add(comment)
        await self.db.commit()

        await self.publisher.broadcast(
            Topics.project(task.project_id),
            TASK_UPDATED,
            {
                "task": self._task_payload(task),
                "comment": CommentRead.model_validate(comment).model_dump(mode="json"),
            },
        )
        await self._notify_watchers(
            task, user_id, "commented", {"commentContent": content[:100]}
        )
        return comment

    async def _notify_watchers(
        self,
        task: Task,
        actor_id: uuid.UUID,
        kind: str,
        changes: dict[str, Any],
    ) -> None:
        actor = await self.fanout.actor_name(actor_id)
        title, template = WATCHER_MESSAGES[kind]
        await self.fanout.fan_out(
            NotificationEvent(
                actor_id=actor_id,
                type="task_updated",
                title=title,
                message=template.format(
                    actor=actor,
                    task=task.title,
                    status=task.status,
                    priority=task.priority,
                ),
                entity_type="task",
                entity_id=str(task.id),
                link_url=f"/projects/{task.project_id}?taskId={task.id}",
                metadata={
                    "taskTitle": task.title,
                    "eventType": kind,
                    "changedBy": actor,
                    "changes": _jsonable(changes),
                },
            ),
            task_watcher_audience(task.id),
        )

    # ─── Watchers ────────────────────────────────────────

    async def list_watchers(self, task_id: int) -> list[uuid.UUID]:
        result = await self.db.execute(
            select(task_watchers.c.user_id).where(task_watchers.c.task_id == task_id)
        )
        return list(result.scalars().all())

    async def add_watcher(self, task_id: int, user_id: uuid.UUID) -> bool:
        """Returns False if the user was already watching."""
        await self.get_task(task_id)
        if user_id in await self.list_watchers(task_id):
            return False
        await self.db.execute(
            insert(task_watchers).values(task_id=task_id, user_id=user_id)
        )
        await self.db.commit()
        return True

    async def remove_watcher(self, task_id: int, user_id: uuid.UUID) -> bool:
        await self.get_task(task_id)
        result = await self.db.execute(
            delete(task_watchers).where(
                task_watchers.c.task_id == task_id,
                task_watchers.c.user_id == user_id,
            )
        )
        await self.db.commit()
        return result.rowcount > 0
