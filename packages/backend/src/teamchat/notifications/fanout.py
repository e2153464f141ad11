"""Notification fan-out: write one row per recipient, then go live.

Order of work for one event:
1. Resolve the audience inside a SAVEPOINT, dedupe it, drop the actor
2. Write each Notification inside its own SAVEPOINT; one bad row is logged
   and skipped, the rest still land
3. Commit
4. For each written row: broadcast on notifications:{user_id}, then try push

A failure in step 1 or 3 is logged as notifications.fanout_failed and the
call returns what it has; it never fails the request that caused the event.
Step 4's failures never touch the rows from step 2. There is no dedupe
key, so fanning out the same event twice writes every row twice.
"""

import uuid
from dataclasses import dataclass, field
from typing import Any, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from teamchat.db.engine import rollback_and_reload
from teamchat.db.models import Notification, User
from teamchat.events.types import NOTIFICATION, Topics
from teamchat.notifications.audience import AudienceResolver
from teamchat.notifications.push import NullPushSender, PushSender
from teamchat.realtime.pubsub import EventPublisher
from teamchat.schemas.notification import NotificationRead

logger = structlog.get_logger()


@dataclass
class NotificationEvent:
    """What happened, who did it, and how to describe it to everyone else."""

    actor_id: Optional[uuid.UUID]
    type: str
    title: str
    message: str = ""
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    link_url: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class FanoutResult:
    notifications: list[Notification] = field(default_factory=list)
    failed: list[uuid.UUID] = field(default_factory=list)

    @property
    def recipients(self) -> list[uuid.UUID]:
        return [n.user_id for n in self.notifications]


class NotificationFanout:
    """Turns a NotificationEvent into per-user notifications."""

    def __init__(
        self,
        db: AsyncSession,
        publisher: EventPublisher,
        push: Optional[PushSender] = None,
    ):
        self.db = db
        self.publisher = publisher
        self.push = push or NullPushSender()

    async def resolve_audience(
        self, event: NotificationEvent, resolver: AudienceResolver
    ) -> list[uuid.UUID]:
        """Unique recipients in first-seen order, never including the actor."""
        seen: set[uuid.UUID] = set()
        recipients: list[uuid.UUID] = []
        for user_id in await resolver(self.db, event):
            if user_id is None or user_id == event.actor_id or user_id in seen:
                continue
            seen.add(user_id)
            recipients.append(user_id)
        return recipients

    async def actor_name(self, user_id: Optional[uuid.UUID]) -> str:
        """Display name for notification text; "Someone" if it can't be looked up."""
        if user_id is None:
            return "Someone"
        try:
            async with self.db.begin_nested():
                user = await self.db.get(User, user_id)
        except SQLAlchemyError as e:
            logger.warning("notifications.actor_lookup_failed", user_id=str(user_id), error=str(e))
            return "Someone"
        return user.name if user else "Someone"

    async def fan_out(
        self, event: NotificationEvent, resolver: AudienceResolver
    ) -> FanoutResult:
        """Notify everyone the resolver names. Never raises SQLAlchemyError.

        The mutation that caused the event is committed before this runs, so
        a failure here is logged and an incomplete result returned.
        """
        result = FanoutResult()
        try:
            async with self.db.begin_nested():
                recipients = await self.resolve_audience(event, resolver)
        except SQLAlchemyError as e:
            self._log_failure(event, "resolve_audience", e)
            return result

        for user_id in recipients:
            try:
                notification = await self._write(user_id, event)
            except SQLAlchemyError as e:
                logger.warning(
                    "notifications.write_failed",
                    user_id=str(user_id),
                    type=event.type,
                    error=str(e),
                )
                result.failed.append(user_id)
                continue
            result.notifications.append(notification)

        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            self._log_failure(event, "commit", e)
            result.failed.extend(result.recipients)
            result.notifications.clear()
            await self._recover()
            return result

        for notification in result.notifications:
            await self.publisher.broadcast(
                Topics.notifications(notification.user_id),
                NOTIFICATION,
                NotificationRead.model_validate(notification).model_dump(mode="json"),
            )
            await self._push(notification)

        logger.info(
            "notifications.fanout_completed",
            type=event.type,
            entity_type=event.entity_type,
            entity_id=event.entity_id,
            delivered=len(result.notifications),
            failed=len(result.failed),
        )
        return result

    def _log_failure(self, event: NotificationEvent, stage: str, error: Exception) -> None:
        logger.error(
            "notifications.fanout_failed",
            stage=stage,
            type=event.type,
            entity_type=event.entity_type,
            entity_id=event.entity_id,
            error=str(error),
        )

    async def _recover(self) -> None:
        try:
            await rollback_and_reload(self.db)
        except SQLAlchemyError as e:
            logger.warning("notifications.reload_failed", error=str(e))

    async def _write(self, user_id: uuid.UUID, event: NotificationEvent) -> Notification:
        async with self.db.begin_nested():
            notification = Notification(
                user_id=user_id,
                type=event.type,
                title=event.title,
                message=event.message,
                entity_type=event.entity_type,
                entity_id=event.entity_id,
                link_url=event.link_url,
                payload=dict(event.metadata),
                is_read=False,
            )
            self.db.add(notification)
        return notification

    async def _push(self, notification: Notification) -> None:
        try:
            await self.push.send(
                user_id=notification.user_id,
                title=notification.title,
                body=notification.message,
                data={
                    "type": notification.type,
                    "entityType": notification.entity_type or "",
                    "entityId": notification.entity_id or "",
                    "linkUrl": notification.link_url or "",
                },
                notification_id=notification.id,
            )
        except Exception as e:
            logger.warning(
                "push.delivery_failed",
                user_id=str(notification.user_id),
                notification_id=notification.id,
                error=str(e),
            )
