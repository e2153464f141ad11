"""Message service: posting, replying, editing and reacting in threads.

Every operation follows the same pipeline:
1. Mutate and commit (errors here propagate and fail the request)
2. Broadcast on thread:{id} (best-effort)
3. Fan out notifications (best-effort, per recipient)

Mentioned users get a "mention" notification; the remaining thread
watchers get a "thread_message" one. Nobody is notified twice for the
same message and the author is never notified.

System messages (task completed, member added) are posted by the other
services through post_to_project. They are broadcast but notify nobody.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Optional

import structlog
from sqlalchemy import delete, insert, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from teamchat.db.engine import rollback_and_reload
from teamchat.db.models import Message, Project, Reaction, Thread, thread_watchers
from teamchat.events.types import (
    MESSAGE_DELETED,
    MESSAGE_REACTION,
    MESSAGE_SENT,
    MESSAGE_UPDATED,
    Topics,
)
from teamchat.notifications.audience import (
    excluding,
    explicit,
    mentioned_users,
    thread_watchers as thread_watcher_audience,
)
from teamchat.notifications.fanout import NotificationEvent, NotificationFanout
from teamchat.notifications.push import PushSender
from teamchat.realtime.pubsub import EventPublisher
from teamchat.schemas.message import MessageRead, ReactionRead
from teamchat.services.errors import ForbiddenError, NotFoundError

logger = structlog.get_logger()

PREVIEW_LENGTH = 100


class MessageService:
    def __init__(
        self,
        db: AsyncSession,
        publisher: EventPublisher,
        push: Optional[PushSender] = None,
    ):
        self.db = db
        self.publisher = publisher
        self.fanout = NotificationFanout(db, publisher, push)

    # ─── Lookups ─────────────────────────────────────────

    async def get_thread(self, thread_id: int) -> Thread:
        thread = await self.db.get(Thread, thread_id)
        if not thread:
            raise NotFoundError(f"Thread {thread_id} not found")
        return thread

    async def get_message(self, message_id: int) -> Message:
        message = await self.db.get(Message, message_id)
        if not message or message.deleted_at is not None:
            raise NotFoundError(f"Message {message_id} not found")
        return message

    # ─── Post / reply ────────────────────────────────────

    async def send_message(
        self, thread_id: int, user_id: uuid.UUID, content: str
    ) -> Message:
        thread = await self.get_thread(thread_id)
        message = Message(
            thread_id=thread.id,
            user_id=user_id,
            content=content,
            depth=0,
        )
        self.db.add(message)
        await self.db.commit()

        await self._announce(message, thread)
        return message

    async def reply(
        self, parent_id: int, user_id: uuid.UUID, content: str
    ) -> Message:
        """Reply to a message. The reply joins the parent's thread one level deeper."""
        parent = await self.get_message(parent_id)
        thread = await self.get_thread(parent.thread_id)
        message = Message(
            thread_id=parent.thread_id,
            user_id=user_id,
            content=content,
            reply_to_id=parent.id,
            depth=parent.depth + 1,
        )
        self.db.add(message)
        await self.db.commit()

        await self._announce(message, thread)
        return message

    async def _announce(self, message: Message, thread: Thread) -> None:
        await self.publisher.broadcast(
            Topics.thread(message.thread_id),
            MESSAGE_SENT,
            MessageRead.model_validate(message).model_dump(mode="json"),
        )

        author = await self.fanout.actor_name(message.user_id)
        link_url = f"/channels/{thread.channel_id}?messageId={message.id}"
        metadata = {
            "messageId": message.id,
            "threadId": message.thread_id,
            "messageContent": message.content[:PREVIEW_LENGTH],
            "author": author,
        }
        if message.reply_to_id:
            metadata["replyToId"] = message.reply_to_id

        mentions = await self.fanout.fan_out(
            NotificationEvent(
                actor_id=message.user_id,
                type="mention",
                title="You were mentioned",
                message=f"{author} mentioned you in {thread.title or 'a thread'}",
                entity_type="channel",
                entity_id=str(thread.channel_id),
                link_url=link_url,
                metadata=metadata,
            ),
            mentioned_users(message.content),
        )

        await self.fanout.fan_out(
            NotificationEvent(
                actor_id=message.user_id,
                type="thread_message",
                title="New reply in thread" if message.reply_to_id else "New message in thread",
                message=f"{author}: {message.content[:PREVIEW_LENGTH]}",
                entity_type="thread",
                entity_id=str(thread.id),
                link_url=link_url,
                metadata=metadata,
            ),
            excluding(thread_watcher_audience(thread.id), mentions.recipients),
        )

    # ─── System messages ─────────────────────────────────

    async def create_system_message(
        self, thread_id: int, content: str, metadata: Optional[dict[str, Any]] = None
    ) -> Message:
        """Post an authorless message and broadcast it like any other.

        Nobody is notified: system messages only narrate what the
        notifications already told the people involved.
        """
        thread = await self.get_thread(thread_id)
        message = Message(
            thread_id=thread.id,
            user_id=None,
            content=content,
            depth=0,
            message_type="system",
            payload=dict(metadata or {}),
        )
        self.db.add(message)
        await self.db.commit()

        await self.publisher.broadcast(
            Topics.thread(thread.id),
            MESSAGE_SENT,
            MessageRead.model_validate(message).model_dump(mode="json"),
        )
        return message

    async def post_to_project(
        self, project_id: int, content: str, metadata: Optional[dict[str, Any]] = None
    ) -> Optional[Message]:
        """System message in the first thread of the project's channel, if any.

        Runs after another mutation has committed, so database errors are
        logged and swallowed.
        """
        try:
            result = await self.db.execute(
                select(Thread.id)
                .join(Project, Project.channel_id == Thread.channel_id)
                .where(Project.id == project_id)
                .order_by(Thread.id)
                .limit(1)
            )
            thread_id = result.scalar()
            if thread_id is None:
                return None
            return await self.create_system_message(thread_id, content, metadata)
        except SQLAlchemyError as e:
            logger.error(
                "messages.system_message_failed",
                project_id=project_id,
                error=str(e),
            )
            try:
                await rollback_and_reload(self.db)
            except SQLAlchemyError as reload_error:
                logger.warning("messages.reload_failed", error=str(reload_error))
            return None

    # ─── Edit / delete ───────────────────────────────────

    async def update_message(
        self, message_id: int, user_id: uuid.UUID, content: str
    ) -> Message:
        message = await self.get_message(message_id)
        if message.user_id != user_id:
            raise ForbiddenError("Only the author can edit a message")

        message.content = content
        message.edited_at = datetime.now(timezone.utc)
        await self.db.commit()

        await self.publisher.broadcast(
            Topics.thread(message.thread_id),
            MESSAGE_UPDATED,
            MessageRead.model_validate(message).model_dump(mode="json"),
        )
        return message

    async def delete_message(self, message_id: int, user_id: uuid.UUID) -> Message:
        """Soft delete: replies keep pointing at the row."""
        message = await self.get_message(message_id)
        if message.user_id != user_id:
            raise ForbiddenError("Only the author can delete a message")

        message.deleted_at = datetime.now(timezone.utc)
        await self.db.commit()

        await self.publisher.broadcast(
            Topics.thread(message.thread_id),
            MESSAGE_DELETED,
            {"messageId": message.id, "threadId": message.thread_id},
        )
        return message

    # ─── Reactions ───────────────────────────────────────

    async def list_reactions(self, message_id: int) -> list[Reaction]:
        result = await self.db.execute(
            select(Reaction)
            .where(Reaction.message_id == message_id)
            .order_by(Reaction.id)
        )
        return list(result.scalars().all())

    async def toggle_reaction(
        self, message_id: int, user_id: uuid.UUID, emoji: str
    ) -> tuple[bool, list[Reaction]]:
        """Add the reaction, or remove it if the user already reacted with it.

        Returns (added, reactions after the change).
        """
        message = await self.get_message(message_id)

        result = await self.db.execute(
            select(Reaction).where(
                Reaction.message_id == message_id,
                Reaction.user_id == user_id,
                Reaction.emoji == emoji,
            )
        )
        existing = result.scalars().first()
        if existing:
            await self.db.delete(existing)
            added = False
        else:
            self.db.add(Reaction(message_id=message_id, user_id=user_id, emoji=emoji))
            added = True
        await self.db.commit()

        reactions = await self.list_reactions(message_id)
        await self.publisher.broadcast(
            Topics.thread(message.thread_id),
            MESSAGE_REACTION,
            {
                "messageId": message_id,
                "reactions": [
                    ReactionRead.model_validate(r).model_dump(mode="json")
                    for r in reactions
                ],
            },
        )

        if added:
            reactor = await self.fanout.actor_name(user_id)
            await self.fanout.fan_out(
                NotificationEvent(
                    actor_id=user_id,
                    type="reaction",
                    title="New reaction",
                    message=f"{reactor} reacted {emoji} to your message",
                    entity_type="thread",
                    entity_id=str(message.thread_id),
                    metadata={"messageId": message_id, "emoji": emoji},
                ),
                explicit(message.user_id),
            )

        return added, reactions

    # ─── Watchers ────────────────────────────────────────

    async def _is_watching(self, thread_id: int, user_id: uuid.UUID) -> bool:
        result = await self.db.execute(
            select(thread_watchers.c.user_id).where(
                thread_watchers.c.thread_id == thread_id,
                thread_watchers.c.user_id == user_id,
            )
        )
        return result.first() is not None

    async def watch_thread(self, thread_id: int, user_id: uuid.UUID) -> bool:
        """Returns False if the user was already watching."""
        await self.get_thread(thread_id)
        if await self._is_watching(thread_id, user_id):
            return False
        await self.db.execute(
            insert(thread_watchers).values(thread_id=thread_id, user_id=user_id)
        )
        await self.db.commit()
        return True

    async def unwatch_thread(self, thread_id: int, user_id: uuid.UUID) -> bool:
        await self.get_thread(thread_id)
        result = await self.db.execute(
            delete(thread_watchers).where(
                thread_watchers.c.thread_id == thread_id,
                thread_watchers.c.user_id == user_id,
            )
        )
        await self.db.commit()
        return result.rowcount > 0
