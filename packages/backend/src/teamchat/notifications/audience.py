"""Audience resolvers: who should hear about an event.

A resolver is an async callable ``(db, event) -> Iterable[UUID]``. The
factories below bind the entity id up front so services can write
``fanout.fan_out(event, task_watchers(task.id))``. Resolvers may return
duplicates or the actor; the fan-out drops both.
"""

import re
import uuid
from typing import Awaitable, Callable, Iterable

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from teamchat.db.models import (
    ProjectMember,
    User,
    note_collaborators,
    task_watchers as task_watchers_table,
    thread_watchers as thread_watchers_table,
)

AudienceResolver = Callable[[AsyncSession, object], Awaitable[Iterable[uuid.UUID]]]

# Not preceded by a word character or dot, so e-mail addresses are not mentions
MENTION_RE = re.compile(r"(?<![\w.])@(\w+)")


def extract_mentions(content: str) -> list[str]:
    """Pull ``@name`` handles out of message text, in order of appearance."""
    return MENTION_RE.findall(content or "")


def task_watchers(task_id: int) -> AudienceResolver:
    async def resolve(db: AsyncSession, event) -> list[uuid.UUID]:
        result = await db.execute(
            select(task_watchers_table.c.user_id).where(
                task_watchers_table.c.task_id == task_id
            )
        )
        return list(result.scalars().all())

    return resolve


def thread_watchers(thread_id: int) -> AudienceResolver:
    async def resolve(db: AsyncSession, event) -> list[uuid.UUID]:
        result = await db.execute(
            select(thread_watchers_table.c.user_id).where(
                thread_watchers_table.c.thread_id == thread_id
            )
        )
        return list(result.scalars().all())

    return resolve


def project_members(project_id: int) -> AudienceResolver:
    async def resolve(db: AsyncSession, event) -> list[uuid.UUID]:
        result = await db.execute(
            select(ProjectMember.user_id).where(ProjectMember.project_id == project_id)
        )
        return list(result.scalars().all())

    return resolve


def note_collaborators_of(note_id: int) -> AudienceResolver:
    async def resolve(db: AsyncSession, event) -> list[uuid.UUID]:
        result = await db.execute(
            select(note_collaborators.c.user_id).where(
                note_collaborators.c.note_id == note_id
            )
        )
        return list(result.scalars().all())

    return resolve


def mentioned_users(content: str) -> AudienceResolver:
    """Users whose name matches an @mention, case-insensitively."""
    handles = {h.lower() for h in extract_mentions(content)}

    async def resolve(db: AsyncSession, event) -> list[uuid.UUID]:
        if not handles:
            return []
        result = await db.execute(
            select(User.id).where(func.lower(User.name).in_(handles))
        )
        return list(result.scalars().all())

    return resolve


def explicit(*user_ids: uuid.UUID) -> AudienceResolver:
    async def resolve(db: AsyncSession, event) -> list[uuid.UUID]:
        return list(user_ids)

    return resolve


def union(*resolvers: AudienceResolver) -> AudienceResolver:
    """Concatenate several audiences; dedupe happens in the fan-out."""

    async def resolve(db: AsyncSession, event) -> list[uuid.UUID]:
        user_ids: list[uuid.UUID] = []
        for resolver in resolvers:
            user_ids.extend(await resolver(db, event))
        return user_ids

    return resolve


def excluding(resolver: AudienceResolver, user_ids: Iterable[uuid.UUID]) -> AudienceResolver:
    """Same audience minus users already covered by another fan-out."""
    skip = set(user_ids)

    async def resolve(db: AsyncSession, event) -> list[uuid.UUID]:
        return [u for u in await resolver(db, event) if u not in skip]

    return resolve
