"""Pydantic schemas for messages, replies and reactions."""

import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class MessageCreate(BaseModel):
    content: str = Field(..., min_length=1, description="Message text, may contain @mentions")


class MessageUpdate(BaseModel):
    content: str = Field(..., min_length=1)


class ReactionToggle(BaseModel):
    emoji: str = Field(..., min_length=1, max_length=64)


class ReactionRead(BaseModel):
    id: int
    message_id: int
    user_id: uuid.UUID
    emoji: str

    model_config = {"from_attributes": True}


class MessageRead(BaseModel):
    id: int
    thread_id: int
    user_id: Optional[uuid.UUID]
    content: str
    reply_to_id: Optional[int]
    depth: int
    message_type: str
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    edited_at: Optional[datetime]
    deleted_at: Optional[datetime]

    model_config = {"from_attributes": True}


class ReactionState(BaseModel):
    """Broadcast with message:reaction and returned by the toggle endpoint."""
    message_id: int
    added: bool
    reactions: list[ReactionRead]


class WatcherChange(BaseModel):
    user_id: Optional[uuid.UUID] = Field(
        None, description="User to add/remove (defaults to the caller)"
    )


def watcher_target(body: Optional[WatcherChange], default: uuid.UUID) -> uuid.UUID:
    """The user a watcher request is about: the body's user_id, else the caller."""
    return body.user_id if body and body.user_id else default
