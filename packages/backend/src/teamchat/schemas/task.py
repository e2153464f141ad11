"""Pydantic schemas for tasks and task comments."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class TaskCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    description: str = ""
    priority: str = Field("medium", pattern="^(low|medium|high|urgent)$")
    due_date: Optional[datetime] = None
    watcher_ids: list[uuid.UUID] = Field(
        default_factory=list, description="Initial watchers besides the creator"
    )


class TaskUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    description: Optional[str] = None
    status: Optional[str] = Field(None, pattern="^(todo|in_progress|in_review|done)$")
    priority: Optional[str] = Field(None, pattern="^(low|medium|high|urgent)$")
    due_date: Optional[datetime] = None


class TaskRead(BaseModel):
    id: int
    project_id: int
    title: str
    description: str
    status: str
    priority: str
    due_date: Optional[datetime]
    created_by: Optional[uuid.UUID]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1)


class CommentRead(BaseModel):
    id: int
    task_id: int
    user_id: uuid.UUID
    content: str
    created_at: datetime

    model_config = {"from_attributes": True}
