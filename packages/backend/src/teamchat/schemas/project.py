"""Pydantic schemas for project membership and note sharing."""

import uuid

from pydantic import BaseModel, Field


class ProjectMemberAdd(BaseModel):
    user_id: uuid.UUID
    role: str = Field("member", pattern="^(owner|admin|member)$")


class ProjectMemberRead(BaseModel):
    id: int
    project_id: int
    user_id: uuid.UUID
    role: str

    model_config = {"from_attributes": True}


class NoteShare(BaseModel):
    user_id: uuid.UUID


class NoteShareRead(BaseModel):
    note_id: int
    user_id: uuid.UUID
    shared: bool
