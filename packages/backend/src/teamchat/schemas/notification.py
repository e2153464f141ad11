"""Pydantic schemas for notifications.

NotificationRead is both the API response and the payload broadcast on
notifications:{user_id}, so clients handle one shape.
"""

import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class NotificationRead(BaseModel):
    id: int
    user_id: uuid.UUID
    type: str
    title: str
    message: str
    entity_type: Optional[str]
    entity_id: Optional[str]
    link_url: Optional[str]
    payload: dict[str, Any]
    is_read: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class NotificationUpdate(BaseModel):
    is_read: bool = Field(True, description="Only marking as read is supported")


class MarkAllReadResponse(BaseModel):
    success: bool = True
    updated: int
