"""
Pydantic schemas for comment-related operations.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from taskflow_api.schemas.users import UserSummary


class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=5000)

    model_config = ConfigDict(str_strip_whitespace=True)


class CommentUpdate(BaseModel):
    content: str = Field(..., min_length=1, max_length=5000)

    model_config = ConfigDict(str_strip_whitespace=True)


class CommentResponse(BaseModel):
    """Response schema, aka returned by API endpoints."""

    id: uuid.UUID
    content: str
    task_id: uuid.UUID
    author: UserSummary
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
