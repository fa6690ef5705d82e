"""
Pydantic schemas for project-related operations.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from taskflow_api.models.projects import ProjectStatus
from taskflow_api.schemas.users import UserSummary


class ProjectBase(BaseModel):
    name: str = Field(..., min_length=3, max_length=100)
    description: str | None = Field(None, max_length=1000)
    deadline: datetime | None = None

    model_config = ConfigDict(from_attributes=True, str_strip_whitespace=True)


class ProjectCreate(ProjectBase):
    status: ProjectStatus | None = None
    member_ids: set[uuid.UUID] | None = None


class ProjectUpdate(BaseModel):
    """Partial update. If member_ids is given it replaces the current members."""

    name: str | None = Field(None, min_length=3, max_length=100)
    description: str | None = Field(None, max_length=1000)
    status: ProjectStatus | None = None
    deadline: datetime | None = None
    member_ids: set[uuid.UUID] | None = None

    model_config = ConfigDict(str_strip_whitespace=True)


class ProjectSummaryResponse(BaseModel):
    id: uuid.UUID
    name: str
    status: ProjectStatus
    deadline: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class ProjectResponse(ProjectBase):
    """Response schema, aka returned by API endpoints."""

    id: uuid.UUID
    status: ProjectStatus
    owner: UserSummary
    members: list[UserSummary]
    created_at: datetime
    updated_at: datetime
