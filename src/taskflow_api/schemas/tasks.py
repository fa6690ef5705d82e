"""
Pydantic schemas for task-related operations.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from taskflow_api.models.tasks import TaskPriority, TaskStatus
from taskflow_api.schemas.projects import ProjectSummaryResponse
from taskflow_api.schemas.users import UserSummary


class TaskCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str | None = Field(None, max_length=5000)
    project_id: uuid.UUID
    status: TaskStatus | None = Field(None, description="Defaults to TODO. Not checked against the workflow.")
    priority: TaskPriority | None = Field(None, description="Defaults to MEDIUM")
    due_date: datetime | None = None
    assignee_id: uuid.UUID | None = None

    model_config = ConfigDict(str_strip_whitespace=True)


class TaskUpdate(BaseModel):
    """Partial update. A status change must be an allowed transition (see task_workflow.py)."""

    title: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = Field(None, max_length=5000)
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    due_date: datetime | None = None
    assignee_id: uuid.UUID | None = None

    model_config = ConfigDict(str_strip_whitespace=True)


class TaskSummaryResponse(BaseModel):
    id: uuid.UUID
    title: str
    status: TaskStatus
    priority: TaskPriority
    due_date: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class TaskResponse(TaskSummaryResponse):
    """Response schema, aka returned by API endpoints."""

    description: str | None = None
    project: ProjectSummaryResponse
    reporter: UserSummary
    assignee: UserSummary | None = None
    created_at: datetime
    updated_at: datetime
