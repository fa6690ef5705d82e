"""
Task DB Model.

The allowed status transitions live in task_workflow.py, not on the model.
"""

import uuid
from datetime import datetime
from enum import StrEnum

from sqlalchemy import DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from taskflow_api.models.base import BaseDBModel
from taskflow_api.models.projects import ProjectDB
from taskflow_api.models.users import UserDB


class TaskStatus(StrEnum):
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    IN_REVIEW = "IN_REVIEW"
    DONE = "DONE"
    CANCELLED = "CANCELLED"


class TaskPriority(StrEnum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class TaskDB(BaseDBModel):
    """
    DB Model for a task.

    id, created_at and updated_at are inherited from BaseDBModel.

    reporter is set on creation and never changed afterwards.
    Deleting the project deletes its tasks (see crud/projects.py delete_project).
    """

    __tablename__ = "task"

    title: Mapped[str] = mapped_column(String(200), index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[TaskStatus] = mapped_column(index=True, default=TaskStatus.TODO)
    priority: Mapped[TaskPriority] = mapped_column(index=True, default=TaskPriority.MEDIUM)
    due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)

    project_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("project.id", ondelete="CASCADE"), index=True)
    reporter_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("user.id", ondelete="CASCADE"), index=True)
    assignee_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("user.id", ondelete="SET NULL"), index=True, nullable=True
    )

    project: Mapped[ProjectDB] = relationship(ProjectDB, lazy="selectin")
    reporter: Mapped[UserDB] = relationship(UserDB, foreign_keys=[reporter_id], lazy="selectin")
    assignee: Mapped[UserDB | None] = relationship(UserDB, foreign_keys=[assignee_id], lazy="selectin")

    def __repr__(self) -> str:
        return f"<TaskDB id={self.id}, title={self.title}, status={self.status}, project_id={self.project_id}>"
