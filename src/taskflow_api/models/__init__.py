"""
Import all models here to ensure proper initialization order.

They are imported in dependency order to avoid circular import issues.
"""

from taskflow_api.models.base import Base, BaseDBModel
from taskflow_api.models.users import Role, UserDB
from taskflow_api.models.projects import ProjectDB, ProjectStatus, project_member_table
from taskflow_api.models.tasks import TaskDB, TaskPriority, TaskStatus
from taskflow_api.models.comments import CommentDB

__all__ = [
    "Base",
    "BaseDBModel",
    "Role",
    "UserDB",
    "ProjectDB",
    "ProjectStatus",
    "project_member_table",
    "TaskDB",
    "TaskPriority",
    "TaskStatus",
    "CommentDB",
]
