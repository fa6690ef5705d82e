"""
Authorization policy for projects, tasks and comments.

Access = may view/use the entity:
- project: owner or member
- task: anyone with access to the task's project, plus the task's assignee and reporter
- comment: anyone with access to the comment's task

Authorship = created the comment, and so is the only one allowed to edit or delete it.

Failed access checks raise BusinessLogicError (user is not a participant, they could be added to the project),
failed authorship checks raise AccessDeniedError (identity based, nothing the user can do about it).

All functions here are pure, the relationships they need (owner, members, assignee...)
are eagerly loaded with the models.
"""

from taskflow_api.exceptions import AccessDeniedError, BusinessLogicError
from taskflow_api.models.comments import CommentDB
from taskflow_api.models.projects import ProjectDB
from taskflow_api.models.tasks import TaskDB
from taskflow_api.models.users import UserDB


def can_access_project(user: UserDB, project: ProjectDB) -> bool:
    return project.owner_id == user.id or project.has_member(user.id)


def can_access_task(user: UserDB, task: TaskDB) -> bool:
    return (
        can_access_project(user, task.project)
        or (task.assignee_id is not None and task.assignee_id == user.id)
        or task.reporter_id == user.id
    )


def can_access_comment(user: UserDB, comment: CommentDB) -> bool:
    return can_access_task(user, comment.task)


def is_comment_author(user: UserDB, comment: CommentDB) -> bool:
    return comment.author_id == user.id


def ensure_can_access_project(user: UserDB, project: ProjectDB) -> None:
    if not can_access_project(user, project):
        raise BusinessLogicError("access project", "user is not a member or owner of the project")


def ensure_can_access_task(user: UserDB, task: TaskDB) -> None:
    if not can_access_task(user, task):
        raise BusinessLogicError("access task", "user does not have permission to access this task")


def ensure_comment_author(user: UserDB, comment: CommentDB, action: str) -> None:
    """action is e.g. "update" or "delete", used in the error message."""
    if not is_comment_author(user, comment):
        raise AccessDeniedError(action, f"comment - only author can {action} their own comments")
