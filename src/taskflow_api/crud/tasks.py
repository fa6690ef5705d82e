"""
CRUD operations for tasks.

Reporter and assignee must be able to access the task's project when set.
Status updates go through task_workflow.py, task creation does not.
"""

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow_api.crud.pagination import paginate
from taskflow_api.crud.projects import get_project_by_id_or_raise
from taskflow_api.crud.users import get_user_by_id_or_raise
from taskflow_api.exceptions import NotFoundError
from taskflow_api.models.comments import CommentDB
from taskflow_api.models.tasks import TaskDB, TaskPriority, TaskStatus
from taskflow_api.policy import ensure_can_access_project
from taskflow_api.schemas.pagination import PageParams, PageResponse
from taskflow_api.schemas.tasks import TaskCreate, TaskResponse, TaskUpdate
from taskflow_api.task_workflow import ensure_task_deletable, validate_status_transition

logger = logging.getLogger(__name__)

FINISHED_TASK_STATUSES = (TaskStatus.DONE, TaskStatus.CANCELLED)


async def get_task_by_id(db: AsyncSession, task_id: uuid.UUID) -> TaskDB | None:
    return await db.get(entity=TaskDB, ident=task_id)


async def get_task_by_id_or_raise(db: AsyncSession, task_id: uuid.UUID) -> TaskDB:
    task = await db.get(entity=TaskDB, ident=task_id)
    if not task:
        raise NotFoundError(f"Task not found with ID: {task_id}")
    return task


async def get_all_tasks(db: AsyncSession, page_params: PageParams) -> PageResponse[TaskResponse]:
    stmt = select(TaskDB).order_by(TaskDB.created_at.desc(), TaskDB.id)
    return await paginate(db=db, stmt=stmt, page_params=page_params, response_model=TaskResponse)


async def create_task(db: AsyncSession, task_data: TaskCreate, reporter_id: uuid.UUID) -> TaskDB:
    """
    Create a task reported by reporter_id.

    Raises BusinessLogicError if the reporter (or the assignee, if given) is not the owner or a member of the project.
    Status defaults to TODO and priority to MEDIUM.
    """
    logger.debug(f"Creating task: {task_data.title} for project: {task_data.project_id} by reporter: {reporter_id}")
    project = await get_project_by_id_or_raise(db=db, project_id=task_data.project_id)
    reporter = await get_user_by_id_or_raise(db=db, id=reporter_id)
    ensure_can_access_project(reporter, project)

    assignee = None
    if task_data.assignee_id is not None:
        assignee = await get_user_by_id_or_raise(db=db, id=task_data.assignee_id)
        ensure_can_access_project(assignee, project)

    task = TaskDB(
        title=task_data.title,
        description=task_data.description,
        status=task_data.status or TaskStatus.TODO,
        priority=task_data.priority or TaskPriority.MEDIUM,
        due_date=task_data.due_date,
        project_id=project.id,
        project=project,
        reporter_id=reporter.id,
        reporter=reporter,
        assignee_id=assignee.id if assignee else None,
        assignee=assignee,
    )
    db.add(task)
    await db.commit()
    await db.refresh(task)
    logger.info(f"Task created successfully with ID: {task.id}")
    return task


async def update_task(db: AsyncSession, task_id: uuid.UUID, task_data: TaskUpdate) -> TaskDB:
    """
    Partial update of a task.

    A status change is checked against the allowed transitions (BusinessLogicError if not allowed),
    a new assignee must be able to access the project.
    Nothing is written if any check fails.
    """
    task = await get_task_by_id_or_raise(db=db, task_id=task_id)
    update_data = task_data.model_dump(exclude_unset=True, exclude_none=True)

    new_status = update_data.pop("status", None)
    if new_status is not None:
        validate_status_transition(task.status, new_status)

    assignee_id = update_data.pop("assignee_id", None)
    if assignee_id is not None:
        assignee = await get_user_by_id_or_raise(db=db, id=assignee_id)
        ensure_can_access_project(assignee, task.project)
        task.assignee_id = assignee.id
        task.assignee = assignee

    if new_status is not None:
        task.status = new_status
    for field, value in update_data.items():
        setattr(task, field, value)

    await db.commit()
    await db.refresh(task)
    logger.info(f"Task updated successfully with ID: {task.id}")
    return task


async def delete_task(db: AsyncSession, task_id: uuid.UUID) -> None:
    """Delete a task and its comments. Tasks that are IN_PROGRESS cannot be deleted."""
    task = await get_task_by_id_or_raise(db=db, task_id=task_id)
    ensure_task_deletable(task)

    await db.execute(delete(CommentDB).where(CommentDB.task_id == task_id))
    await db.delete(task)
    await db.commit()
    logger.info(f"Task deleted successfully with ID: {task_id}")


async def get_tasks_by_project(db: AsyncSession, project_id: uuid.UUID) -> list[TaskDB]:
    stmt = select(TaskDB).where(TaskDB.project_id == project_id).order_by(TaskDB.created_at, TaskDB.id)
    return await _fetch_all(db=db, stmt=stmt)


async def get_tasks_by_project_paginated(
    db: AsyncSession, project_id: uuid.UUID, page_params: PageParams
) -> PageResponse[TaskResponse]:
    stmt = select(TaskDB).where(TaskDB.project_id == project_id).order_by(TaskDB.created_at, TaskDB.id)
    return await paginate(db=db, stmt=stmt, page_params=page_params, response_model=TaskResponse)


async def get_tasks_by_project_and_status(db: AsyncSession, project_id: uuid.UUID, status: TaskStatus) -> list[TaskDB]:
    stmt = (
        select(TaskDB)
        .where(TaskDB.project_id == project_id, TaskDB.status == status)
        .order_by(TaskDB.created_at, TaskDB.id)
    )
    return await _fetch_all(db=db, stmt=stmt)


async def get_tasks_by_project_and_assignee(
    db: AsyncSession, project_id: uuid.UUID, assignee_id: uuid.UUID
) -> list[TaskDB]:
    stmt = (
        select(TaskDB)
        .where(TaskDB.project_id == project_id, TaskDB.assignee_id == assignee_id)
        .order_by(TaskDB.created_at, TaskDB.id)
    )
    return await _fetch_all(db=db, stmt=stmt)


async def get_tasks_by_assignee(
    db: AsyncSession, assignee_id: uuid.UUID, status: TaskStatus | None = None
) -> list[TaskDB]:
    stmt = select(TaskDB).where(TaskDB.assignee_id == assignee_id)
    if status is not None:
        stmt = stmt.where(TaskDB.status == status)
    return await _fetch_all(db=db, stmt=stmt.order_by(TaskDB.created_at, TaskDB.id))


async def get_active_tasks_by_assignee(db: AsyncSession, assignee_id: uuid.UUID) -> list[TaskDB]:
    """Tasks assigned to the user that are neither DONE nor CANCELLED, most urgent first."""
    stmt = select(TaskDB).where(TaskDB.assignee_id == assignee_id, TaskDB.status.not_in(FINISHED_TASK_STATUSES))
    tasks = await _fetch_all(db=db, stmt=stmt.order_by(TaskDB.created_at, TaskDB.id))
    return sorted(tasks, key=lambda task: _PRIORITY_ORDER[task.priority])


async def assign_task(db: AsyncSession, task_id: uuid.UUID, assignee_id: uuid.UUID) -> TaskDB:
    """Raises BusinessLogicError if the assignee is not the owner or a member of the task's project."""
    task = await get_task_by_id_or_raise(db=db, task_id=task_id)
    assignee = await get_user_by_id_or_raise(db=db, id=assignee_id)
    ensure_can_access_project(assignee, task.project)

    task.assignee_id = assignee.id
    task.assignee = assignee
    await db.commit()
    await db.refresh(task)
    logger.info(f"Task {task_id} assigned to user {assignee_id}")
    return task


async def unassign_task(db: AsyncSession, task_id: uuid.UUID) -> TaskDB:
    task = await get_task_by_id_or_raise(db=db, task_id=task_id)
    task.assignee_id = None
    task.assignee = None
    await db.commit()
    await db.refresh(task)
    logger.info(f"Task {task_id} unassigned")
    return task


async def update_task_status(db: AsyncSession, task_id: uuid.UUID, status: TaskStatus) -> TaskDB:
    """Raises BusinessLogicError if the transition from the current status is not allowed."""
    task = await get_task_by_id_or_raise(db=db, task_id=task_id)
    validate_status_transition(task.status, status)

    old_status = task.status
    task.status = status
    await db.commit()
    await db.refresh(task)
    logger.info(f"Task {task_id} status changed from {old_status} to {status}")
    return task


async def update_task_priority(db: AsyncSession, task_id: uuid.UUID, priority: TaskPriority) -> TaskDB:
    task = await get_task_by_id_or_raise(db=db, task_id=task_id)
    task.priority = priority
    await db.commit()
    await db.refresh(task)
    return task


async def get_tasks_by_status(db: AsyncSession, status: TaskStatus) -> list[TaskDB]:
    stmt = select(TaskDB).where(TaskDB.status == status).order_by(TaskDB.created_at, TaskDB.id)
    return await _fetch_all(db=db, stmt=stmt)


async def get_tasks_by_priority(db: AsyncSession, priority: TaskPriority) -> list[TaskDB]:
    stmt = select(TaskDB).where(TaskDB.priority == priority).order_by(TaskDB.created_at, TaskDB.id)
    return await _fetch_all(db=db, stmt=stmt)


async def get_overdue_tasks(
    db: AsyncSession, assignee_id: uuid.UUID | None = None, now: datetime | None = None
) -> list[TaskDB]:
    """Tasks whose due date has passed and that are neither DONE nor CANCELLED."""
    now = now or datetime.now(tz=timezone.utc)
    stmt = select(TaskDB).where(TaskDB.due_date < now, TaskDB.status.not_in(FINISHED_TASK_STATUSES))
    if assignee_id is not None:
        stmt = stmt.where(TaskDB.assignee_id == assignee_id)
    return await _fetch_all(db=db, stmt=stmt.order_by(TaskDB.due_date))


async def get_tasks_with_due_date_before(db: AsyncSession, due_date: datetime) -> list[TaskDB]:
    stmt = select(TaskDB).where(TaskDB.due_date < due_date).order_by(TaskDB.due_date)
    return await _fetch_all(db=db, stmt=stmt)


async def get_tasks_with_due_date_between(db: AsyncSession, start: datetime, end: datetime) -> list[TaskDB]:
    """Both ends inclusive."""
    stmt = select(TaskDB).where(TaskDB.due_date.between(start, end)).order_by(TaskDB.due_date)
    return await _fetch_all(db=db, stmt=stmt)


async def search_tasks(db: AsyncSession, search: str, project_id: uuid.UUID | None = None) -> list[TaskDB]:
    """Case insensitive substring search over title and description, optionally within one project."""
    pattern = f"%{search.lower()}%"
    stmt = select(TaskDB).where(
        or_(func.lower(TaskDB.title).like(pattern), func.lower(TaskDB.description).like(pattern))
    )
    if project_id is not None:
        stmt = stmt.where(TaskDB.project_id == project_id)
    return await _fetch_all(db=db, stmt=stmt.order_by(TaskDB.title))


async def count_tasks(
    db: AsyncSession, status: TaskStatus | None = None, assignee_id: uuid.UUID | None = None
) -> int:
    stmt = select(func.count(TaskDB.id))
    if status is not None:
        stmt = stmt.where(TaskDB.status == status)
    if assignee_id is not None:
        stmt = stmt.where(TaskDB.assignee_id == assignee_id)
    result = await db.execute(stmt)
    return result.scalar() or 0


async def count_active_tasks_by_assignee(db: AsyncSession, assignee_id: uuid.UUID) -> int:
    stmt = select(func.count(TaskDB.id)).where(
        TaskDB.assignee_id == assignee_id, TaskDB.status.not_in(FINISHED_TASK_STATUSES)
    )
    result = await db.execute(stmt)
    return result.scalar() or 0


async def get_assignee_workload_by_project(db: AsyncSession, project_id: uuid.UUID) -> dict[uuid.UUID, int]:
    """Number of unfinished tasks per assignee in a project. Unassigned tasks are left out."""
    stmt = (
        select(TaskDB.assignee_id, func.count(TaskDB.id))
        .where(
            TaskDB.project_id == project_id,
            TaskDB.assignee_id.is_not(None),
            TaskDB.status.not_in(FINISHED_TASK_STATUSES),
        )
        .group_by(TaskDB.assignee_id)
    )
    result = await db.execute(stmt)
    return {assignee_id: count for assignee_id, count in result.all()}


async def get_task_status_statistics_by_project(db: AsyncSession, project_id: uuid.UUID) -> dict[TaskStatus, int]:
    stmt = (
        select(TaskDB.status, func.count(TaskDB.id))
        .where(TaskDB.project_id == project_id)
        .group_by(TaskDB.status)
    )
    result = await db.execute(stmt)
    return {TaskStatus(status): count for status, count in result.all()}


async def get_task_priority_statistics_by_project(
    db: AsyncSession, project_id: uuid.UUID
) -> dict[TaskPriority, int]:
    stmt = (
        select(TaskDB.priority, func.count(TaskDB.id))
        .where(TaskDB.project_id == project_id)
        .group_by(TaskDB.priority)
    )
    result = await db.execute(stmt)
    return {TaskPriority(priority): count for priority, count in result.all()}


_PRIORITY_ORDER = {
    TaskPriority.CRITICAL: 0,
    TaskPriority.HIGH: 1,
    TaskPriority.MEDIUM: 2,
    TaskPriority.LOW: 3,
}


async def _fetch_all(db: AsyncSession, stmt) -> list[TaskDB]:
    result = await db.execute(stmt)
    return list(result.scalars().all())
