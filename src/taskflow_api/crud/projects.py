"""
CRUD operations for projects and their memberships.
"""

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow_api.crud.pagination import paginate
from taskflow_api.crud.users import get_user_by_id_or_raise
from taskflow_api.exceptions import NotFoundError
from taskflow_api.models.comments import CommentDB
from taskflow_api.models.projects import ProjectDB, ProjectStatus, project_member_table
from taskflow_api.models.tasks import TaskDB
from taskflow_api.models.users import UserDB
from taskflow_api.schemas.pagination import PageParams, PageResponse
from taskflow_api.schemas.projects import ProjectCreate, ProjectResponse, ProjectUpdate

logger = logging.getLogger(__name__)

CLOSED_PROJECT_STATUSES = (ProjectStatus.COMPLETED, ProjectStatus.ARCHIVED)


async def get_project_by_id(db: AsyncSession, project_id: uuid.UUID) -> ProjectDB | None:
    return await db.get(entity=ProjectDB, ident=project_id)


async def get_project_by_id_or_raise(db: AsyncSession, project_id: uuid.UUID) -> ProjectDB:
    project = await db.get(entity=ProjectDB, ident=project_id)
    if not project:
        raise NotFoundError(f"Project not found with ID: {project_id}")
    return project


async def get_all_projects(db: AsyncSession, page_params: PageParams) -> PageResponse[ProjectResponse]:
    stmt = select(ProjectDB).order_by(ProjectDB.created_at.desc(), ProjectDB.id)
    return await paginate(db=db, stmt=stmt, page_params=page_params, response_model=ProjectResponse)


async def create_project(db: AsyncSession, project_data: ProjectCreate, owner_id: uuid.UUID) -> ProjectDB:
    """
    Create a project owned by owner_id. Status defaults to ACTIVE.

    Raises NotFoundError if the owner or any of the requested members do not exist.
    """
    logger.debug(f"Creating project: {project_data.name} for owner: {owner_id}")
    owner = await get_user_by_id_or_raise(db=db, id=owner_id)
    members = await _get_users_or_raise(db=db, user_ids=project_data.member_ids or set())

    project = ProjectDB(
        name=project_data.name,
        description=project_data.description,
        status=project_data.status or ProjectStatus.ACTIVE,
        deadline=project_data.deadline,
        owner_id=owner.id,
        owner=owner,
        members=members,
    )
    db.add(project)
    await db.commit()
    await db.refresh(project)
    logger.info(f"Project created successfully with ID: {project.id}")
    return project


async def update_project(db: AsyncSession, project_id: uuid.UUID, project_data: ProjectUpdate) -> ProjectDB:
    """Partial update, if member_ids is given the members are replaced by exactly those users."""
    project = await get_project_by_id_or_raise(db=db, project_id=project_id)
    update_data = project_data.model_dump(exclude_unset=True, exclude_none=True)

    member_ids = update_data.pop("member_ids", None)
    if member_ids is not None:
        project.members = await _get_users_or_raise(db=db, user_ids=member_ids)

    for field, value in update_data.items():
        setattr(project, field, value)

    await db.commit()
    await db.refresh(project)
    logger.info(f"Project updated successfully with ID: {project.id}")
    return project


async def delete_project(db: AsyncSession, project_id: uuid.UUID) -> None:
    """Delete a project, together with all its tasks and their comments."""
    project = await get_project_by_id_or_raise(db=db, project_id=project_id)

    task_ids = select(TaskDB.id).where(TaskDB.project_id == project_id)
    await db.execute(delete(CommentDB).where(CommentDB.task_id.in_(task_ids)))
    await db.execute(delete(TaskDB).where(TaskDB.project_id == project_id))

    project.members = []
    await db.delete(project)
    await db.commit()
    logger.info(f"Project deleted successfully with ID: {project_id}")


async def get_projects_by_owner(db: AsyncSession, owner_id: uuid.UUID) -> list[ProjectDB]:
    stmt = select(ProjectDB).where(ProjectDB.owner_id == owner_id).order_by(ProjectDB.name)
    return await _fetch_all(db=db, stmt=stmt)


async def get_projects_by_member(db: AsyncSession, member_id: uuid.UUID) -> list[ProjectDB]:
    stmt = select(ProjectDB).where(ProjectDB.id.in_(_member_project_ids(member_id))).order_by(ProjectDB.name)
    return await _fetch_all(db=db, stmt=stmt)


async def get_projects_by_user_involved(db: AsyncSession, user_id: uuid.UUID) -> list[ProjectDB]:
    """Projects the user owns or is a member of."""
    stmt = (
        select(ProjectDB)
        .where(or_(ProjectDB.owner_id == user_id, ProjectDB.id.in_(_member_project_ids(user_id))))
        .order_by(ProjectDB.name)
    )
    return await _fetch_all(db=db, stmt=stmt)


async def get_active_projects_by_member(db: AsyncSession, member_id: uuid.UUID) -> list[ProjectDB]:
    stmt = (
        select(ProjectDB)
        .where(ProjectDB.id.in_(_member_project_ids(member_id)), ProjectDB.status == ProjectStatus.ACTIVE)
        .order_by(ProjectDB.name)
    )
    return await _fetch_all(db=db, stmt=stmt)


async def add_member(db: AsyncSession, project_id: uuid.UUID, user_id: uuid.UUID) -> ProjectDB:
    """Adding an existing member is a no-op."""
    return await add_members(db=db, project_id=project_id, user_ids={user_id})


async def add_members(db: AsyncSession, project_id: uuid.UUID, user_ids: set[uuid.UUID]) -> ProjectDB:
    project = await get_project_by_id_or_raise(db=db, project_id=project_id)
    new_members = await _get_users_or_raise(db=db, user_ids=user_ids)

    for user in new_members:
        if not project.has_member(user.id):
            project.members.append(user)

    await db.commit()
    await db.refresh(project)
    logger.info(f"Members {sorted(str(id) for id in user_ids)} added to project {project_id}")
    return project


async def remove_member(db: AsyncSession, project_id: uuid.UUID, user_id: uuid.UUID) -> ProjectDB:
    """Removing a user that is not a member is a no-op. The owner cannot be removed this way."""
    return await remove_members(db=db, project_id=project_id, user_ids={user_id})


async def remove_members(db: AsyncSession, project_id: uuid.UUID, user_ids: set[uuid.UUID]) -> ProjectDB:
    project = await get_project_by_id_or_raise(db=db, project_id=project_id)
    await _get_users_or_raise(db=db, user_ids=user_ids)

    project.members = [member for member in project.members if member.id not in user_ids]

    await db.commit()
    await db.refresh(project)
    logger.info(f"Members {sorted(str(id) for id in user_ids)} removed from project {project_id}")
    return project


async def get_projects_by_status(db: AsyncSession, status: ProjectStatus) -> list[ProjectDB]:
    stmt = select(ProjectDB).where(ProjectDB.status == status).order_by(ProjectDB.name)
    return await _fetch_all(db=db, stmt=stmt)


async def update_project_status(db: AsyncSession, project_id: uuid.UUID, status: ProjectStatus) -> ProjectDB:
    """Projects have no workflow, any status can be set from any status."""
    project = await get_project_by_id_or_raise(db=db, project_id=project_id)
    project.status = status
    await db.commit()
    await db.refresh(project)
    logger.info(f"Project {project_id} status updated to {status}")
    return project


async def get_overdue_projects(db: AsyncSession, now: datetime | None = None) -> list[ProjectDB]:
    """Projects whose deadline has passed and which are neither COMPLETED nor ARCHIVED."""
    now = now or datetime.now(tz=timezone.utc)
    stmt = (
        select(ProjectDB)
        .where(ProjectDB.deadline < now, ProjectDB.status.not_in(CLOSED_PROJECT_STATUSES))
        .order_by(ProjectDB.deadline)
    )
    return await _fetch_all(db=db, stmt=stmt)


async def get_projects_with_deadline_before(db: AsyncSession, deadline: datetime) -> list[ProjectDB]:
    stmt = select(ProjectDB).where(ProjectDB.deadline < deadline).order_by(ProjectDB.deadline)
    return await _fetch_all(db=db, stmt=stmt)


async def get_projects_with_deadline_between(db: AsyncSession, start: datetime, end: datetime) -> list[ProjectDB]:
    """Both ends inclusive."""
    stmt = select(ProjectDB).where(ProjectDB.deadline.between(start, end)).order_by(ProjectDB.deadline)
    return await _fetch_all(db=db, stmt=stmt)


async def search_projects(db: AsyncSession, search: str) -> list[ProjectDB]:
    """Case insensitive substring search over name and description."""
    pattern = f"%{search.lower()}%"
    stmt = (
        select(ProjectDB)
        .where(or_(func.lower(ProjectDB.name).like(pattern), func.lower(ProjectDB.description).like(pattern)))
        .order_by(ProjectDB.name)
    )
    return await _fetch_all(db=db, stmt=stmt)


async def count_projects(db: AsyncSession, status: ProjectStatus | None = None) -> int:
    stmt = select(func.count(ProjectDB.id))
    if status is not None:
        stmt = stmt.where(ProjectDB.status == status)
    result = await db.execute(stmt)
    return result.scalar() or 0


async def count_project_members(db: AsyncSession, project_id: uuid.UUID) -> int:
    """Number of members, the owner is only counted if they are also a member."""
    stmt = select(func.count()).select_from(project_member_table).where(project_member_table.c.project_id == project_id)
    result = await db.execute(stmt)
    return result.scalar() or 0


async def get_projects_with_min_members(db: AsyncSession, member_count: int) -> list[ProjectDB]:
    """Projects with at least member_count members (the owner is not counted)."""
    members = (
        select(func.count())
        .select_from(project_member_table)
        .where(project_member_table.c.project_id == ProjectDB.id)
        .scalar_subquery()
    )
    stmt = select(ProjectDB).where(members >= member_count).order_by(ProjectDB.name)
    return await _fetch_all(db=db, stmt=stmt)


async def get_projects_with_more_tasks(db: AsyncSession, task_count: int) -> list[ProjectDB]:
    """Projects with strictly more than task_count tasks, whatever their status."""
    tasks = select(func.count(TaskDB.id)).where(TaskDB.project_id == ProjectDB.id).scalar_subquery()
    stmt = select(ProjectDB).where(tasks > task_count).order_by(ProjectDB.name)
    return await _fetch_all(db=db, stmt=stmt)


async def get_project_status_statistics(db: AsyncSession) -> dict[ProjectStatus, int]:
    stmt = select(ProjectDB.status, func.count(ProjectDB.id)).group_by(ProjectDB.status)
    result = await db.execute(stmt)
    return {ProjectStatus(status): count for status, count in result.all()}


def _member_project_ids(user_id: uuid.UUID):
    return select(project_member_table.c.project_id).where(project_member_table.c.user_id == user_id)


async def _fetch_all(db: AsyncSession, stmt) -> list[ProjectDB]:
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def _get_users_or_raise(db: AsyncSession, user_ids: set[uuid.UUID]) -> list[UserDB]:
    if not user_ids:
        return []
    result = await db.execute(select(UserDB).where(UserDB.id.in_(user_ids)))
    users = list(result.scalars().all())

    missing_ids = set(user_ids) - {user.id for user in users}
    if missing_ids:
        raise NotFoundError(f"User not found with ID: {', '.join(sorted(str(id) for id in missing_ids))}")
    return users
