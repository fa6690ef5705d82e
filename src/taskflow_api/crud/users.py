"""
CRUD operations for users.
"""

import logging
import uuid
from datetime import datetime

from sqlalchemy import String, cast, delete, exists, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow_api.crud.pagination import paginate
from taskflow_api.exceptions import DuplicateError, NotFoundError
from taskflow_api.models.comments import CommentDB
from taskflow_api.models.projects import ProjectDB, project_member_table
from taskflow_api.models.tasks import TaskDB, TaskStatus
from taskflow_api.models.users import Role, UserDB
from taskflow_api.schemas.pagination import PageParams, PageResponse
from taskflow_api.schemas.users import UserCreate, UserResponse, UserUpdate
from taskflow_api.security import get_password_hash

logger = logging.getLogger(__name__)


async def get_user_by_id(db: AsyncSession, id: uuid.UUID) -> UserDB | None:
    """Get user by ID."""
    return await db.get(entity=UserDB, ident=id)


async def get_user_by_id_or_raise(db: AsyncSession, id: uuid.UUID) -> UserDB:
    """Get user by ID, but raise NotFoundError if user not found."""
    user = await db.get(entity=UserDB, ident=id)
    if not user:
        raise NotFoundError(f"User not found with ID: {id}")
    return user


async def get_user_by_username(db: AsyncSession, username: str) -> UserDB | None:
    stmt = select(UserDB).where(UserDB.username == username)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_user_by_username_or_raise(db: AsyncSession, username: str) -> UserDB:
    user = await get_user_by_username(db=db, username=username)
    if not user:
        raise NotFoundError(f"User not found with username: {username}")
    return user


async def get_user_by_email(db: AsyncSession, email: str) -> UserDB | None:
    """Get user by email (emails are stored lowercase)."""
    stmt = select(UserDB).where(UserDB.email == email.lower())
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_user_by_email_or_raise(db: AsyncSession, email: str) -> UserDB:
    user = await get_user_by_email(db=db, email=email)
    if not user:
        raise NotFoundError(f"User not found with email: {email}")
    return user


async def exists_by_username(db: AsyncSession, username: str) -> bool:
    result = await db.execute(select(exists().where(UserDB.username == username)))
    return bool(result.scalar())


async def exists_by_email(db: AsyncSession, email: str) -> bool:
    result = await db.execute(select(exists().where(UserDB.email == email.lower())))
    return bool(result.scalar())


async def get_all_users(db: AsyncSession, page_params: PageParams) -> PageResponse[UserResponse]:
    stmt = select(UserDB).order_by(UserDB.username)
    return await paginate(db=db, stmt=stmt, page_params=page_params, response_model=UserResponse)


async def create_user(db: AsyncSession, user_data: UserCreate) -> UserDB:
    """Create a new user, users get the USER role if no roles are given."""
    logger.debug(f"Creating user with username: {user_data.username}")
    await _validate_username_unique(db=db, username=user_data.username)
    await _validate_email_unique(db=db, email=user_data.email)

    user_dict = user_data.model_dump(exclude={"password", "roles"})
    roles = user_data.roles or {Role.USER}

    user = UserDB(
        **user_dict,
        hashed_password=get_password_hash(user_data.password),
        roles=_serialise_roles(roles),
        enabled=True,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    logger.info(f"User created successfully with ID: {user.id}")
    return user


async def update_user(db: AsyncSession, user_id: uuid.UUID, user_data: UserUpdate) -> UserDB:
    """Partial update of a user, username and email are re-checked for uniqueness if changed."""
    user = await get_user_by_id_or_raise(db=db, id=user_id)
    update_data = user_data.model_dump(exclude_unset=True, exclude_none=True)

    new_username = update_data.pop("username", None)
    if new_username and new_username != user.username:
        await _validate_username_unique(db=db, username=new_username)
        user.username = new_username

    new_email = update_data.pop("email", None)
    if new_email and new_email != user.email:
        await _validate_email_unique(db=db, email=new_email)
        user.email = new_email

    new_roles = update_data.pop("roles", None)
    if new_roles is not None:
        user.roles = _serialise_roles(new_roles)

    for field, value in update_data.items():
        setattr(user, field, value)

    await db.commit()
    await db.refresh(user)
    logger.info(f"User updated successfully with ID: {user.id}")
    return user


async def delete_user(db: AsyncSession, user_id: uuid.UUID) -> None:
    """
    Delete a user and everything they own.

    Cascades are done explicitly here: the user's comments, the tasks they reported
    (and the comments on those), and the projects they own (with all their tasks) are deleted.
    Tasks assigned to the user are unassigned.
    """
    user = await get_user_by_id_or_raise(db=db, id=user_id)

    owned_project_ids = select(ProjectDB.id).where(ProjectDB.owner_id == user_id)
    doomed_task_ids = select(TaskDB.id).where(or_(TaskDB.reporter_id == user_id, TaskDB.project_id.in_(owned_project_ids)))

    await db.execute(
        delete(CommentDB).where(or_(CommentDB.author_id == user_id, CommentDB.task_id.in_(doomed_task_ids)))
    )
    await db.execute(delete(TaskDB).where(TaskDB.id.in_(doomed_task_ids)))
    await db.execute(update(TaskDB).where(TaskDB.assignee_id == user_id).values(assignee_id=None))
    await db.execute(
        delete(project_member_table).where(
            or_(
                project_member_table.c.user_id == user_id,
                project_member_table.c.project_id.in_(owned_project_ids),
            )
        )
    )
    await db.execute(delete(ProjectDB).where(ProjectDB.owner_id == user_id))
    await db.delete(user)
    await db.commit()
    logger.info(f"User deleted successfully with ID: {user_id}")


async def add_role(db: AsyncSession, user_id: uuid.UUID, role: Role) -> UserDB:
    user = await get_user_by_id_or_raise(db=db, id=user_id)
    user.roles = _serialise_roles(set(user.roles) | {role})
    await db.commit()
    await db.refresh(user)
    logger.info(f"Role {role} added to user {user_id}")
    return user


async def remove_role(db: AsyncSession, user_id: uuid.UUID, role: Role) -> UserDB:
    """Note: access tokens already issued keep the removed role until they expire."""
    user = await get_user_by_id_or_raise(db=db, id=user_id)
    user.roles = _serialise_roles(set(user.roles) - {role})
    await db.commit()
    await db.refresh(user)
    logger.info(f"Role {role} removed from user {user_id}")
    return user


async def set_user_enabled(db: AsyncSession, user: UserDB, enabled: bool) -> UserDB:
    user.enabled = enabled
    await db.commit()
    await db.refresh(user)
    return user


async def get_users_by_role(db: AsyncSession, role: Role) -> list[UserDB]:
    stmt = select(UserDB).where(_has_role(role)).order_by(UserDB.username)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_users_by_roles(db: AsyncSession, roles: set[Role]) -> list[UserDB]:
    """Users with any of the given roles."""
    if not roles:
        return []
    stmt = select(UserDB).where(or_(*(_has_role(role) for role in roles))).order_by(UserDB.username)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def count_users_by_role(db: AsyncSession, role: Role) -> int:
    result = await db.execute(select(func.count(UserDB.id)).where(_has_role(role)))
    return result.scalar() or 0


async def count_users_with_active_tasks(db: AsyncSession) -> int:
    """Users assigned at least one task that is not DONE or CANCELLED."""
    stmt = select(func.count(func.distinct(TaskDB.assignee_id))).where(
        TaskDB.assignee_id.is_not(None), TaskDB.status.not_in((TaskStatus.DONE, TaskStatus.CANCELLED))
    )
    result = await db.execute(stmt)
    return result.scalar() or 0


async def get_users_by_project_id(db: AsyncSession, project_id: uuid.UUID) -> list[UserDB]:
    """Owner and members of a project."""
    member_ids = select(project_member_table.c.user_id).where(project_member_table.c.project_id == project_id)
    owner_id = select(ProjectDB.owner_id).where(ProjectDB.id == project_id)
    stmt = select(UserDB).where(or_(UserDB.id.in_(member_ids), UserDB.id.in_(owner_id))).order_by(UserDB.username)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_assignees_by_project_id(db: AsyncSession, project_id: uuid.UUID) -> list[UserDB]:
    """Users who have at least one task assigned to them in the project."""
    assignee_ids = select(TaskDB.assignee_id).where(TaskDB.project_id == project_id, TaskDB.assignee_id.is_not(None))
    stmt = select(UserDB).where(UserDB.id.in_(assignee_ids)).order_by(UserDB.username)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def search_users(db: AsyncSession, search: str) -> list[UserDB]:
    """Case insensitive substring search over username, email, first and last name."""
    pattern = f"%{search.lower()}%"
    stmt = (
        select(UserDB)
        .where(
            or_(
                func.lower(UserDB.username).like(pattern),
                func.lower(UserDB.email).like(pattern),
                func.lower(UserDB.first_name).like(pattern),
                func.lower(UserDB.last_name).like(pattern),
            )
        )
        .order_by(UserDB.username)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_users_by_enabled(db: AsyncSession, enabled: bool) -> list[UserDB]:
    stmt = select(UserDB).where(UserDB.enabled == enabled).order_by(UserDB.username)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def count_users(db: AsyncSession, created_after: datetime | None = None) -> int:
    stmt = select(func.count(UserDB.id))
    if created_after is not None:
        stmt = stmt.where(UserDB.created_at > created_after)
    result = await db.execute(stmt)
    return result.scalar() or 0


def _has_role(role: Role):
    """
    Roles are a JSON list, so match on the serialised form.
    This works the same for the JSON text stored by SQLite and a json column cast to text in PostgreSQL.
    """
    return cast(UserDB.roles, String).like(f'%"{Role(role).value}"%')


def _serialise_roles(roles: set[Role]) -> list[str]:
    """Sorted so the stored JSON is stable."""
    return sorted(Role(role).value for role in roles)


async def _validate_username_unique(db: AsyncSession, username: str) -> None:
    if await exists_by_username(db=db, username=username):
        raise DuplicateError(f"User already exists with username: {username}")


async def _validate_email_unique(db: AsyncSession, email: str) -> None:
    if await exists_by_email(db=db, email=email):
        raise DuplicateError(f"User already exists with email: {email}")
