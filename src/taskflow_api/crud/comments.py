"""
CRUD operations for comments on tasks.

Anyone with access to a task may comment on it, only the author of a comment may edit or delete it.
"""

import logging
import uuid
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow_api.crud.pagination import paginate
from taskflow_api.crud.tasks import get_task_by_id_or_raise
from taskflow_api.crud.users import get_user_by_id_or_raise
from taskflow_api.exceptions import NotFoundError
from taskflow_api.models.comments import CommentDB
from taskflow_api.models.tasks import TaskDB
from taskflow_api.policy import can_access_comment, ensure_can_access_task, ensure_comment_author
from taskflow_api.schemas.comments import CommentCreate, CommentResponse, CommentUpdate
from taskflow_api.schemas.pagination import PageParams, PageResponse

logger = logging.getLogger(__name__)


async def get_comment_by_id(db: AsyncSession, comment_id: uuid.UUID) -> CommentDB | None:
    return await db.get(entity=CommentDB, ident=comment_id)


async def get_comment_by_id_or_raise(db: AsyncSession, comment_id: uuid.UUID) -> CommentDB:
    comment = await db.get(entity=CommentDB, ident=comment_id)
    if not comment:
        raise NotFoundError(f"Comment not found with ID: {comment_id}")
    return comment


async def get_all_comments(db: AsyncSession, page_params: PageParams) -> PageResponse[CommentResponse]:
    stmt = select(CommentDB).order_by(CommentDB.created_at.desc(), CommentDB.id.desc())
    return await paginate(db=db, stmt=stmt, page_params=page_params, response_model=CommentResponse)


async def create_comment(
    db: AsyncSession, task_id: uuid.UUID, comment_data: CommentCreate, author_id: uuid.UUID
) -> CommentDB:
    """Raises BusinessLogicError if the author does not have access to the task."""
    logger.debug(f"Creating comment for task: {task_id} by author: {author_id}")
    task = await get_task_by_id_or_raise(db=db, task_id=task_id)
    author = await get_user_by_id_or_raise(db=db, id=author_id)
    ensure_can_access_task(author, task)

    comment = CommentDB(
        content=comment_data.content,
        task_id=task.id,
        task=task,
        author_id=author.id,
        author=author,
    )
    db.add(comment)
    await db.commit()
    await db.refresh(comment)
    logger.info(f"Comment created successfully with ID: {comment.id}")
    return comment


async def update_comment(
    db: AsyncSession, comment_id: uuid.UUID, comment_data: CommentUpdate, author_id: uuid.UUID
) -> CommentDB:
    """Raises AccessDeniedError if author_id did not write the comment."""
    comment = await get_comment_by_id_or_raise(db=db, comment_id=comment_id)
    user = await get_user_by_id_or_raise(db=db, id=author_id)
    ensure_comment_author(user, comment, "update")

    comment.content = comment_data.content
    await db.commit()
    await db.refresh(comment)
    logger.info(f"Comment updated successfully with ID: {comment.id}")
    return comment


async def delete_comment(db: AsyncSession, comment_id: uuid.UUID, author_id: uuid.UUID) -> None:
    """Raises AccessDeniedError if author_id did not write the comment."""
    comment = await get_comment_by_id_or_raise(db=db, comment_id=comment_id)
    user = await get_user_by_id_or_raise(db=db, id=author_id)
    ensure_comment_author(user, comment, "delete")

    await db.delete(comment)
    await db.commit()
    logger.info(f"Comment deleted successfully with ID: {comment_id}")


async def get_comments_by_task(db: AsyncSession, task_id: uuid.UUID, ascending: bool = True) -> list[CommentDB]:
    """Comments on a task, oldest first unless ascending is False."""
    stmt = select(CommentDB).where(CommentDB.task_id == task_id).order_by(*_creation_order(ascending))
    return await _fetch_all(db=db, stmt=stmt)


async def get_comments_by_task_paginated(
    db: AsyncSession, task_id: uuid.UUID, page_params: PageParams, ascending: bool = True
) -> PageResponse[CommentResponse]:
    stmt = select(CommentDB).where(CommentDB.task_id == task_id).order_by(*_creation_order(ascending))
    return await paginate(db=db, stmt=stmt, page_params=page_params, response_model=CommentResponse)


async def get_comments_by_author(db: AsyncSession, author_id: uuid.UUID) -> list[CommentDB]:
    """Newest first."""
    stmt = select(CommentDB).where(CommentDB.author_id == author_id).order_by(*_creation_order(ascending=False))
    return await _fetch_all(db=db, stmt=stmt)


async def get_comments_by_author_paginated(
    db: AsyncSession, author_id: uuid.UUID, page_params: PageParams
) -> PageResponse[CommentResponse]:
    stmt = select(CommentDB).where(CommentDB.author_id == author_id).order_by(*_creation_order(ascending=False))
    return await paginate(db=db, stmt=stmt, page_params=page_params, response_model=CommentResponse)


async def get_comments_by_project(db: AsyncSession, project_id: uuid.UUID) -> list[CommentDB]:
    """All comments on all tasks of a project, newest first."""
    stmt = (
        select(CommentDB)
        .join(TaskDB, CommentDB.task_id == TaskDB.id)
        .where(TaskDB.project_id == project_id)
        .order_by(*_creation_order(ascending=False))
    )
    return await _fetch_all(db=db, stmt=stmt)


async def get_comments_by_project_and_author(
    db: AsyncSession, project_id: uuid.UUID, author_id: uuid.UUID
) -> list[CommentDB]:
    """Newest first."""
    stmt = (
        select(CommentDB)
        .join(TaskDB, CommentDB.task_id == TaskDB.id)
        .where(TaskDB.project_id == project_id, CommentDB.author_id == author_id)
        .order_by(*_creation_order(ascending=False))
    )
    return await _fetch_all(db=db, stmt=stmt)


async def get_recent_comments_by_task(db: AsyncSession, task_id: uuid.UUID, since: datetime) -> list[CommentDB]:
    """Comments on a task created at or after since, oldest first."""
    stmt = (
        select(CommentDB)
        .where(CommentDB.task_id == task_id, CommentDB.created_at >= since)
        .order_by(*_creation_order(ascending=True))
    )
    return await _fetch_all(db=db, stmt=stmt)


async def search_comments(db: AsyncSession, search: str, task_id: uuid.UUID | None = None) -> list[CommentDB]:
    """Case insensitive substring search over comment content, optionally within one task."""
    stmt = select(CommentDB).where(func.lower(CommentDB.content).like(f"%{search.lower()}%"))
    if task_id is not None:
        stmt = stmt.where(CommentDB.task_id == task_id)
    return await _fetch_all(db=db, stmt=stmt.order_by(*_creation_order(ascending=False)))


async def get_comments_created_after(db: AsyncSession, date: datetime) -> list[CommentDB]:
    stmt = select(CommentDB).where(CommentDB.created_at > date).order_by(*_creation_order(ascending=True))
    return await _fetch_all(db=db, stmt=stmt)


async def get_comments_created_between(db: AsyncSession, start: datetime, end: datetime) -> list[CommentDB]:
    """Both ends inclusive."""
    stmt = select(CommentDB).where(CommentDB.created_at.between(start, end)).order_by(*_creation_order(ascending=True))
    return await _fetch_all(db=db, stmt=stmt)


async def count_comments(
    db: AsyncSession,
    task_id: uuid.UUID | None = None,
    author_id: uuid.UUID | None = None,
    created_after: datetime | None = None,
) -> int:
    stmt = select(func.count(CommentDB.id))
    if task_id is not None:
        stmt = stmt.where(CommentDB.task_id == task_id)
    if author_id is not None:
        stmt = stmt.where(CommentDB.author_id == author_id)
    if created_after is not None:
        stmt = stmt.where(CommentDB.created_at > created_after)
    result = await db.execute(stmt)
    return result.scalar() or 0


async def count_comments_by_project(db: AsyncSession, project_id: uuid.UUID) -> int:
    stmt = (
        select(func.count(CommentDB.id))
        .join(TaskDB, CommentDB.task_id == TaskDB.id)
        .where(TaskDB.project_id == project_id)
    )
    result = await db.execute(stmt)
    return result.scalar() or 0


async def get_most_active_comment_authors(db: AsyncSession) -> list[tuple[uuid.UUID, int]]:
    """(author_id, number of comments) pairs, most comments first."""
    return await _comment_counts_by_author(db=db, stmt=select(CommentDB.author_id, func.count(CommentDB.id)))


async def get_most_active_comment_authors_by_project(
    db: AsyncSession, project_id: uuid.UUID
) -> list[tuple[uuid.UUID, int]]:
    """As get_most_active_comment_authors, counting only comments on tasks of one project."""
    stmt = (
        select(CommentDB.author_id, func.count(CommentDB.id))
        .join(TaskDB, CommentDB.task_id == TaskDB.id)
        .where(TaskDB.project_id == project_id)
    )
    return await _comment_counts_by_author(db=db, stmt=stmt)


async def is_comment_author(db: AsyncSession, comment_id: uuid.UUID, user_id: uuid.UUID) -> bool:
    comment = await get_comment_by_id_or_raise(db=db, comment_id=comment_id)
    return comment.author_id == user_id


async def can_user_access_comment(db: AsyncSession, comment_id: uuid.UUID, user_id: uuid.UUID) -> bool:
    comment = await get_comment_by_id_or_raise(db=db, comment_id=comment_id)
    user = await get_user_by_id_or_raise(db=db, id=user_id)
    return can_access_comment(user, comment)


def _creation_order(ascending: bool):
    """id breaks ties between comments created within the same timestamp resolution."""
    if ascending:
        return CommentDB.created_at.asc(), CommentDB.id.asc()
    return CommentDB.created_at.desc(), CommentDB.id.desc()


async def _fetch_all(db: AsyncSession, stmt) -> list[CommentDB]:
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def _comment_counts_by_author(db: AsyncSession, stmt) -> list[tuple[uuid.UUID, int]]:
    """Ties are ordered by author id so the result is stable."""
    count = func.count(CommentDB.id)
    stmt = stmt.group_by(CommentDB.author_id).order_by(count.desc(), CommentDB.author_id)
    result = await db.execute(stmt)
    return [(author_id, n) for author_id, n in result.all()]
