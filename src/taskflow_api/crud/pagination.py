"""
Helper to run a select statement one page at a time.
"""

from typing import Any

from pydantic import BaseModel
from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow_api.schemas.pagination import PageParams, PageResponse


async def paginate(
    db: AsyncSession, stmt: Select[Any], page_params: PageParams, response_model: type[BaseModel]
) -> PageResponse:
    """
    Run stmt for the requested page and wrap the results as response_model objects.

    stmt should already have an order_by, otherwise pages are not stable.
    """
    count_stmt = select(func.count()).select_from(stmt.order_by(None).subquery())
    total_elements = (await db.execute(count_stmt)).scalar_one()

    result = await db.execute(stmt.offset(page_params.offset).limit(page_params.size))
    content = [response_model.model_validate(row) for row in result.scalars().all()]

    return PageResponse[response_model].build(
        content=content, page_params=page_params, total_elements=total_elements
    )
