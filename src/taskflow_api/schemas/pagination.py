"""
Generic paginated response wrapper, used by all list endpoints/crud functions that paginate.

Page indexes start at 0.
"""

import math
from typing import Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class PageParams(BaseModel):
    page: int = Field(0, ge=0, description="0-based page index")
    size: int = Field(20, ge=1, le=1000, description="Number of items per page")

    @property
    def offset(self) -> int:
        return self.page * self.size


class PageResponse(BaseModel, Generic[T]):
    content: list[T]
    page: int
    size: int
    total_elements: int
    total_pages: int
    first: bool
    last: bool
    has_next: bool
    has_previous: bool

    @classmethod
    def build(cls, content: list[T], page_params: PageParams, total_elements: int) -> "PageResponse[T]":
        total_pages = math.ceil(total_elements / page_params.size) if total_elements else 0
        page = page_params.page
        return cls(
            content=content,
            page=page,
            size=page_params.size,
            total_elements=total_elements,
            total_pages=total_pages,
            first=page == 0,
            last=page >= total_pages - 1,
            has_next=page + 1 < total_pages,
            has_previous=page > 0,
        )
