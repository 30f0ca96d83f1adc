"""Offset pagination shared by the leave listings and the notification feed."""

import math
from typing import Any, Callable, Generic, Optional, Sequence, TypeVar

from fastapi import Query
from pydantic import BaseModel
from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from timeloo.common.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE

T = TypeVar("T")


class PaginationParams:
    """Query-string dependency: ``?page=2&page_size=20&sort=-applied_at``."""

    def __init__(
        self,
        page: int = Query(default=1, ge=1),
        page_size: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
        sort: Optional[str] = Query(
            default=None,
            description='Column name, "-" prefix for descending',
        ),
    ) -> None:
        self.page = page
        self.page_size = page_size
        self.sort = sort

    @property
    def offset(self) -> int:
        return self.page_size * (self.page - 1)


class PaginationMeta(BaseModel):
    page: int
    page_size: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, params: PaginationParams, total: int) -> "PaginationMeta":
        pages = math.ceil(total / params.page_size) if total else 0
        return cls(
            page=params.page,
            page_size=params.page_size,
            total=total,
            total_pages=pages,
            has_next=params.page < pages,
            has_prev=params.page > 1,
        )


class PaginatedResponse(BaseModel, Generic[T]):
    data: Sequence[T]
    meta: PaginationMeta


def _apply_sort(query: Select, sort: Optional[str], model: Any) -> Select:
    # Only mapped attributes are honoured; anything else keeps the default order
    if not sort:
        return query
    column = getattr(model, sort.lstrip("-"), None)
    if column is None:
        return query
    ordering = column.desc() if sort.startswith("-") else column.asc()
    return query.order_by(None).order_by(ordering)


async def paginate(
    session: AsyncSession,
    query: Select,
    params: PaginationParams,
    *,
    model: Any,
    transform: Optional[Callable[[Any], Any]] = None,
) -> PaginatedResponse:
    """Run *query* for one page and count the full result set.

    *transform* converts each ORM row, typically ``Schema.model_validate``.
    """
    query = _apply_sort(query, params.sort, model)

    total = (
        await session.execute(select(func.count()).select_from(query.order_by(None).subquery()))
    ).scalar_one()
    rows = (
        await session.execute(query.limit(params.page_size).offset(params.offset))
    ).scalars().all()

    return PaginatedResponse(
        data=[transform(row) for row in rows] if transform else list(rows),
        meta=PaginationMeta.build(params, total),
    )
