"""Offset pagination for SELECT statements."""

import math
from dataclasses import dataclass, field
from typing import Any, Generic, List, TypeVar

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar("T")

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


@dataclass
class Page(Generic[T]):
    """One page of results plus the totals needed to render a pager."""
    items: List[T] = field(default_factory=list)
    total: int = 0
    page: int = 1
    size: int = DEFAULT_PAGE_SIZE

    @property
    def total_pages(self) -> int:
        return max(1, math.ceil(self.total / self.size))

    def to_dict(self, serialize=None) -> dict[str, Any]:
        items = [serialize(i) for i in self.items] if serialize else list(self.items)
        return {
            "items": items,
            "total": self.total,
            "page": self.page,
            "size": self.size,
            "total_pages": self.total_pages,
        }


async def paginated(
    session: AsyncSession,
    stmt: Select,
    page: int = 1,
    size: int = DEFAULT_PAGE_SIZE,
) -> Page:
    """Run ``stmt`` for one page and count its total matching rows.

    The statement should carry its own ORDER BY; the count query strips it.
    Single-entity statements yield ORM objects, others yield rows.

    Args:
        session: Database session
        stmt: Filtered and ordered SELECT
        page: 1-based page number
        size: Page size

    Raises:
        ValueError: If page or size is below 1
    """
    if page < 1:
        raise ValueError("page must be at least 1")
    if size < 1:
        raise ValueError("size must be at least 1")

    count_stmt = select(func.count()).select_from(stmt.order_by(None).subquery())
    total = (await session.execute(count_stmt)).scalar_one()

    result = await session.execute(stmt.limit(size).offset((page - 1) * size))
    if len(stmt.column_descriptions) == 1:
        items = list(result.scalars().all())
    else:
        items = list(result.all())

    return Page(items=items, total=int(total), page=page, size=size)
