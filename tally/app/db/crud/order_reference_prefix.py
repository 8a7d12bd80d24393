"""Order reference prefix CRUD operations."""
from typing import Iterable, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tally.app.db.models import Order, OrderReferencePrefix
from tally.app.db.utils import LIKE_ESCAPE, escape_like


async def list_reference_prefixes(
    session: AsyncSession,
    user_id: str,
) -> List[OrderReferencePrefix]:
    result = await session.execute(
        select(OrderReferencePrefix)
        .where(OrderReferencePrefix.user_id == user_id)
        .order_by(OrderReferencePrefix.prefix.asc())
    )
    return list(result.scalars().all())


async def get_reference_prefix(
    session: AsyncSession,
    user_id: str,
    prefix_id: str,
) -> Optional[OrderReferencePrefix]:
    result = await session.execute(
        select(OrderReferencePrefix).where(
            OrderReferencePrefix.id == prefix_id,
            OrderReferencePrefix.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def reference_prefix_exists(
    session: AsyncSession,
    user_id: str,
    prefix: str,
    exclude_id: Optional[str] = None,
) -> bool:
    stmt = select(OrderReferencePrefix.id).where(
        OrderReferencePrefix.user_id == user_id,
        OrderReferencePrefix.prefix == prefix,
    )
    if exclude_id is not None:
        stmt = stmt.where(OrderReferencePrefix.id != exclude_id)
    result = await session.execute(stmt.limit(1))
    return result.first() is not None


async def count_reference_prefixes(session: AsyncSession, user_id: str) -> int:
    result = await session.execute(
        select(func.count())
        .select_from(OrderReferencePrefix)
        .where(OrderReferencePrefix.user_id == user_id)
    )
    return result.scalar_one()


async def create_reference_prefix(
    session: AsyncSession,
    user_id: str,
    prefix: str,
) -> OrderReferencePrefix:
    row = OrderReferencePrefix(user_id=user_id, prefix=prefix)
    session.add(row)
    await session.flush()
    return row


async def delete_reference_prefix(session: AsyncSession, prefix_id: str) -> None:
    await session.execute(
        delete(OrderReferencePrefix).where(OrderReferencePrefix.id == prefix_id)
    )


def next_reference_number(prefix: str, references: Iterable[str]) -> int:
    """Return the number following the highest ``<prefix>-<n>`` reference.

    References that do not end in a plain number after ``<prefix>-`` are
    ignored, so ``INV-2024-7`` does not count for the prefix ``INV``.
    """
    head = f"{prefix}-"
    highest = 0
    for reference in references:
        if not reference.startswith(head):
            continue
        tail = reference[len(head):]
        if tail.isascii() and tail.isdigit():
            highest = max(highest, int(tail))
    return highest + 1


async def next_reference_for_prefix(
    session: AsyncSession,
    user_id: str,
    prefix: str,
) -> str:
    """Build the next free order reference of a user for ``prefix``."""
    result = await session.execute(
        select(Order.reference).where(
            Order.user_id == user_id,
            Order.reference.like(f"{escape_like(prefix)}-%", escape=LIKE_ESCAPE),
        )
    )
    return f"{prefix}-{next_reference_number(prefix, result.scalars().all())}"
