"""Order CRUD operations."""
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tally.app.db.models import Order, OrderItem, Product
from tally.app.db.pagination import Page, paginated
from tally.app.db.utils import LIKE_ESCAPE, contains_pattern


async def get_order(
    session: AsyncSession,
    user_id: str,
    order_id: str,
) -> Optional[Order]:
    result = await session.execute(
        select(Order).where(Order.id == order_id, Order.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def reference_exists(session: AsyncSession, user_id: str, reference: str) -> bool:
    result = await session.execute(
        select(Order.id).where(Order.user_id == user_id, Order.reference == reference).limit(1)
    )
    return result.first() is not None


async def get_order_items(session: AsyncSession, order_id: str) -> List[OrderItem]:
    result = await session.execute(select(OrderItem).where(OrderItem.order_id == order_id))
    return list(result.scalars().all())


async def get_order_items_with_names(
    session: AsyncSession,
    order_id: str,
) -> List[tuple[OrderItem, Optional[str]]]:
    result = await session.execute(
        select(OrderItem, Product.name)
        .outerjoin(Product, OrderItem.product_id == Product.id)
        .where(OrderItem.order_id == order_id)
    )
    return [(item, name) for item, name in result.all()]


async def delete_order_with_items(session: AsyncSession, order_id: str) -> None:
    await session.execute(delete(OrderItem).where(OrderItem.order_id == order_id))
    await session.execute(delete(Order).where(Order.id == order_id))


async def get_order_totals(
    session: AsyncSession,
    order_ids: Sequence[str],
) -> Dict[str, Decimal]:
    """Tax-included total of each order."""
    if not order_ids:
        return {}
    result = await session.execute(
        select(
            OrderItem.order_id,
            func.sum(OrderItem.quantity * OrderItem.unit_price_tax_included),
        )
        .where(OrderItem.order_id.in_(order_ids))
        .group_by(OrderItem.order_id)
    )
    return {order_id: Decimal(str(total or 0)) for order_id, total in result.all()}


async def list_orders_page(
    session: AsyncSession,
    user_id: str,
    page: int,
    size: int,
    reference: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> Page:
    """List a user's orders, newest first.

    Args:
        reference: Case-insensitive substring of the reference
        start: Inclusive lower bound on creation time
        end: Inclusive upper bound on creation time
    """
    stmt = select(Order).where(Order.user_id == user_id)
    if reference:
        stmt = stmt.where(Order.reference.ilike(contains_pattern(reference), escape=LIKE_ESCAPE))
    if start is not None:
        stmt = stmt.where(Order.created_at >= start)
    if end is not None:
        stmt = stmt.where(Order.created_at <= end)
    stmt = stmt.order_by(Order.created_at.desc(), Order.id.desc())
    return await paginated(session, stmt, page, size)
