"""Product CRUD operations."""
from typing import Dict, Iterable, List, Optional

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tally.app.db.models import Product, ProductBundleItem, ProductKind
from tally.app.db.pagination import Page, paginated
from tally.app.db.utils import LIKE_ESCAPE, contains_pattern

ORDER_COLUMNS = {
    "name": Product.name,
    "price": Product.price_tax_free,
    "updated_at": Product.updated_at,
}


async def get_product(
    session: AsyncSession,
    user_id: str,
    product_id: str,
) -> Optional[Product]:
    result = await session.execute(
        select(Product).where(Product.id == product_id, Product.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def get_active_products(
    session: AsyncSession,
    user_id: str,
    product_ids: Iterable[str],
) -> Dict[str, Product]:
    """Owned, non-archived products among ``product_ids``, keyed by id."""
    product_ids = list(set(product_ids))
    if not product_ids:
        return {}
    result = await session.execute(
        select(Product).where(
            Product.user_id == user_id,
            Product.id.in_(product_ids),
            Product.archived_at.is_(None),
        )
    )
    return {p.id: p for p in result.scalars().all()}


async def get_stock_levels(
    session: AsyncSession,
    user_id: str,
    product_ids: Iterable[str],
) -> Dict[str, int]:
    product_ids = list(product_ids)
    if not product_ids:
        return {}
    result = await session.execute(
        select(Product.id, Product.quantity).where(
            Product.user_id == user_id, Product.id.in_(product_ids)
        )
    )
    return {pid: int(qty) for pid, qty in result.all()}


async def decrement_stock(
    session: AsyncSession,
    user_id: str,
    quantities: Dict[str, int],
) -> None:
    """Subtract required quantities from stock with atomic UPDATEs."""
    for product_id, quantity in quantities.items():
        await session.execute(
            update(Product)
            .where(Product.id == product_id, Product.user_id == user_id)
            .values(quantity=Product.quantity - quantity)
        )


async def list_products_page(
    session: AsyncSession,
    user_id: str,
    page: int,
    size: int,
    search: Optional[str] = None,
    archived: str = "all",
    order_by: str = "name",
    descending: bool = False,
) -> Page:
    """List a user's products, filtered and ordered, one page at a time.

    Args:
        search: Case-insensitive match on name or SKU
        archived: "all", "active" or "archived"
        order_by: "name", "price" or "updated_at"
    """
    stmt = select(Product).where(Product.user_id == user_id)
    if search:
        pattern = contains_pattern(search)
        stmt = stmt.where(
            or_(
                Product.name.ilike(pattern, escape=LIKE_ESCAPE),
                Product.sku.ilike(pattern, escape=LIKE_ESCAPE),
            )
        )
    if archived == "active":
        stmt = stmt.where(Product.archived_at.is_(None))
    elif archived == "archived":
        stmt = stmt.where(Product.archived_at.is_not(None))

    column = ORDER_COLUMNS.get(order_by, Product.name)
    stmt = stmt.order_by(column.desc() if descending else column.asc(), Product.id.asc())
    return await paginated(session, stmt, page, size)


async def get_bundle_items(
    session: AsyncSession,
    bundle_id: str,
) -> List[ProductBundleItem]:
    result = await session.execute(
        select(ProductBundleItem).where(ProductBundleItem.bundle_id == bundle_id)
    )
    return list(result.scalars().all())


async def get_component_kinds(
    session: AsyncSession,
    user_id: str,
    product_ids: Iterable[str],
) -> Dict[str, ProductKind]:
    """Kinds of the owned, non-archived products among ``product_ids``."""
    product_ids = list(product_ids)
    if not product_ids:
        return {}
    result = await session.execute(
        select(Product.id, Product.kind).where(
            Product.user_id == user_id,
            Product.id.in_(product_ids),
            Product.archived_at.is_(None),
        )
    )
    return {pid: kind for pid, kind in result.all()}


async def replace_bundle_items(
    session: AsyncSession,
    bundle_id: str,
    components: Dict[str, int],
) -> None:
    await session.execute(
        delete(ProductBundleItem).where(ProductBundleItem.bundle_id == bundle_id)
    )
    for product_id, quantity in components.items():
        session.add(
            ProductBundleItem(bundle_id=bundle_id, product_id=product_id, quantity=quantity)
        )
    await session.flush()
