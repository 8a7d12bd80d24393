"""Order workflow: creation, payment, shipping and deletion.

Orders move ``prepared -> paid -> sent``; an order may also be created
directly as paid. Paying an order consumes stock: order lines are expanded
through bundle compositions, every simple product is checked against its
stock, and all decrements happen in the caller's transaction.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tally.app.core.config import settings
from tally.app.core.logging import get_log_context, get_logger
from tally.app.db import crud
from tally.app.db.models import Order, OrderItem, OrderStatus
from tally.app.exceptions import BadRequestError, InsufficientStockError, NotFoundError
from tally.app.services.bundles import LineItem, expand_bundle_items
from tally.app.services.pricing import price_tax_included, round_money

logger = get_logger(__name__)


@dataclass
class OrderLineInput:
    product_id: str
    quantity: int
    unit_price_tax_free: Optional[Decimal] = None
    modifications: Optional[List[dict]] = None


@dataclass
class OrderDetail:
    order: Order
    items: List[tuple[OrderItem, Optional[str]]] = field(default_factory=list)
    total_tax_free: Decimal = Decimal("0.00")
    total_tax_included: Decimal = Decimal("0.00")


async def ensure_stock(
    session: AsyncSession,
    user_id: str,
    items: Sequence[LineItem],
) -> dict[str, int]:
    """Expand ``items`` and verify every simple product has enough stock.

    Returns:
        Required quantity per simple product id

    Raises:
        InsufficientStockError: For the first product short on stock
    """
    required = await expand_bundle_items(session, items, user_id)
    stock = await crud.get_stock_levels(session, user_id, required.keys())
    for product_id, quantity in required.items():
        available = stock.get(product_id)
        if available is None or available < quantity:
            raise InsufficientStockError(product_id, quantity, available)
    return required


async def create_order(
    session: AsyncSession,
    user_id: str,
    status: OrderStatus,
    lines: Sequence[OrderLineInput],
    reference: Optional[str] = None,
    prefix_id: Optional[str] = None,
    description: Optional[str] = None,
) -> Order:
    """Create an order with its items.

    The order is stored under ``reference`` when given. Otherwise the next
    free reference of the prefix ``prefix_id`` is used, e.g. ``SHOP-13``
    after ``SHOP-12``.

    Raises:
        BadRequestError: If there are no lines, neither a reference nor a
            prefix is given, the reference is taken, the prefix is unknown, a
            product is unknown, archived or foreign, or a price override is
            above the allowed maximum
        InsufficientStockError: If the order is created as paid and stock
            does not cover it
    """
    if not lines:
        raise BadRequestError("At least one item required")
    if not reference and not prefix_id:
        raise BadRequestError("Either reference or prefix_id is required")

    products = await crud.get_active_products(session, user_id, (l.product_id for l in lines))
    for line in lines:
        if line.product_id not in products:
            raise BadRequestError(
                f"Product not found, not owned, or archived: {line.product_id}"
            )

    if reference:
        if await crud.reference_exists(session, user_id, reference):
            raise BadRequestError("Reference already exists")
    else:
        prefix = await crud.get_reference_prefix(session, user_id, prefix_id)
        if prefix is None:
            raise BadRequestError("Prefix not found")
        reference = await crud.next_reference_for_prefix(session, user_id, prefix.prefix)

    required: dict[str, int] = {}
    if status == OrderStatus.PAID:
        required = await ensure_stock(
            session, user_id, [LineItem(l.product_id, l.quantity) for l in lines]
        )

    now = datetime.now(timezone.utc)
    order = Order(
        user_id=user_id,
        reference=reference,
        status=status,
        description=description,
        created_at=now,
        paid_at=now if status == OrderStatus.PAID else None,
    )
    session.add(order)
    try:
        await session.flush()
    except IntegrityError:
        raise BadRequestError("Reference already exists")

    for line in lines:
        product = products[line.product_id]
        base_price = product.price_tax_free
        price = base_price if line.unit_price_tax_free is None else line.unit_price_tax_free
        max_price = base_price * settings.max_unit_price_factor
        if price > max_price:
            raise BadRequestError(
                f"Unit price for product {line.product_id} exceeds maximum ({round_money(max_price)})"
            )
        session.add(
            OrderItem(
                order_id=order.id,
                product_id=line.product_id,
                quantity=line.quantity,
                unit_price_tax_free=round_money(price),
                unit_price_tax_included=price_tax_included(price, product.vat_percent),
                price_modifications=line.modifications or None,
            )
        )

    if required:
        await crud.decrement_stock(session, user_id, required)

    await session.flush()
    logger.info(
        "Order created",
        extra=get_log_context(user_id=user_id, order_id=order.id, status=status.value),
    )
    return order


async def get_owned_order(session: AsyncSession, user_id: str, order_id: str) -> Order:
    order = await crud.get_order(session, user_id, order_id)
    if order is None:
        raise NotFoundError("Order not found")
    return order


async def mark_order_paid(session: AsyncSession, user_id: str, order_id: str) -> Order:
    """Pay a prepared order and consume the stock it needs."""
    order = await get_owned_order(session, user_id, order_id)
    if order.status != OrderStatus.PREPARED:
        raise BadRequestError("Order is not prepared")

    items = await crud.get_order_items(session, order.id)
    line_items = [
        LineItem(item.product_id, int(item.quantity))
        for item in items
        if item.product_id is not None
    ]
    required = await ensure_stock(session, user_id, line_items)
    await crud.decrement_stock(session, user_id, required)

    order.status = OrderStatus.PAID
    order.paid_at = datetime.now(timezone.utc)
    await session.flush()
    logger.info("Order paid", extra=get_log_context(user_id=user_id, order_id=order.id))
    return order


async def mark_order_sent(session: AsyncSession, user_id: str, order_id: str) -> Order:
    order = await get_owned_order(session, user_id, order_id)
    if order.status != OrderStatus.PAID:
        raise BadRequestError("Order is not paid")
    order.status = OrderStatus.SENT
    await session.flush()
    return order


async def delete_order(session: AsyncSession, user_id: str, order_id: str) -> str:
    order = await get_owned_order(session, user_id, order_id)
    if order.status != OrderStatus.PREPARED:
        raise BadRequestError("Can only delete prepared orders")
    await crud.delete_order_with_items(session, order.id)
    return order_id


async def get_order_detail(session: AsyncSession, user_id: str, order_id: str) -> OrderDetail:
    order = await get_owned_order(session, user_id, order_id)
    items = await crud.get_order_items_with_names(session, order.id)
    total_tax_free = sum(
        (item.quantity * item.unit_price_tax_free for item, _ in items), Decimal("0")
    )
    total_tax_included = sum(
        (item.quantity * item.unit_price_tax_included for item, _ in items), Decimal("0")
    )
    return OrderDetail(
        order=order,
        items=items,
        total_tax_free=round_money(total_tax_free),
        total_tax_included=round_money(total_tax_included),
    )
