"""Inventory order endpoints."""

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, ConfigDict, Field, field_validator

from tally.app.core.utils import parse_range_end, parse_range_start
from tally.app.db import crud
from tally.app.db.dependencies import SessionDep
from tally.app.db.models import Order, OrderStatus
from tally.app.db.pagination import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from tally.app.exceptions import BadRequestError
from tally.app.middleware.auth import CurrentUser
from tally.app.middleware.rate_limit import UserRateLimitDep
from tally.app.services import orders as order_service

router = APIRouter(prefix="/inventory/orders", tags=["inventory"])


class PriceModification(BaseModel):
    """A discount or surcharge noted on an order line."""

    type: Literal["increase", "decrease"]
    kind: Literal["flat", "relative"]
    value: float


class OrderItemIn(BaseModel):
    product_id: str
    quantity: int = Field(..., ge=1)
    unit_price_tax_free: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    modifications: Optional[list[PriceModification]] = None


class OrderCreate(BaseModel):
    reference: Optional[str] = Field(None, max_length=500)
    prefix_id: Optional[str] = None
    status: OrderStatus = OrderStatus.PREPARED
    description: Optional[str] = Field(None, max_length=5000)
    items: list[OrderItemIn]

    @field_validator("reference")
    @classmethod
    def normalize_reference(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None


class OrderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    reference: str
    status: OrderStatus
    description: Optional[str]
    created_at: datetime
    paid_at: Optional[datetime]


class OrderSummary(OrderOut):
    total_tax_included: Decimal


class OrderPage(BaseModel):
    items: list[OrderSummary]
    total: int
    page: int
    size: int
    total_pages: int


class OrderItemOut(BaseModel):
    id: str
    product_id: Optional[str]
    product_name: Optional[str]
    quantity: int
    unit_price_tax_free: Decimal
    unit_price_tax_included: Decimal
    price_modifications: Optional[list[PriceModification]] = None


class OrderDetailOut(OrderOut):
    items: list[OrderItemOut]
    total_tax_free: Decimal
    total_tax_included: Decimal


async def _detail(session, user_id: str, order_id: str) -> OrderDetailOut:
    detail = await order_service.get_order_detail(session, user_id, order_id)
    return OrderDetailOut(
        **OrderOut.model_validate(detail.order).model_dump(),
        items=[
            OrderItemOut(
                id=item.id,
                product_id=item.product_id,
                product_name=name,
                quantity=item.quantity,
                unit_price_tax_free=item.unit_price_tax_free,
                unit_price_tax_included=item.unit_price_tax_included,
                price_modifications=item.price_modifications,
            )
            for item, name in detail.items
        ],
        total_tax_free=detail.total_tax_free,
        total_tax_included=detail.total_tax_included,
    )


@router.post("", response_model=OrderDetailOut, status_code=status.HTTP_201_CREATED)
async def create_order(
    data: OrderCreate,
    session: SessionDep,
    user: UserRateLimitDep,
) -> OrderDetailOut:
    """Create an order; creating it as paid consumes stock immediately.

    Either ``reference`` or ``prefix_id`` is required. With a prefix, the
    next reference of that prefix is assigned.
    """
    order = await order_service.create_order(
        session,
        user.id,
        reference=data.reference,
        prefix_id=data.prefix_id,
        status=data.status,
        description=data.description,
        lines=[
            order_service.OrderLineInput(
                i.product_id,
                i.quantity,
                i.unit_price_tax_free,
                [m.model_dump() for m in i.modifications] if i.modifications else None,
            )
            for i in data.items
        ],
    )
    return await _detail(session, user.id, order.id)


@router.get("", response_model=OrderPage)
async def list_orders(
    session: SessionDep,
    user: CurrentUser,
    page: int = Query(1, ge=1),
    size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    reference: Optional[str] = Query(None, max_length=500),
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> OrderPage:
    try:
        start = parse_range_start(start_date)
        end = parse_range_end(end_date)
    except ValueError:
        raise BadRequestError("Invalid date filter")

    result = await crud.list_orders_page(
        session,
        user.id,
        page=page,
        size=size,
        reference=reference.strip() if reference else None,
        start=start,
        end=end,
    )
    totals = await crud.get_order_totals(session, [o.id for o in result.items])

    def serialize(order: Order) -> OrderSummary:
        return OrderSummary(
            **OrderOut.model_validate(order).model_dump(),
            total_tax_included=totals.get(order.id, Decimal("0.00")),
        )

    return OrderPage(**result.to_dict(serialize))


@router.get("/{order_id}", response_model=OrderDetailOut)
async def get_order(order_id: str, session: SessionDep, user: CurrentUser) -> OrderDetailOut:
    return await _detail(session, user.id, order_id)


@router.post("/{order_id}/paid", response_model=OrderOut)
async def mark_paid(order_id: str, session: SessionDep, user: UserRateLimitDep) -> Order:
    return await order_service.mark_order_paid(session, user.id, order_id)


@router.post("/{order_id}/sent", response_model=OrderOut)
async def mark_sent(order_id: str, session: SessionDep, user: UserRateLimitDep) -> Order:
    return await order_service.mark_order_sent(session, user.id, order_id)


@router.delete("/{order_id}")
async def delete_order(order_id: str, session: SessionDep, user: UserRateLimitDep) -> dict:
    deleted_id = await order_service.delete_order(session, user.id, order_id)
    return {"id": deleted_id, "deleted": True}
