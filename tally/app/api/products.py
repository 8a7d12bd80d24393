"""Inventory product endpoints."""

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, ConfigDict, Field, field_validator

from tally.app.db import crud
from tally.app.db.dependencies import SessionDep
from tally.app.db.models import Product, ProductKind
from tally.app.db.pagination import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from tally.app.middleware.auth import CurrentUser
from tally.app.middleware.rate_limit import UserRateLimitDep
from tally.app.services import products as product_service
from tally.app.services.bundles import BundleComponent

router = APIRouter(prefix="/inventory/products", tags=["inventory"])


class BundleComponentIn(BaseModel):
    product_id: str
    quantity: int = Field(..., ge=1)


class ProductCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=500)
    description: Optional[str] = Field(None, max_length=5000)
    sku: Optional[str] = Field(None, max_length=200)
    price_tax_free: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    vat_percent: Decimal = Field(Decimal("0"), ge=0, le=100, max_digits=5, decimal_places=2)
    quantity: int = Field(0, ge=0)
    kind: ProductKind = ProductKind.SIMPLE
    components: list[BundleComponentIn] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def normalize_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name cannot be empty")
        return v


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=500)
    description: Optional[str] = Field(None, max_length=5000)
    sku: Optional[str] = Field(None, max_length=200)
    price_tax_free: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    vat_percent: Optional[Decimal] = Field(None, ge=0, le=100, max_digits=5, decimal_places=2)
    quantity: Optional[int] = Field(None, ge=0)
    components: Optional[list[BundleComponentIn]] = None


class ProductOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: Optional[str]
    sku: Optional[str]
    price_tax_free: Decimal
    vat_percent: Decimal
    quantity: int
    kind: ProductKind
    archived_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime


class BundleComponentOut(BaseModel):
    product_id: str
    quantity: int


class ProductDetail(ProductOut):
    components: list[BundleComponentOut] = Field(default_factory=list)


class ProductPage(BaseModel):
    items: list[ProductOut]
    total: int
    page: int
    size: int
    total_pages: int


def _components(items: Optional[list[BundleComponentIn]]) -> Optional[list[BundleComponent]]:
    if items is None:
        return None
    return [BundleComponent(c.product_id, c.quantity) for c in items]


async def _detail(session, product: Product) -> ProductDetail:
    detail = ProductDetail.model_validate(product)
    if product.kind == ProductKind.BUNDLE:
        detail.components = [
            BundleComponentOut(product_id=item.product_id, quantity=item.quantity)
            for item in await crud.get_bundle_items(session, product.id)
        ]
    return detail


@router.post("", response_model=ProductDetail, status_code=status.HTTP_201_CREATED)
async def create_product(
    data: ProductCreate,
    session: SessionDep,
    user: UserRateLimitDep,
) -> ProductDetail:
    """Create a simple product or a bundle of simple products."""
    product = await product_service.create_product(
        session,
        user.id,
        name=data.name,
        description=data.description,
        sku=data.sku,
        price_tax_free=data.price_tax_free,
        vat_percent=data.vat_percent,
        quantity=data.quantity,
        kind=data.kind,
        components=_components(data.components),
    )
    return await _detail(session, product)


@router.get("", response_model=ProductPage)
async def list_products(
    session: SessionDep,
    user: CurrentUser,
    page: int = Query(1, ge=1),
    size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    search: Optional[str] = Query(None, min_length=1, max_length=500),
    archived: Literal["all", "active", "archived"] = "all",
    order_by: Literal["name", "price", "updated_at"] = "name",
    order: Literal["asc", "desc"] = "asc",
) -> ProductPage:
    result = await crud.list_products_page(
        session,
        user.id,
        page=page,
        size=size,
        search=search.strip() if search else None,
        archived=archived,
        order_by=order_by,
        descending=order == "desc",
    )
    return ProductPage(**result.to_dict(ProductOut.model_validate))


@router.get("/{product_id}", response_model=ProductDetail)
async def get_product(product_id: str, session: SessionDep, user: CurrentUser) -> ProductDetail:
    product = await product_service.get_owned_product(session, user.id, product_id)
    return await _detail(session, product)


@router.patch("/{product_id}", response_model=ProductDetail)
async def update_product(
    product_id: str,
    data: ProductUpdate,
    session: SessionDep,
    user: UserRateLimitDep,
) -> ProductDetail:
    changes = data.model_dump(exclude_unset=True, exclude={"components"})
    product = await product_service.update_product(
        session,
        user.id,
        product_id,
        changes,
        components=_components(data.components),
    )
    return await _detail(session, product)


@router.post("/{product_id}/archive", response_model=ProductOut)
async def archive_product(product_id: str, session: SessionDep, user: UserRateLimitDep) -> Product:
    return await product_service.set_archived(session, user.id, product_id, True)


@router.post("/{product_id}/unarchive", response_model=ProductOut)
async def unarchive_product(product_id: str, session: SessionDep, user: UserRateLimitDep) -> Product:
    return await product_service.set_archived(session, user.id, product_id, False)
