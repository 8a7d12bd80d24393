"""Product catalog rules: creation, updates and bundle composition."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from tally.app.core.logging import get_log_context, get_logger
from tally.app.db import crud
from tally.app.db.models import Product, ProductKind
from tally.app.exceptions import BadRequestError, NotFoundError
from tally.app.services.bundles import BundleComponent

logger = get_logger(__name__)


def merge_components(components: Iterable[BundleComponent]) -> Dict[str, int]:
    """Sum the quantities of repeated component lines."""
    merged: Dict[str, int] = {}
    for component in components:
        merged[component.product_id] = merged.get(component.product_id, 0) + component.quantity
    return merged


async def validate_bundle_components(
    session: AsyncSession,
    user_id: str,
    component_ids: Iterable[str],
    bundle_id: Optional[str] = None,
) -> None:
    """Check that bundle components are owned, active, simple products.

    Raises:
        BadRequestError: If a component is unknown, archived, foreign, a
            bundle, or the bundle itself
    """
    component_ids = set(component_ids)
    if not component_ids:
        return
    if bundle_id is not None and bundle_id in component_ids:
        raise BadRequestError("A bundle cannot contain itself")

    kinds = await crud.get_component_kinds(session, user_id, component_ids)
    if len(kinds) != len(component_ids):
        raise BadRequestError("Invalid bundle component product ids")
    if any(kind != ProductKind.SIMPLE for kind in kinds.values()):
        raise BadRequestError("Bundle components must be simple products")


async def create_product(
    session: AsyncSession,
    user_id: str,
    name: str,
    price_tax_free: Decimal,
    vat_percent: Decimal,
    kind: ProductKind = ProductKind.SIMPLE,
    quantity: int = 0,
    description: Optional[str] = None,
    sku: Optional[str] = None,
    components: Iterable[BundleComponent] = (),
) -> Product:
    """Create a product, and its composition when it is a bundle.

    Bundles never hold stock of their own; their quantity is stored as 0.
    """
    merged = merge_components(components)
    if kind == ProductKind.BUNDLE:
        if not merged:
            raise BadRequestError("A bundle needs at least one component")
        await validate_bundle_components(session, user_id, merged)
    elif merged:
        raise BadRequestError("Only bundles can have components")

    product = Product(
        user_id=user_id,
        name=name,
        description=description,
        sku=sku,
        price_tax_free=price_tax_free,
        vat_percent=vat_percent,
        quantity=quantity if kind == ProductKind.SIMPLE else 0,
        kind=kind,
    )
    session.add(product)
    await session.flush()

    if merged:
        await crud.replace_bundle_items(session, product.id, merged)

    logger.info(
        "Product created",
        extra=get_log_context(user_id=user_id, product_id=product.id, kind=kind.value),
    )
    return product


async def get_owned_product(session: AsyncSession, user_id: str, product_id: str) -> Product:
    product = await crud.get_product(session, user_id, product_id)
    if product is None:
        raise NotFoundError("Product not found")
    return product


async def update_product(
    session: AsyncSession,
    user_id: str,
    product_id: str,
    changes: dict,
    components: Optional[Iterable[BundleComponent]] = None,
) -> Product:
    """Apply field changes and, for bundles, replace the composition."""
    product = await get_owned_product(session, user_id, product_id)

    if "quantity" in changes and product.kind == ProductKind.BUNDLE:
        raise BadRequestError("Bundles have no stock of their own")

    for field, value in changes.items():
        setattr(product, field, value)

    if components is not None:
        if product.kind != ProductKind.BUNDLE:
            raise BadRequestError("Only bundles can have components")
        merged = merge_components(components)
        if not merged:
            raise BadRequestError("A bundle needs at least one component")
        await validate_bundle_components(session, user_id, merged, bundle_id=product.id)
        await crud.replace_bundle_items(session, product.id, merged)

    await session.flush()
    return product


async def set_archived(
    session: AsyncSession,
    user_id: str,
    product_id: str,
    archived: bool,
) -> Product:
    product = await get_owned_product(session, user_id, product_id)
    product.archived_at = datetime.now(timezone.utc) if archived else None
    await session.flush()
    return product
