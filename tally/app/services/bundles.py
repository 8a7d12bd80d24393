"""Bundle expansion for inventory orders.

A bundle product is a fixed recipe of simple products. Before stock can be
checked or decremented, order lines are translated into the total number of
units needed for every simple product.
"""

from typing import Callable, Iterable, Mapping, NamedTuple, Optional, Sequence, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tally.app.db.models import Product, ProductBundleItem, ProductKind
from tally.app.exceptions import UnknownProductError


class LineItem(NamedTuple):
    product_id: str
    quantity: int


class BundleComponent(NamedTuple):
    product_id: str
    quantity: int


KindLookup = Union[Mapping[str, ProductKind], Callable[[str], Optional[ProductKind]]]
ComponentsLookup = Union[
    Mapping[str, Sequence[BundleComponent]],
    Callable[[str], Optional[Sequence[BundleComponent]]],
]


def _lookup(source, key):
    if callable(source):
        return source(key)
    return source.get(key)


def compute_required_quantities(
    items: Iterable[LineItem],
    product_kinds: KindLookup,
    bundle_components: ComponentsLookup,
    strict: bool = False,
) -> dict[str, int]:
    """Compute how many units of each simple product the items require.

    Simple products count their own quantity. Bundles are expanded one level
    into their components, each multiplied by the bundle quantity; the bundle
    id itself is never a key of the result. A bundle without components
    contributes nothing.

    Items whose product is missing from ``product_kinds`` are skipped, since
    callers validate product ids before expanding. Pass ``strict=True`` to
    raise instead.

    Args:
        items: Order lines with ``product_id`` and ``quantity`` attributes
        product_kinds: Mapping or callable giving the kind of a product
        bundle_components: Mapping or callable giving the components of a bundle
        strict: Raise on unknown products instead of skipping them

    Returns:
        Mapping of simple product id to required quantity, in first-seen order

    Raises:
        UnknownProductError: In strict mode, for an item of unknown product
    """
    required: dict[str, int] = {}
    for item in items:
        kind = _lookup(product_kinds, item.product_id)
        if kind is None:
            if strict:
                raise UnknownProductError(item.product_id)
            continue

        if kind == ProductKind.SIMPLE:
            required[item.product_id] = required.get(item.product_id, 0) + item.quantity
        elif kind == ProductKind.BUNDLE:
            for component in _lookup(bundle_components, item.product_id) or ():
                required[component.product_id] = (
                    required.get(component.product_id, 0) + item.quantity * component.quantity
                )
    return required


async def load_bundle_components(
    session: AsyncSession,
    bundle_ids: Iterable[str],
) -> dict[str, list[BundleComponent]]:
    """Load the component lines of the given bundles, grouped by bundle id."""
    bundle_ids = list(bundle_ids)
    components: dict[str, list[BundleComponent]] = {}
    if not bundle_ids:
        return components

    result = await session.execute(
        select(
            ProductBundleItem.bundle_id,
            ProductBundleItem.product_id,
            ProductBundleItem.quantity,
        ).where(ProductBundleItem.bundle_id.in_(bundle_ids))
    )
    for bundle_id, product_id, quantity in result.all():
        components.setdefault(bundle_id, []).append(
            BundleComponent(product_id=product_id, quantity=int(quantity))
        )
    return components


async def expand_bundle_items(
    session: AsyncSession,
    items: Sequence[LineItem],
    user_id: str,
) -> dict[str, int]:
    """Expand order lines into simple product requirements using the catalog.

    Only products owned by ``user_id`` and not archived are considered.
    """
    product_ids = list({item.product_id for item in items})
    if not product_ids:
        return {}

    result = await session.execute(
        select(Product.id, Product.kind).where(
            Product.user_id == user_id,
            Product.id.in_(product_ids),
            Product.archived_at.is_(None),
        )
    )
    kinds = {product_id: kind for product_id, kind in result.all()}
    bundle_ids = [pid for pid, kind in kinds.items() if kind == ProductKind.BUNDLE]
    components = await load_bundle_components(session, bundle_ids)

    return compute_required_quantities(items, kinds, components)
