"""CRUD operations package.

- user.py: User lookups, creation and listing
- time_entry.py: Time entry operations
- product.py: Product catalog and stock operations
- order.py: Order operations
- order_reference_prefix.py: Order reference prefixes and reference numbering
"""

from tally.app.db.crud.user import (
    create_user,
    list_users_page,
    lookup_user_by_hash,
)
from tally.app.db.crud.time_entry import (
    create_time_entry,
    delete_time_entries,
    get_time_entry,
    list_time_entries_between,
)
from tally.app.db.crud.product import (
    decrement_stock,
    get_active_products,
    get_bundle_items,
    get_component_kinds,
    get_product,
    get_stock_levels,
    list_products_page,
    replace_bundle_items,
)
from tally.app.db.crud.order import (
    delete_order_with_items,
    get_order,
    get_order_items,
    get_order_items_with_names,
    get_order_totals,
    list_orders_page,
    reference_exists,
)
from tally.app.db.crud.order_reference_prefix import (
    count_reference_prefixes,
    create_reference_prefix,
    delete_reference_prefix,
    get_reference_prefix,
    list_reference_prefixes,
    next_reference_for_prefix,
    reference_prefix_exists,
)

__all__ = [
    # User
    "create_user",
    "list_users_page",
    "lookup_user_by_hash",
    # Time entry
    "create_time_entry",
    "delete_time_entries",
    "get_time_entry",
    "list_time_entries_between",
    # Product
    "decrement_stock",
    "get_active_products",
    "get_bundle_items",
    "get_component_kinds",
    "get_product",
    "get_stock_levels",
    "list_products_page",
    "replace_bundle_items",
    # Order
    "delete_order_with_items",
    "get_order",
    "get_order_items",
    "get_order_items_with_names",
    "get_order_totals",
    "list_orders_page",
    "reference_exists",
    # Order reference prefix
    "count_reference_prefixes",
    "create_reference_prefix",
    "delete_reference_prefix",
    "get_reference_prefix",
    "list_reference_prefixes",
    "next_reference_for_prefix",
    "reference_prefix_exists",
]
