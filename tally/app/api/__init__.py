"""API endpoints package for Tally."""

from tally.app.api.admin import router as admin_router
from tally.app.api.order_reference_prefixes import router as order_reference_prefixes_router
from tally.app.api.orders import router as orders_router
from tally.app.api.products import router as products_router
from tally.app.api.time_entries import router as time_entries_router

__all__ = [
    "admin_router",
    "order_reference_prefixes_router",
    "orders_router",
    "products_router",
    "time_entries_router",
]
