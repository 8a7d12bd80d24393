"""Database package for Tally.

This package provides:
- Database models (User, TimeEntry, Product, ProductBundleItem, Order, OrderItem)
- Asynchronous session management and FastAPI dependency injection
- Pagination and CRUD operations
"""

from tally.app.db.base import Base
from tally.app.db.models import (
    Order,
    OrderItem,
    OrderStatus,
    Product,
    ProductBundleItem,
    ProductKind,
    TimeEntry,
    User,
    UserRole,
)
from tally.app.db.async_session import (
    close_async_engine,
    get_async_engine,
    get_async_session,
    get_async_session_maker,
    get_db,
    init_async_db,
)
from tally.app.db.dependencies import SessionDep
from tally.app.db.pagination import Page, paginated

__all__ = [
    "Base",
    "Order",
    "OrderItem",
    "OrderStatus",
    "Product",
    "ProductBundleItem",
    "ProductKind",
    "TimeEntry",
    "User",
    "UserRole",
    "close_async_engine",
    "get_async_engine",
    "get_async_session",
    "get_async_session_maker",
    "get_db",
    "init_async_db",
    "SessionDep",
    "Page",
    "paginated",
]
