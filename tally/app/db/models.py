import enum
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from tally.app.db.base import Base

MONEY = Numeric(10, 2)


def _new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    USER = "user"


class ProductKind(str, enum.Enum):
    SIMPLE = "simple"
    BUNDLE = "bundle"


class OrderStatus(str, enum.Enum):
    PREPARED = "prepared"
    SENT = "sent"
    PAID = "paid"


def _enum_column(enum_cls: type[enum.Enum], name: str) -> Enum:
    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        values_callable=lambda members: [m.value for m in members],
    )


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        Index("idx_users_created", "created_at"),
        Index("idx_users_api_key_hash", "api_key_hash"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(200))
    email: Mapped[str] = mapped_column(String(320), unique=True)
    role: Mapped[UserRole] = mapped_column(
        _enum_column(UserRole, "user_role"), default=UserRole.USER
    )
    api_key_hash: Mapped[str] = mapped_column(String(64))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class TimeEntry(Base):
    __tablename__ = "time_entries"
    __table_args__ = (
        Index("idx_time_entries_user_started", "user_id", "started_at"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (
        Index("idx_products_user", "user_id"),
        Index("idx_products_user_archived", "user_id", "archived_at"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))
    name: Mapped[str] = mapped_column(String(500))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    sku: Mapped[str | None] = mapped_column(String(200), nullable=True)
    price_tax_free: Mapped[Decimal] = mapped_column(MONEY)
    vat_percent: Mapped[Decimal] = mapped_column(Numeric(5, 2))
    quantity: Mapped[int] = mapped_column(Integer, default=0)
    kind: Mapped[ProductKind] = mapped_column(
        _enum_column(ProductKind, "product_kind"), default=ProductKind.SIMPLE
    )
    archived_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )


class ProductBundleItem(Base):
    """One component line of a bundle: ``quantity`` units of a simple product."""

    __tablename__ = "product_bundle_items"

    bundle_id: Mapped[str] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"), primary_key=True
    )
    product_id: Mapped[str] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"), primary_key=True
    )
    quantity: Mapped[int] = mapped_column(Integer)


class OrderReferencePrefix(Base):
    """A user-defined prefix from which order references are numbered."""

    __tablename__ = "order_reference_prefixes"
    __table_args__ = (
        UniqueConstraint("user_id", "prefix", name="uq_order_reference_prefixes_user_prefix"),
        Index("idx_order_reference_prefixes_user", "user_id"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))
    prefix: Mapped[str] = mapped_column(String(20))


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint("user_id", "reference", name="uq_orders_user_reference"),
        Index("idx_orders_user_created", "user_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))
    reference: Mapped[str] = mapped_column(String(500))
    status: Mapped[OrderStatus] = mapped_column(_enum_column(OrderStatus, "order_status"))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class OrderItem(Base):
    __tablename__ = "order_items"
    __table_args__ = (Index("idx_order_items_order", "order_id"),)

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    order_id: Mapped[str] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"))
    product_id: Mapped[str | None] = mapped_column(
        ForeignKey("products.id", ondelete="SET NULL"), nullable=True
    )
    quantity: Mapped[int] = mapped_column(Integer)
    unit_price_tax_free: Mapped[Decimal] = mapped_column(MONEY)
    unit_price_tax_included: Mapped[Decimal] = mapped_column(MONEY)
    price_modifications: Mapped[list[dict] | None] = mapped_column(JSON, nullable=True)
