from tally.app.db.base import Base
from tally.app.db import models  # noqa: F401 - import to register models


def test_db_models_register_tables():
    tables = Base.metadata.tables.keys()
    assert "users" in tables
    assert "time_entries" in tables
    assert "products" in tables
    assert "product_bundle_items" in tables
    assert "orders" in tables
    assert "order_items" in tables
    assert "order_reference_prefixes" in tables


def _unique_sets(table_name):
    table = Base.metadata.tables[table_name]
    return [
        {c.name for c in constraint.columns}
        for constraint in table.constraints
        if constraint.__class__.__name__ == "UniqueConstraint"
    ]


def test_order_reference_unique_per_user():
    assert {"user_id", "reference"} in _unique_sets("orders")


def test_reference_prefix_unique_per_user():
    assert {"user_id", "prefix"} in _unique_sets("order_reference_prefixes")


def test_bundle_items_composite_key():
    items = Base.metadata.tables["product_bundle_items"]
    assert {c.name for c in items.primary_key.columns} == {"bundle_id", "product_id"}
