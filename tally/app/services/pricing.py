"""Price arithmetic for orders."""

from decimal import ROUND_HALF_UP, Decimal
from typing import Union

CENT = Decimal("0.01")

Number = Union[Decimal, int, float, str]


def to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() keeps floats from leaking binary noise into money values
    return Decimal(str(value))


def round_money(value: Number) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def price_tax_included(price_tax_free: Number, vat_percent: Number) -> Decimal:
    """Price including VAT, rounded to cents."""
    price = to_decimal(price_tax_free)
    vat = to_decimal(vat_percent)
    return round_money(price * (1 + vat / 100))
