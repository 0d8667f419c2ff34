"""
Tests for `domain/denomination.py`.

Covers contract rules:
- Fixed denominations: exact match is kept, otherwise the first denomination
  is substituted.
- Range products: prices outside [min, max] raise ValidationError with the
  bounds in details; in-range prices pass through unchanged.
- A product with neither denominations nor a range is rejected.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from domain.denomination import normalize_unit_price
from domain.errors import ValidationError
from domain.product import GiftCardProduct


def _fixed(*values: str) -> GiftCardProduct:
    return GiftCardProduct(
        product_id="120",
        product_name="Amazon US",
        country_code="US",
        fixed_denominations=tuple(Decimal(v) for v in values),
    )


def _range(min_amount: str, max_amount: str) -> GiftCardProduct:
    return GiftCardProduct(
        product_id="200",
        product_name="Steam",
        country_code="US",
        min_amount=Decimal(min_amount),
        max_amount=Decimal(max_amount),
    )


def test_fixed_denomination_exact_match_is_kept() -> None:
    assert normalize_unit_price(Decimal("25"), _fixed("10", "25", "50")) == Decimal("25")


def test_fixed_denomination_without_match_substitutes_first() -> None:
    """Lenient behavior: an unknown price falls back to the first listed denomination."""

    assert normalize_unit_price(Decimal("30"), _fixed("10", "25", "50")) == Decimal("10")


def test_range_price_inside_bounds_passes_through() -> None:
    assert normalize_unit_price(Decimal("37.50"), _range("5", "100")) == Decimal("37.50")
    assert normalize_unit_price(Decimal("5"), _range("5", "100")) == Decimal("5")
    assert normalize_unit_price(Decimal("100"), _range("5", "100")) == Decimal("100")


def test_range_price_outside_bounds_is_rejected_with_details() -> None:
    with pytest.raises(ValidationError) as excinfo:
        normalize_unit_price(Decimal("150"), _range("5", "100"))

    err = excinfo.value
    assert err.code == "INVALID_PRICE_RANGE"
    assert err.status == 400
    assert err.details["min"] == Decimal("5")
    assert err.details["max"] == Decimal("100")
    assert err.details["requestedPrice"] == Decimal("150")
    assert "between 5 and 100" in err.message


def test_range_price_below_min_is_rejected() -> None:
    with pytest.raises(ValidationError):
        normalize_unit_price(Decimal("4.99"), _range("5", "100"))


def test_product_without_denominations_or_range_is_rejected() -> None:
    product = GiftCardProduct(product_id="300", product_name="Broken", country_code="US")

    with pytest.raises(ValidationError) as excinfo:
        normalize_unit_price(Decimal("10"), product)

    assert excinfo.value.code == "MISSING_DENOMINATIONS"
