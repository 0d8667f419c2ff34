"""
Domain: Denomination validation (pure).

Normalizes a requested unit price into one the supplier will accept:

- Fixed-denomination products: exact match wins. With no match the first
  listed denomination is used instead of failing (lenient behavior kept
  from the storefront; logged so it can be tightened later).
- Range products: the price must lie within [min, max] or ValidationError
  is raised. In-range prices pass through unchanged.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from .errors import ValidationError
from .product import GiftCardProduct

logger = logging.getLogger(__name__)


def normalize_unit_price(requested_price: Decimal, product: GiftCardProduct) -> Decimal:
    """
    Return the supplier-acceptable unit price for requested_price.

    Raises:
        ValidationError: range product and requested_price outside [min, max],
            or a product with neither denominations nor a range.
    """

    if product.has_fixed_denominations:
        for denomination in product.fixed_denominations:
            if denomination == requested_price:
                return denomination
        substitute = product.fixed_denominations[0]
        logger.warning(
            "Requested price not in fixed denominations, substituting first denomination",
            extra={
                "product_id": product.product_id,
                "requested_price": str(requested_price),
                "substituted_price": str(substitute),
            },
        )
        return substitute

    min_amount = product.min_amount
    max_amount = product.max_amount
    if min_amount is None or max_amount is None:
        raise ValidationError(
            f"Product {product.product_id} has no denominations or price range",
            code="MISSING_DENOMINATIONS",
            details={"productId": product.product_id},
        )

    if requested_price < min_amount or requested_price > max_amount:
        raise ValidationError(
            f"Invalid price. Must be between {min_amount} and {max_amount}",
            code="INVALID_PRICE_RANGE",
            details={
                "requestedPrice": requested_price,
                "min": min_amount,
                "max": max_amount,
                "productId": product.product_id,
            },
        )

    return requested_price


__all__ = ["normalize_unit_price"]
