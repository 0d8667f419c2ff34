"""
Domain: Supplier gift card product (read-only to fulfillment).

Products are owned by the supplier. The orchestrator only needs the country,
the accepted denominations and the currency, decoded once from the supplier's
product body.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Mapping, Optional, Tuple


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    return Decimal(str(value))


@dataclass(frozen=True, slots=True)
class GiftCardProduct:
    """
    Either fixed_denominations is non-empty, or min_amount/max_amount bound
    a continuous range. Amounts are in the recipient currency.
    """

    product_id: str
    product_name: str
    country_code: Optional[str]
    fixed_denominations: Tuple[Decimal, ...] = ()
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None
    currency: Optional[str] = None

    @property
    def has_fixed_denominations(self) -> bool:
        return len(self.fixed_denominations) > 0

    @classmethod
    def from_supplier(cls, body: Mapping[str, Any]) -> "GiftCardProduct":
        """Decode a supplier `GET /products/{id}` body."""

        country = body.get("country") or {}
        denominations = body.get("fixedRecipientDenominations") or []
        return cls(
            product_id=str(body.get("productId", "")),
            product_name=str(body.get("productName") or "Gift Card"),
            country_code=country.get("isoName") or None,
            fixed_denominations=tuple(Decimal(str(d)) for d in denominations),
            min_amount=_to_decimal(body.get("recipientCurrencyMinAmount")),
            max_amount=_to_decimal(body.get("recipientCurrencyMaxAmount")),
            currency=body.get("recipientCurrencyCode"),
        )


__all__ = ["GiftCardProduct"]
