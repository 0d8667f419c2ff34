"""
Domain: Storefront orders as seen by the fulfillment orchestrator.

Orders are created by checkout and approved by an admin; this module only
models what fulfillment reads (items, amount, recipient, cached metadata)
and the forward-only lifecycle it is allowed to advance.

Lifecycle:
    pending -> approved -> completed
                        -> rejected
    pending -> rejected

Regressions (e.g. completed -> approved) are rejected. Re-applying the
current status is a no-op so that retries stay harmless.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping, Optional, Tuple

from .errors import OrderStateError
from .time import require_utc_timestamp

# Storefront product ids for supplier cards look like "reloadly-12345".
SUPPLIER_PRODUCT_PREFIX = "reloadly-"


class OrderStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    COMPLETED = "completed"
    REJECTED = "rejected"


_ALLOWED_TRANSITIONS: Mapping[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.APPROVED, OrderStatus.REJECTED}),
    OrderStatus.APPROVED: frozenset({OrderStatus.COMPLETED, OrderStatus.REJECTED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.REJECTED: frozenset(),
}


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    """True if moving from current to target is allowed (or a no-op)."""

    return current == target or target in _ALLOWED_TRANSITIONS[current]


@dataclass(frozen=True, slots=True)
class OrderItem:
    """Line item captured at sale time. Prices are in minor units."""

    name: str
    quantity: int
    price_at_time: int
    product_id: Optional[str] = None

    @property
    def supplier_product_id(self) -> Optional[str]:
        """Numeric supplier product id with any storefront prefix removed."""

        if not self.product_id:
            return None
        if self.product_id.startswith(SUPPLIER_PRODUCT_PREFIX):
            return self.product_id[len(SUPPLIER_PRODUCT_PREFIX):]
        return self.product_id

    @property
    def unit_price(self) -> Decimal:
        """Unit price in major currency units (e.g. 2500 -> 25.00)."""

        return Decimal(self.price_at_time) / Decimal(100)


@dataclass(frozen=True, slots=True)
class Order:
    """
    Order snapshot loaded from persistence.

    metadata is the loosely typed cache written by fulfillment; it is decoded
    into a RedemptionArtifact only at the edges (see domain.transaction).
    """

    order_id: str
    status: OrderStatus
    amount: int
    currency: str = "USD"
    product_type: Optional[str] = None
    metadata: Mapping[str, Any] = field(default_factory=dict)
    email_sent: bool = False
    user_email: Optional[str] = None
    user_first_name: Optional[str] = None
    items: Tuple[OrderItem, ...] = ()
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.created_at is not None:
            require_utc_timestamp("created_at", self.created_at)
        if self.updated_at is not None:
            require_utc_timestamp("updated_at", self.updated_at)

    @property
    def primary_item(self) -> Optional[OrderItem]:
        return self.items[0] if self.items else None

    @property
    def product_name(self) -> str:
        item = self.primary_item
        return item.name if item else "Gift Card"

    @property
    def is_gift_card(self) -> bool:
        """Gift card orders are tagged by product type or by item name."""

        tag = (self.product_type or "").lower().replace("_", "")
        if "giftcard" in tag:
            return True
        return any("gift card" in item.name.lower() for item in self.items)

    @property
    def major_amount(self) -> Decimal:
        return Decimal(self.amount) / Decimal(100)

    def transition_to(self, target: OrderStatus) -> "Order":
        """
        Return a copy of this order in the target status.

        Raises OrderStateError if the transition would move the order
        backwards or out of a terminal state.
        """

        if not can_transition(self.status, target):
            raise OrderStateError(
                f"Cannot move order {self.order_id} from {self.status.value} to {target.value}",
                details={"orderId": self.order_id, "from": self.status.value, "to": target.value},
            )
        return replace(self, status=target)


__all__ = [
    "SUPPLIER_PRODUCT_PREFIX",
    "OrderStatus",
    "OrderItem",
    "Order",
    "can_transition",
]
