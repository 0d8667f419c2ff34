"""
Order repository (persistence).

Reads storefront orders (with their items) and writes the only fields the
fulfillment orchestrator owns: status, metadata and the email_sent flag.
Lifecycle rules live in domain/order.py; status updates here are
conditional on the current status so a stale caller cannot regress a row.
"""

from __future__ import annotations

from typing import Any, Iterable, List, Mapping, Optional

from domain.order import Order, OrderItem, OrderStatus
from domain.time import parse_utc_datetime, utc_now
from repositories.client import check_response, get_client

# Supabase table names; keep aligned with the database schema.
_ORDERS_TABLE: str = "orders"
_ORDER_ITEMS_TABLE: str = "order_items"

GIFT_CARD_PRODUCT_TYPES: tuple[str, ...] = ("giftcard", "gift_card")


def _row_to_item(row: Mapping[str, Any]) -> OrderItem:
    product_id = row.get("product_id")
    return OrderItem(
        name=str(row.get("name") or ""),
        quantity=int(row.get("quantity") or 1),
        price_at_time=int(row.get("price_at_time") or 0),
        product_id=str(product_id) if product_id is not None else None,
    )


def _row_to_order(row: Mapping[str, Any], items: Iterable[OrderItem]) -> Order:
    metadata = row.get("metadata")
    return Order(
        order_id=str(row["order_id"]),
        status=OrderStatus(str(row["status"])),
        amount=int(row.get("amount") or 0),
        currency=str(row.get("currency") or "USD"),
        product_type=row.get("product_type"),
        metadata=dict(metadata) if isinstance(metadata, Mapping) else {},
        email_sent=bool(row.get("email_sent", False)),
        user_email=row.get("user_email"),
        user_first_name=row.get("user_first_name"),
        items=tuple(items),
        created_at=parse_utc_datetime(row["created_at_utc"]) if row.get("created_at_utc") else None,
        updated_at=parse_utc_datetime(row["updated_at_utc"]) if row.get("updated_at_utc") else None,
    )


def _items_by_order(order_ids: List[str]) -> dict[str, List[OrderItem]]:
    if not order_ids:
        return {}
    response = (
        get_client()
        .table(_ORDER_ITEMS_TABLE)
        .select("*")
        .in_("order_id", order_ids)
        .execute()
    )
    rows = check_response(response, "list order items")

    grouped: dict[str, List[OrderItem]] = {order_id: [] for order_id in order_ids}
    for row in rows:
        grouped.setdefault(str(row["order_id"]), []).append(_row_to_item(row))
    return grouped


def get_order_by_id(order_id: str) -> Optional[Order]:
    """
    Retrieve a single order with its items.

    Returns:
        Order or None if not found
    """

    response = (
        get_client()
        .table(_ORDERS_TABLE)
        .select("*")
        .eq("order_id", order_id)
        .limit(1)
        .execute()
    )
    rows = check_response(response, "get order")
    if not rows:
        return None

    items = _items_by_order([order_id]).get(order_id, [])
    return _row_to_order(rows[0], items)


def update_order_status(
    order_id: str,
    status: OrderStatus,
    expected_current: Iterable[OrderStatus],
) -> bool:
    """
    Move an order to `status` if its stored status is one of `expected_current`.

    Returns:
        True if a row was updated, False if the stored status did not match
        (another writer already moved the order).
    """

    payload: dict[str, Any] = {
        "status": status.value,
        "updated_at_utc": utc_now().isoformat(),
    }
    response = (
        get_client()
        .table(_ORDERS_TABLE)
        .update(payload)
        .eq("order_id", order_id)
        .in_("status", [s.value for s in expected_current])
        .execute()
    )
    rows = check_response(response, "update order status")
    return len(rows) > 0


def update_order_metadata(order_id: str, metadata: Mapping[str, Any]) -> None:
    """Replace the order's metadata column (callers merge beforehand)."""

    response = (
        get_client()
        .table(_ORDERS_TABLE)
        .update({"metadata": dict(metadata), "updated_at_utc": utc_now().isoformat()})
        .eq("order_id", order_id)
        .execute()
    )
    check_response(response, "update order metadata")


def mark_email_sent(order_id: str, sent: bool = True) -> None:
    response = (
        get_client()
        .table(_ORDERS_TABLE)
        .update({"email_sent": sent, "updated_at_utc": utc_now().isoformat()})
        .eq("order_id", order_id)
        .execute()
    )
    check_response(response, "update email_sent")


def list_gift_card_orders(limit: int = 100) -> List[Order]:
    """
    List gift card orders, newest first.

    Args:
        limit: Maximum number of orders to return

    Returns:
        List[Order] (possibly empty)
    """

    response = (
        get_client()
        .table(_ORDERS_TABLE)
        .select("*")
        .in_("product_type", list(GIFT_CARD_PRODUCT_TYPES))
        .order("created_at_utc", desc=True)
        .limit(limit)
        .execute()
    )
    rows = check_response(response, "list gift card orders")

    order_ids = [str(row["order_id"]) for row in rows]
    items = _items_by_order(order_ids)
    return [_row_to_order(row, items.get(str(row["order_id"]), [])) for row in rows]


__all__ = [
    "GIFT_CARD_PRODUCT_TYPES",
    "get_order_by_id",
    "update_order_status",
    "update_order_metadata",
    "mark_email_sent",
    "list_gift_card_orders",
]
