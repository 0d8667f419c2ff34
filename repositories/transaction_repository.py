"""
Gift card transaction repository (persistence).

Persistence operations for GiftCardTransaction rows. It does not decide
merge or immutability rules (see domain/transaction.py and
services/transaction_recorder.py); it only inserts, updates and fetches.
"""

from __future__ import annotations

from typing import Any, List, Mapping, Optional
from uuid import uuid4

from domain.time import parse_utc_datetime, utc_now
from domain.transaction import GiftCardTransaction, TransactionStatus
from repositories.client import check_response, get_client

_TRANSACTIONS_TABLE: str = "gift_card_transactions"


def _row_to_transaction(row: Mapping[str, Any]) -> GiftCardTransaction:
    metadata = row.get("metadata")
    return GiftCardTransaction(
        transaction_id=str(row["transaction_id"]),
        external_id=str(row["external_id"]),
        order_id=str(row["order_id"]),
        status=TransactionStatus(str(row["status"])),
        amount=int(row.get("amount") or 0),
        recipient_email=row.get("recipient_email"),
        metadata=dict(metadata) if isinstance(metadata, Mapping) else {},
        created_at=parse_utc_datetime(row["created_at_utc"]) if row.get("created_at_utc") else None,
    )


def create_transaction(
    order_id: str,
    external_id: str,
    status: TransactionStatus,
    amount: int,
    recipient_email: Optional[str] = None,
    metadata: Optional[Mapping[str, Any]] = None,
) -> GiftCardTransaction:
    """
    Insert a new transaction row.

    Args:
        order_id: Owning order
        external_id: Supplier transaction handle
        status: Initial status (processing on acceptance, completed on delivery)
        amount: Order amount in minor units
        recipient_email: Address the card was issued to
        metadata: Initial metadata (serialized artifact and bookkeeping keys)

    Returns:
        GiftCardTransaction as stored
    """

    transaction_id = uuid4()
    now = utc_now()

    payload: dict[str, Any] = {
        "transaction_id": str(transaction_id),
        "external_id": external_id,
        "order_id": order_id,
        "status": status.value,
        "amount": amount,
        "recipient_email": recipient_email,
        "metadata": dict(metadata or {}),
        "created_at_utc": now.isoformat(),
    }

    response = get_client().table(_TRANSACTIONS_TABLE).insert(payload).execute()
    check_response(response, "create transaction")

    return GiftCardTransaction(
        transaction_id=str(transaction_id),
        external_id=external_id,
        order_id=order_id,
        status=status,
        amount=amount,
        recipient_email=recipient_email,
        metadata=dict(metadata or {}),
        created_at=now,
    )


def update_transaction(
    transaction_id: str,
    status: Optional[TransactionStatus] = None,
    metadata: Optional[Mapping[str, Any]] = None,
) -> None:
    """Update status and/or metadata of an existing transaction row."""

    payload: dict[str, Any] = {}
    if status is not None:
        payload["status"] = status.value
    if metadata is not None:
        payload["metadata"] = dict(metadata)
    if not payload:
        return

    response = (
        get_client()
        .table(_TRANSACTIONS_TABLE)
        .update(payload)
        .eq("transaction_id", transaction_id)
        .execute()
    )
    check_response(response, "update transaction")


def get_latest_transaction_for_order(order_id: str) -> Optional[GiftCardTransaction]:
    """
    Retrieve the most recently created transaction for an order.

    The latest row is the authoritative one for fulfillment.
    """

    response = (
        get_client()
        .table(_TRANSACTIONS_TABLE)
        .select("*")
        .eq("order_id", order_id)
        .order("created_at_utc", desc=True)
        .limit(1)
        .execute()
    )
    rows = check_response(response, "get latest transaction")
    if not rows:
        return None
    return _row_to_transaction(rows[0])


def list_transactions_for_order(order_id: str) -> List[GiftCardTransaction]:
    """All transactions for an order, newest first."""

    response = (
        get_client()
        .table(_TRANSACTIONS_TABLE)
        .select("*")
        .eq("order_id", order_id)
        .order("created_at_utc", desc=True)
        .execute()
    )
    rows = check_response(response, "list transactions")
    return [_row_to_transaction(row) for row in rows]


__all__ = [
    "create_transaction",
    "update_transaction",
    "get_latest_transaction_for_order",
    "list_transactions_for_order",
]
