"""
Order submitter.

Builds the supplier purchase request for an approved order and sends it:

1. Resolve the country code from the supplier product (never from the order)
2. Normalize the unit price against the product's denominations
3. POST the purchase with a customer identifier of "<order_id>-<epoch ms>"
4. Return the supplier transaction handle

Validation failures raise before any network call. Submission is NOT
idempotent: each successful call creates a separate supplier order.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Dict, Optional

from domain.denomination import normalize_unit_price
from domain.errors import SupplierError, ValidationError
from domain.product import GiftCardProduct
from services.supplier_client import SupplierClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PurchaseRequest:
    """What the orchestrator wants to buy for one order."""

    order_id: str
    product_id: str
    quantity: int
    requested_unit_price: Decimal
    sender_name: str
    recipient_email: Optional[str]


@dataclass(frozen=True, slots=True)
class SubmissionReceipt:
    """
    Supplier acceptance of a purchase.

    transaction_id: supplier handle used for polling
    custom_identifier: idempotency token sent with the request
    unit_price: normalized price actually submitted
    """

    transaction_id: str
    custom_identifier: str
    unit_price: Decimal
    country_code: str
    raw: Dict[str, Any]


def build_custom_identifier(order_id: str, submitted_at_ms: int) -> str:
    return f"{order_id}-{submitted_at_ms}"


def _wire_number(value: Decimal) -> Any:
    """Supplier expects JSON numbers; keep integers integral."""

    return int(value) if value == value.to_integral_value() else float(value)


class OrderSubmitter:
    def __init__(
        self,
        supplier: SupplierClient,
        now_ms: Callable[[], int] = lambda: int(time.time() * 1000),
    ) -> None:
        self._supplier = supplier
        self._now_ms = now_ms

    def submit(self, request: PurchaseRequest, product: GiftCardProduct) -> SubmissionReceipt:
        """
        Submit a purchase for the given product.

        Raises:
            ValidationError: missing country code or price outside the range
            SupplierError: supplier rejected the purchase
        """

        country_code = product.country_code
        if not country_code:
            raise ValidationError(
                "Country code not found in product details",
                code="MISSING_COUNTRY_CODE",
                details={"productId": request.product_id},
            )

        unit_price = normalize_unit_price(request.requested_unit_price, product)
        custom_identifier = build_custom_identifier(request.order_id, self._now_ms())

        payload: Dict[str, Any] = {
            "customIdentifier": custom_identifier,
            "productId": int(request.product_id) if request.product_id.isdigit() else request.product_id,
            "countryCode": country_code,
            "quantity": request.quantity,
            "unitPrice": _wire_number(unit_price),
            "senderName": request.sender_name,
            "recipientEmail": request.recipient_email,
            "preOrder": False,
        }

        logger.info(
            "Submitting gift card order to supplier",
            extra={
                "order_id": request.order_id,
                "product_id": request.product_id,
                "custom_identifier": custom_identifier,
                "unit_price": str(unit_price),
                "quantity": request.quantity,
            },
        )

        body = self._supplier.place_order(payload)

        transaction_id = body.get("transactionId")
        if transaction_id in (None, ""):
            raise SupplierError(
                "Supplier accepted the order without a transaction id",
                code="MISSING_TRANSACTION_ID",
                details=body,
            )

        logger.info(
            "Supplier accepted gift card order",
            extra={"order_id": request.order_id, "transaction_id": str(transaction_id)},
        )

        return SubmissionReceipt(
            transaction_id=str(transaction_id),
            custom_identifier=custom_identifier,
            unit_price=unit_price,
            country_code=country_code,
            raw=body,
        )


__all__ = [
    "PurchaseRequest",
    "SubmissionReceipt",
    "OrderSubmitter",
    "build_custom_identifier",
]
