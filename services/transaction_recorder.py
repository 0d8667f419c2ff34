"""
Transaction recorder.

Persists fulfillment progress for an order:

- record_acceptance: supplier accepted a purchase -> new `processing` row
- record_failure: definitive supplier failure -> row marked `failed`
- record_orphaned_delivery: artifact for an order that can no longer
  complete -> kept on the transaction row only
- record_delivery: artifact retrieved -> row created or merged to
  `completed`, artifact cached on the order, order advanced to `completed`,
  customer notified, `email_sent` stamped only on confirmed delivery

Merging keeps every existing metadata key unless the new value is non-empty,
and never replaces a stored redemption code with a different one.

If a persistence write fails after the supplier has issued the card, the
card exists only in memory. That case is raised as RecordingError and
logged at critical with the supplier handle; it is not retried, because
re-fetching a delivered card is not guaranteed to be supported.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from domain.errors import NotificationError, RecordingError
from domain.order import Order, OrderStatus
from domain.time import utc_now
from domain.transaction import GiftCardTransaction, RedemptionArtifact, TransactionStatus, merge_metadata
from repositories import order_repository, transaction_repository
from services.notification_service import NotificationDispatcher
from services.order_submitter import SubmissionReceipt

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RecordResult:
    """Outcome of recording a delivered artifact."""

    order: Order
    transaction: GiftCardTransaction
    artifact: RedemptionArtifact
    email_sent: bool


def notification_subject(product_name: str) -> str:
    return f"Your {product_name} Gift Card is Ready!"


def notification_content(order: Order, artifact: RedemptionArtifact, product_name: str) -> Dict[str, Any]:
    return {
        "orderId": order.order_id,
        "productName": product_name,
        "firstName": order.user_first_name or "Valued Customer",
        "amount": str(order.major_amount),
        "currency": order.currency,
        "redemptionCode": artifact.redemption_code,
        "pinCode": artifact.pin_code,
        "serialNumber": artifact.serial_number,
        "redemptionInstructions": artifact.redemption_instructions,
    }


class TransactionRecorder:
    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        self._dispatcher = dispatcher
        self._now = now

    def record_acceptance(self, order: Order, receipt: SubmissionReceipt, product_id: str) -> GiftCardTransaction:
        """Create the `processing` transaction for an accepted supplier order."""

        return transaction_repository.create_transaction(
            order_id=order.order_id,
            external_id=receipt.transaction_id,
            status=TransactionStatus.PROCESSING,
            amount=order.amount,
            recipient_email=order.user_email,
            metadata={
                "customIdentifier": receipt.custom_identifier,
                "unitPrice": str(receipt.unit_price),
                "countryCode": receipt.country_code,
                "productId": product_id,
                "submittedAt": self._now().isoformat(),
            },
        )

    def record_failure(self, transaction: GiftCardTransaction, error: Exception) -> None:
        """Mark a transaction failed, keeping its metadata and noting the error."""

        code = getattr(error, "code", type(error).__name__)
        metadata = merge_metadata(
            transaction.metadata,
            {"lastError": str(error), "lastErrorCode": code, "failedAt": self._now().isoformat()},
        )
        transaction_repository.update_transaction(
            transaction.transaction_id,
            status=TransactionStatus.FAILED,
            metadata=metadata,
        )

    def _persist(
        self,
        order: Order,
        external_id: str,
        artifact_metadata: Dict[str, Any],
    ) -> GiftCardTransaction:
        latest = transaction_repository.get_latest_transaction_for_order(order.order_id)

        if latest is not None and latest.external_id == external_id:
            merged = merge_metadata(latest.metadata, artifact_metadata)
            transaction_repository.update_transaction(
                latest.transaction_id,
                status=TransactionStatus.COMPLETED,
                metadata=merged,
            )
            return replace(latest, status=TransactionStatus.COMPLETED, metadata=merged)

        return transaction_repository.create_transaction(
            order_id=order.order_id,
            external_id=external_id,
            status=TransactionStatus.COMPLETED,
            amount=order.amount,
            recipient_email=order.user_email,
            metadata=artifact_metadata,
        )

    def record_delivery(
        self,
        order: Order,
        external_id: str,
        artifact: RedemptionArtifact,
        product_name: Optional[str] = None,
    ) -> RecordResult:
        """
        Persist a delivered artifact, complete the order and notify the customer.

        Raises:
            OrderStateError: the order cannot move to completed (pending/rejected)
            RecordingError: a persistence write failed after delivery
        """

        completed = order.transition_to(OrderStatus.COMPLETED)
        name = product_name or order.product_name
        if artifact.delivered_at is None:
            artifact = artifact.delivered(self._now())

        artifact_metadata = artifact.to_metadata()
        artifact_metadata["productName"] = name
        artifact_metadata["sentAt"] = self._now().isoformat()

        try:
            transaction = self._persist(order, external_id, artifact_metadata)

            order_metadata = merge_metadata(order.metadata, artifact_metadata)
            order_repository.update_order_metadata(order.order_id, order_metadata)

            if order.status != OrderStatus.COMPLETED:
                order_repository.update_order_status(
                    order.order_id,
                    OrderStatus.COMPLETED,
                    expected_current=[order.status],
                )
        except RuntimeError as exc:
            logger.critical(
                "Gift card delivered by supplier but could not be stored",
                extra={
                    "order_id": order.order_id,
                    "transaction_id": external_id,
                    "error": str(exc),
                },
            )
            raise RecordingError(
                "Gift card was issued but could not be recorded",
                details={"orderId": order.order_id, "transactionId": external_id},
            ) from exc

        completed = replace(completed, metadata=order_metadata)
        email_sent = self._notify(completed, artifact, name)
        if email_sent:
            completed = replace(completed, email_sent=True)

        return RecordResult(order=completed, transaction=transaction, artifact=artifact, email_sent=email_sent)

    def record_orphaned_delivery(
        self,
        transaction: GiftCardTransaction,
        artifact: RedemptionArtifact,
        product_name: Optional[str] = None,
    ) -> GiftCardTransaction:
        """
        Store an artifact whose order can no longer be completed (e.g. it was
        rejected while polling). Only the transaction row is written; the order
        and the customer are left alone.
        """

        if artifact.delivered_at is None:
            artifact = artifact.delivered(self._now())
        artifact_metadata = artifact.to_metadata()
        artifact_metadata["productName"] = product_name
        merged = merge_metadata(transaction.metadata, artifact_metadata)
        transaction_repository.update_transaction(
            transaction.transaction_id,
            status=TransactionStatus.COMPLETED,
            metadata=merged,
        )
        return replace(transaction, status=TransactionStatus.COMPLETED, metadata=merged)

    def _notify(self, order: Order, artifact: RedemptionArtifact, product_name: str) -> bool:
        if not order.user_email:
            logger.warning("Order has no customer email; skipping notification", extra={"order_id": order.order_id})
            return False

        try:
            result = self._dispatcher.send(
                order.user_email,
                notification_subject(product_name),
                notification_content(order, artifact, product_name),
            )
        except NotificationError as exc:
            logger.error(
                "Gift card notification failed; order stays completed",
                extra={"order_id": order.order_id, "error": exc.message, "code": exc.code},
            )
            return False

        if not result.delivered:
            logger.warning("Gift card notification not delivered", extra={"order_id": order.order_id})
            return False

        try:
            order_repository.mark_email_sent(order.order_id, True)
        except RuntimeError as exc:
            logger.error(
                "Notification sent but email_sent flag could not be stored",
                extra={"order_id": order.order_id, "error": str(exc)},
            )
            return False
        return True


__all__ = [
    "RecordResult",
    "TransactionRecorder",
    "notification_subject",
    "notification_content",
]
