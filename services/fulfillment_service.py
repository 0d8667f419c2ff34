"""
Gift card fulfillment service (entry points).

approve_order(order_id)
    pending -> approved, then for gift card orders:
    product lookup -> price validation -> supplier submission ->
    poll for the card -> record + complete the order -> notify customer.
    On failure the order stays `approved` so an operator can resend.
    With background=True the poll runs on the FulfillmentWorker and the
    call returns right after submission.

resend_gift_card(order_id)
    Repair path: fetch the card for the latest supplier transaction; if the
    supplier call fails, recover a stored code via the fallback extractor.
    Records the result and re-sends the notification.

reject_order(order_id)
    pending/approved -> rejected, with a best-effort customer notification.

Concurrent approvals of the same order are refused by the SubmissionGuard.
Sequential re-approval of an already completed order is NOT refused and
buys a second card (known gap; covered by a regression test).
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional

import requests

from config.settings import PollingPolicy, get_settings
from domain.errors import (
    FulfillmentError,
    NotificationError,
    OrderNotFoundError,
    OrderStateError,
    PollingCancelledError,
    PollingTimeoutError,
    RecordingError,
    RedemptionUnavailableError,
    SupplierError,
    ValidationError,
)
from domain.order import Order, OrderStatus
from domain.transaction import GiftCardTransaction, RedemptionArtifact
from repositories import order_repository, transaction_repository
from services.completion_poller import CompletionPoller
from services.fallback_extractor import RecoveredRedemption, extract_fallback_redemption
from services.fulfillment_worker import (
    FulfillmentCompleted,
    FulfillmentEvent,
    FulfillmentFailed,
    FulfillmentWorker,
    PollJob,
)
from services.instruction_resolver import InstructionResolver
from services.notification_service import NotificationDispatcher, get_dispatcher
from services.order_submitter import OrderSubmitter, PurchaseRequest
from services.submission_guard import SubmissionGuard
from services.supplier_client import SupplierClient, get_supplier_client
from services.transaction_recorder import TransactionRecorder

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ApprovalResult:
    """
    Outcome of approve_order.

    processing: True when polling continues in the background
    delivered: True when the card was retrieved and recorded in this call
    """

    order_id: str
    status: OrderStatus
    transaction_id: Optional[str] = None
    processing: bool = False
    delivered: bool = False
    email_sent: bool = False


@dataclass(frozen=True, slots=True)
class ResendResult:
    """source: "supplier", "order_metadata" or "transaction_metadata"."""

    order_id: str
    source: str
    email_sent: bool


class FulfillmentService:
    def __init__(
        self,
        supplier: SupplierClient,
        policy: PollingPolicy,
        dispatcher: NotificationDispatcher,
        guard: Optional[SubmissionGuard] = None,
        worker: Optional[FulfillmentWorker] = None,
        sleep: Optional[Callable[[float], None]] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.supplier = supplier
        self.dispatcher = dispatcher
        self.submitter = OrderSubmitter(supplier)
        self.resolver = InstructionResolver(supplier)

        poller_kwargs = {}
        if sleep is not None:
            poller_kwargs["sleep"] = sleep
        if clock is not None:
            poller_kwargs["clock"] = clock
        self.poller = CompletionPoller(supplier, policy, self.resolver, **poller_kwargs)

        self.recorder = TransactionRecorder(dispatcher)
        self.guard = guard or SubmissionGuard()
        self.worker = worker
        if worker is not None:
            worker.subscribe(self.handle_event)

    # -------------------- helpers --------------------

    def _load_order(self, order_id: str) -> Order:
        order = order_repository.get_order_by_id(order_id)
        if order is None:
            raise OrderNotFoundError(f"Order not found: {order_id}", details={"orderId": order_id})
        return order

    def _mark_approved(self, order: Order) -> Order:
        if order.status == OrderStatus.REJECTED:
            raise OrderStateError(
                f"Order {order.order_id} was rejected and cannot be approved",
                details={"orderId": order.order_id, "status": order.status.value},
            )
        if order.status != OrderStatus.PENDING:
            return order

        updated = order_repository.update_order_status(
            order.order_id, OrderStatus.APPROVED, expected_current=[OrderStatus.PENDING]
        )
        if not updated:
            # Someone else moved the order; continue from what is stored now.
            return self._mark_approved(self._load_order(order.order_id))
        return order.transition_to(OrderStatus.APPROVED)

    def _notify_quietly(self, order: Order, subject: str, content: dict) -> None:
        if not order.user_email:
            return
        try:
            self.dispatcher.send(order.user_email, subject, content)
        except NotificationError as exc:
            logger.error(
                "Order notification failed",
                extra={"order_id": order.order_id, "subject": subject, "error": exc.message},
            )

    # -------------------- approve --------------------

    def approve_order(self, order_id: str, background: bool = False) -> ApprovalResult:
        """
        Approve an order and fulfill it if it is a gift card order.

        Raises:
            OrderNotFoundError, OrderStateError: order missing or rejected
            SubmissionInProgressError: another approval is running
            ValidationError: bad price, missing country code or product id
            SupplierError: supplier rejected the purchase or the card fetch
            PollingTimeoutError: card not delivered before the deadline
            RecordingError: card issued but not stored
        """

        order = self._mark_approved(self._load_order(order_id))
        logger.info("Order approved", extra={"order_id": order_id})

        if not order.is_gift_card:
            self._notify_quietly(
                order,
                "Order Approved",
                {"orderId": order.order_id, "productNames": ", ".join(i.name for i in order.items)},
            )
            return ApprovalResult(order_id=order_id, status=order.status)

        item = order.primary_item
        product_id = item.supplier_product_id if item else None
        if item is None or not product_id:
            raise ValidationError(
                "Product ID is missing for gift card order",
                code="MISSING_PRODUCT_ID",
                details={"orderId": order_id},
            )

        self.guard.acquire(order_id)
        handed_off = False
        try:
            product = self.supplier.get_product(product_id)
            if product is None:
                raise SupplierError(
                    "Product not found",
                    code="PRODUCT_NOT_FOUND",
                    status=404,
                    details={"productId": product_id},
                )

            receipt = self.submitter.submit(
                PurchaseRequest(
                    order_id=order_id,
                    product_id=product_id,
                    quantity=item.quantity,
                    requested_unit_price=item.unit_price,
                    sender_name=order.user_first_name or "Sender",
                    recipient_email=order.user_email,
                ),
                product,
            )

            try:
                transaction = self.recorder.record_acceptance(order, receipt, product_id)
            except RuntimeError as exc:
                logger.critical(
                    "Supplier accepted order but the transaction could not be stored",
                    extra={"order_id": order_id, "transaction_id": receipt.transaction_id, "error": str(exc)},
                )
                raise RecordingError(
                    "Supplier order placed but could not be recorded",
                    details={"orderId": order_id, "transactionId": receipt.transaction_id},
                ) from exc

            if background and self.worker is not None:
                self.worker.enqueue(
                    PollJob(
                        order_id=order_id,
                        transaction=transaction,
                        product_id=product_id,
                        product_name=item.name,
                        on_finished=self.guard.release,
                    )
                )
                handed_off = True
                return ApprovalResult(
                    order_id=order_id,
                    status=order.status,
                    transaction_id=receipt.transaction_id,
                    processing=True,
                )

            artifact = self._poll_for_card(transaction, product_id)
            result = self.recorder.record_delivery(order, receipt.transaction_id, artifact, item.name)
            return ApprovalResult(
                order_id=order_id,
                status=result.order.status,
                transaction_id=receipt.transaction_id,
                delivered=True,
                email_sent=result.email_sent,
            )
        finally:
            if not handed_off:
                self.guard.release(order_id)

    def _poll_for_card(self, transaction: GiftCardTransaction, product_id: Optional[str]) -> RedemptionArtifact:
        try:
            return self.poller.poll(transaction.external_id, product_id=product_id)
        except (PollingTimeoutError, PollingCancelledError):
            # The supplier may still deliver; keep the row `processing` for resend.
            raise
        except SupplierError as exc:
            self.recorder.record_failure(transaction, exc)
            raise

    def handle_event(self, event: FulfillmentEvent) -> None:
        """Turn worker events into recorder calls."""

        if isinstance(event, FulfillmentCompleted):
            order = self._load_order(event.order_id)
            try:
                self.recorder.record_delivery(
                    order,
                    event.transaction.external_id,
                    event.artifact,
                    event.product_name,
                )
            except OrderStateError as exc:
                # Rejected while polling; the card is paid for, keep it on the transaction.
                logger.critical(
                    "Gift card delivered for an order that can no longer complete",
                    extra={
                        "order_id": event.order_id,
                        "order_status": order.status.value,
                        "transaction_id": event.transaction.external_id,
                        "error": exc.message,
                    },
                )
                self.recorder.record_orphaned_delivery(event.transaction, event.artifact, event.product_name)
        elif isinstance(event, FulfillmentFailed):
            if isinstance(event.error, (PollingTimeoutError, PollingCancelledError)):
                logger.warning(
                    "Gift card still undelivered; order left approved for resend",
                    extra={"order_id": event.order_id, "code": event.error.code},
                )
                return
            self.recorder.record_failure(event.transaction, event.error)

    # -------------------- reject --------------------

    def reject_order(self, order_id: str) -> Order:
        order = self._load_order(order_id)
        rejected = order.transition_to(OrderStatus.REJECTED)
        if order.status != OrderStatus.REJECTED:
            updated = order_repository.update_order_status(
                order_id,
                OrderStatus.REJECTED,
                expected_current=[OrderStatus.PENDING, OrderStatus.APPROVED],
            )
            if not updated:
                raise OrderStateError(
                    f"Order {order_id} changed status concurrently; reload and retry",
                    details={"orderId": order_id},
                )
        if self.worker is not None:
            self.worker.cancel(order_id)
        self._notify_quietly(rejected, "Order Rejected", {"orderId": order_id})
        return rejected

    # -------------------- resend --------------------

    def get_redemption_details(self, order_id: str) -> Optional[RecoveredRedemption]:
        """Stored redemption details for display; never calls the supplier."""

        order = self._load_order(order_id)
        latest = transaction_repository.get_latest_transaction_for_order(order_id)
        return extract_fallback_redemption(order, latest)

    def resend_gift_card(self, order_id: str) -> ResendResult:
        """
        Re-deliver the gift card for an order.

        Raises:
            OrderNotFoundError, OrderStateError: order missing, pending or rejected
            RedemptionUnavailableError: neither supplier nor metadata has a code
            RecordingError: persistence failed after retrieval
        """

        order = self._load_order(order_id)
        if order.status not in (OrderStatus.APPROVED, OrderStatus.COMPLETED):
            raise OrderStateError(
                f"Order {order_id} is {order.status.value}; only approved or completed orders can be resent",
                details={"orderId": order_id, "status": order.status.value},
            )

        item = order.primary_item
        product_id = item.supplier_product_id if item else None
        latest = transaction_repository.get_latest_transaction_for_order(order_id)

        artifact: Optional[RedemptionArtifact] = None
        source = "supplier"
        live_error: Optional[Exception] = None

        if latest is not None:
            try:
                artifact = self.poller.poll(latest.external_id, product_id=product_id)
            except (FulfillmentError, requests.RequestException) as exc:
                live_error = exc
                logger.warning(
                    "Live gift card fetch failed during resend; trying stored details",
                    extra={"order_id": order_id, "transaction_id": latest.external_id, "error": str(exc)},
                )

        if artifact is None:
            recovered = extract_fallback_redemption(order, latest)
            if recovered is None:
                raise RedemptionUnavailableError(
                    "Gift card redemption details not available",
                    details={
                        "orderId": order_id,
                        "error": str(live_error) if live_error else "No supplier transaction found",
                    },
                )
            source = recovered.source
            artifact = recovered.artifact.with_instructions(
                self.resolver.resolve(
                    recovered.artifact.product_id or product_id,
                    recovered.artifact.redemption_instructions,
                )
            )

        if latest is not None:
            external_id = latest.external_id
        else:
            # No supplier handle known; the order id stands in for it.
            external_id = str(order.metadata.get("transactionId") or order.order_id)

        result = self.recorder.record_delivery(order, external_id, artifact, order.product_name)
        logger.info(
            "Gift card resent",
            extra={"order_id": order_id, "source": source, "email_sent": result.email_sent},
        )
        return ResendResult(order_id=order_id, source=source, email_sent=result.email_sent)


_default_service: Optional[FulfillmentService] = None
_default_lock = threading.Lock()


def get_fulfillment_service() -> FulfillmentService:
    """Process-wide service wired from settings, with a running worker."""

    global _default_service
    if _default_service is None:
        with _default_lock:
            if _default_service is None:
                settings = get_settings()
                supplier = get_supplier_client()
                resolver = InstructionResolver(supplier)
                worker = FulfillmentWorker(CompletionPoller(supplier, settings.polling, resolver))
                _default_service = FulfillmentService(
                    supplier=supplier,
                    policy=settings.polling,
                    dispatcher=get_dispatcher(),
                    worker=worker,
                )
                worker.start()
    return _default_service


def approve_order(order_id: str, background: bool = False) -> ApprovalResult:
    return get_fulfillment_service().approve_order(order_id, background=background)


def resend_gift_card(order_id: str) -> ResendResult:
    return get_fulfillment_service().resend_gift_card(order_id)


def reject_order(order_id: str) -> Order:
    return get_fulfillment_service().reject_order(order_id)


__all__ = [
    "ApprovalResult",
    "ResendResult",
    "FulfillmentService",
    "get_fulfillment_service",
    "approve_order",
    "resend_gift_card",
    "reject_order",
]
