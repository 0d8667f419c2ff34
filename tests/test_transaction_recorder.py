"""
Tests for `services/transaction_recorder.py`.

Covers contract rules:
- Delivery creates or completes the order's transaction, caches the artifact
  on the order and moves the order to completed.
- Existing metadata keys survive; a stored redemption code is never replaced.
- email_sent is only stamped after a confirmed notification; a failed
  notification leaves the order completed.
- A persistence failure after delivery raises RecordingError.
"""

from __future__ import annotations

import pytest

from domain.errors import OrderStateError, RecordingError, SupplierError
from domain.order import OrderStatus
from domain.transaction import RedemptionArtifact, TransactionStatus
from fakes import RecordingDispatcher, seed_order, seed_transaction
from repositories import order_repository, transaction_repository
from services.notification_service import LoggingDispatcher
from services.transaction_recorder import TransactionRecorder


def _artifact(code: str = "CODE-1") -> RedemptionArtifact:
    return RedemptionArtifact(
        redemption_code=code,
        pin_code="4321",
        redemption_instructions="Redeem online",
        product_id="120",
    )


def test_delivery_without_transaction_creates_completed_row(db, dispatcher) -> None:
    seed_order(db, status="approved")
    order = order_repository.get_order_by_id("ord-1")

    result = TransactionRecorder(dispatcher).record_delivery(order, "T-1", _artifact(), "Amazon")

    rows = db.rows("gift_card_transactions")
    assert len(rows) == 1
    assert rows[0]["status"] == "completed"
    assert rows[0]["external_id"] == "T-1"
    assert rows[0]["metadata"]["redemptionCode"] == "CODE-1"
    assert rows[0]["metadata"]["productName"] == "Amazon"
    assert rows[0]["metadata"]["sentAt"]

    stored = db.order_row("ord-1")
    assert stored["status"] == "completed"
    assert stored["metadata"]["redemptionCode"] == "CODE-1"
    assert stored["email_sent"] is True

    assert result.order.status == OrderStatus.COMPLETED
    assert result.email_sent is True
    assert result.artifact.delivered_at is not None


def test_delivery_completes_matching_processing_row(db, dispatcher) -> None:
    seed_order(db, status="approved")
    seed_transaction(db, external_id="T-1", metadata={"customIdentifier": "ord-1-1700000000000"})
    order = order_repository.get_order_by_id("ord-1")

    TransactionRecorder(dispatcher).record_delivery(order, "T-1", _artifact())

    rows = db.rows("gift_card_transactions")
    assert len(rows) == 1
    assert rows[0]["status"] == "completed"
    assert rows[0]["metadata"]["customIdentifier"] == "ord-1-1700000000000"
    assert rows[0]["metadata"]["redemptionCode"] == "CODE-1"


def test_stored_redemption_code_is_never_replaced(db, dispatcher) -> None:
    seed_order(db, status="completed", metadata={"redemptionCode": "FIRST"})
    seed_transaction(db, external_id="T-1", status="completed", metadata={"redemptionCode": "FIRST"})
    order = order_repository.get_order_by_id("ord-1")

    TransactionRecorder(dispatcher).record_delivery(order, "T-1", _artifact("SECOND"))

    assert db.order_row("ord-1")["metadata"]["redemptionCode"] == "FIRST"
    assert db.rows("gift_card_transactions")[0]["metadata"]["redemptionCode"] == "FIRST"


def test_notification_content_carries_artifact(db, dispatcher) -> None:
    seed_order(db, status="approved", price_at_time=2500)
    order = order_repository.get_order_by_id("ord-1")

    TransactionRecorder(dispatcher).record_delivery(order, "T-1", _artifact(), "Amazon")

    assert len(dispatcher.sent) == 1
    recipient, subject, content = dispatcher.sent[0]
    assert recipient == "buyer@example.com"
    assert subject == "Your Amazon Gift Card is Ready!"
    assert content["redemptionCode"] == "CODE-1"
    assert content["pinCode"] == "4321"
    assert content["amount"] == "25"
    assert content["firstName"] == "Ada"


def test_failed_notification_leaves_order_completed(db) -> None:
    seed_order(db, status="approved")
    order = order_repository.get_order_by_id("ord-1")

    result = TransactionRecorder(RecordingDispatcher(fail=True)).record_delivery(order, "T-1", _artifact())

    stored = db.order_row("ord-1")
    assert stored["status"] == "completed"
    assert stored["email_sent"] is False
    assert result.email_sent is False


def test_logging_dispatcher_never_stamps_email_sent(db) -> None:
    """A notification that was only logged does not count as sent."""

    seed_order(db, status="approved")
    order = order_repository.get_order_by_id("ord-1")

    result = TransactionRecorder(LoggingDispatcher()).record_delivery(order, "T-1", _artifact())

    stored = db.order_row("ord-1")
    assert stored["status"] == "completed"
    assert stored["email_sent"] is False
    assert result.email_sent is False
    assert result.order.email_sent is False


def test_missing_recipient_skips_notification(db, dispatcher) -> None:
    seed_order(db, status="approved", user_email=None)
    order = order_repository.get_order_by_id("ord-1")

    result = TransactionRecorder(dispatcher).record_delivery(order, "T-1", _artifact())

    assert result.email_sent is False
    assert dispatcher.sent == []


def test_persistence_failure_raises_recording_error(db, dispatcher) -> None:
    seed_order(db, status="approved")
    db.fail_writes_to.add("gift_card_transactions")
    order = order_repository.get_order_by_id("ord-1")

    with pytest.raises(RecordingError) as excinfo:
        TransactionRecorder(dispatcher).record_delivery(order, "T-1", _artifact())

    assert excinfo.value.details["transactionId"] == "T-1"
    assert db.order_row("ord-1")["status"] == "approved"
    assert dispatcher.sent == []


def test_pending_order_cannot_be_completed(db, dispatcher) -> None:
    seed_order(db, status="pending")
    order = order_repository.get_order_by_id("ord-1")

    with pytest.raises(OrderStateError):
        TransactionRecorder(dispatcher).record_delivery(order, "T-1", _artifact())

    assert db.rows("gift_card_transactions") == []


def test_record_failure_marks_row_failed(db, dispatcher) -> None:
    seed_order(db, status="approved")
    seed_transaction(db, metadata={"customIdentifier": "ord-1-1"})
    transaction = transaction_repository.get_latest_transaction_for_order("ord-1")

    TransactionRecorder(dispatcher).record_failure(
        transaction, SupplierError("Failed to fetch gift card details", code="CARD_FETCH_ERROR", status=500)
    )

    row = db.rows("gift_card_transactions")[0]
    assert row["status"] == TransactionStatus.FAILED.value
    assert row["metadata"]["lastErrorCode"] == "CARD_FETCH_ERROR"
    assert row["metadata"]["customIdentifier"] == "ord-1-1"
