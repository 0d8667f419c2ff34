"""
Domain: Fulfillment error taxonomy.

Every error raised by the orchestrator derives from FulfillmentError and
carries enough context for the API layer to build a response without
inspecting the error type:

- message: human readable summary
- code: stable machine code (e.g. INVALID_PRICE_RANGE, ORDER_PROCESSING)
- status: HTTP-ish status used when surfacing the error
- details: raw supplementary data (supplier body, bounds, timings)
"""

from __future__ import annotations

from typing import Any, Mapping, Optional


class FulfillmentError(Exception):
    """Base class for all gift card fulfillment errors."""

    default_code: str = "FULFILLMENT_ERROR"
    default_status: int = 500

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        status: Optional[int] = None,
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.status = status if status is not None else self.default_status
        self.details: dict[str, Any] = dict(details or {})

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.message, "code": self.code, "status": self.status}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(FulfillmentError):
    """Bad price or missing country code. Never reaches the network."""

    default_code = "VALIDATION_ERROR"
    default_status = 400


class SupplierError(FulfillmentError):
    """Non-2xx response from the supplier."""

    default_code = "SUPPLIER_ERROR"
    default_status = 502


class ProcessingError(SupplierError):
    """Supplier has not finished the order yet (404 or incomplete card)."""

    default_code = "ORDER_PROCESSING"
    default_status = 404


class SupplierTransportError(SupplierError):
    """
    The supplier could not be reached (connection, timeout).

    The outcome of the request is unknown; for a purchase the card may
    already have been issued.
    """

    default_code = "SUPPLIER_TRANSPORT_ERROR"
    default_status = 503


class PollingTimeoutError(FulfillmentError, TimeoutError):
    """Polling deadline (or attempt cap) exceeded before the card was delivered."""

    default_code = "CARD_FETCH_TIMEOUT"
    default_status = 504

    def __init__(self, transaction_id: str, elapsed_seconds: float, attempts: int) -> None:
        super().__init__(
            f"Failed to retrieve gift card details after {attempts} attempts "
            f"({round(elapsed_seconds)}s)",
            details={
                "transactionId": transaction_id,
                "elapsedSeconds": elapsed_seconds,
                "attempts": attempts,
            },
        )
        self.transaction_id = transaction_id
        self.elapsed_seconds = elapsed_seconds
        self.attempts = attempts


class PollingCancelledError(FulfillmentError):
    """Polling was cancelled by the caller before completion."""

    default_code = "POLLING_CANCELLED"
    default_status = 409


class NotificationError(FulfillmentError):
    """Notification delivery failed. Logged, never fatal to fulfillment."""

    default_code = "NOTIFICATION_ERROR"
    default_status = 502


class OrderNotFoundError(FulfillmentError):
    default_code = "ORDER_NOT_FOUND"
    default_status = 404


class OrderStateError(FulfillmentError):
    """Requested lifecycle transition is not allowed."""

    default_code = "INVALID_ORDER_STATE"
    default_status = 409


class SubmissionInProgressError(FulfillmentError):
    """Another submission for the same order holds the guard."""

    default_code = "SUBMISSION_IN_PROGRESS"
    default_status = 409


class RedemptionUnavailableError(FulfillmentError):
    """Neither the supplier nor stored metadata can provide a redemption code."""

    default_code = "REDEMPTION_UNAVAILABLE"
    default_status = 404


class RecordingError(FulfillmentError):
    """Persisting a delivered artifact failed after the supplier issued it."""

    default_code = "RECORDING_FAILED"
    default_status = 500


__all__ = [
    "FulfillmentError",
    "ValidationError",
    "SupplierError",
    "ProcessingError",
    "SupplierTransportError",
    "PollingTimeoutError",
    "PollingCancelledError",
    "NotificationError",
    "OrderNotFoundError",
    "OrderStateError",
    "SubmissionInProgressError",
    "RedemptionUnavailableError",
    "RecordingError",
]
