"""
Completion poller.

The supplier fulfills orders asynchronously and offers no push notification,
so the card is fetched repeatedly until it appears or a deadline passes.

State machine: SUBMITTED -> POLLING -> {DELIVERED, TIMEOUT}
(plus FAILED for a fatal supplier error and CANCELLED for a cancelled job).

Per attempt:
- 404 or a body without a card number: still processing, retry
- transport error (connection reset, read timeout, token fetch): retry
- any other non-2xx: abort immediately with SupplierError

Between attempts the poller waits min(base * 1.5**attempt, cap), never
past the deadline: when less than a full wait remains it sleeps only the
remainder and makes one last attempt at the deadline. The deadline bounds
total wall-clock time regardless of the attempt count.
"""

from __future__ import annotations

import logging
import threading
import time
from enum import Enum
from typing import Any, Callable, Mapping, Optional

import requests

from config.settings import PollingPolicy
from domain.errors import (
    PollingCancelledError,
    PollingTimeoutError,
    ProcessingError,
    SupplierError,
    SupplierTransportError,
)
from domain.time import utc_now
from domain.transaction import RedemptionArtifact
from services.instruction_resolver import InstructionResolver
from services.supplier_client import SupplierClient

logger = logging.getLogger(__name__)


class PollState(str, Enum):
    SUBMITTED = "submitted"
    POLLING = "polling"
    DELIVERED = "delivered"
    TIMEOUT = "timeout"
    FAILED = "failed"
    CANCELLED = "cancelled"


StateListener = Callable[[PollState, Mapping[str, Any]], None]


class CompletionPoller:
    """
    Blocks until the supplier delivers the card for a transaction.

    sleep and clock are injectable so tests can run the backoff schedule
    without real waiting.
    """

    def __init__(
        self,
        supplier: SupplierClient,
        policy: PollingPolicy,
        resolver: Optional[InstructionResolver] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._supplier = supplier
        self._policy = policy
        self._resolver = resolver or InstructionResolver(supplier)
        self._sleep = sleep
        self._clock = clock

    @property
    def policy(self) -> PollingPolicy:
        return self._policy

    def _wait(self, seconds: float, cancel: Optional[threading.Event]) -> bool:
        """Wait between attempts. Returns True if cancelled while waiting."""

        if cancel is None:
            self._sleep(seconds)
            return False
        return cancel.wait(seconds)

    def poll(
        self,
        transaction_id: str,
        product_id: Optional[str] = None,
        cancel: Optional[threading.Event] = None,
        on_state: Optional[StateListener] = None,
    ) -> RedemptionArtifact:
        """
        Poll until the card for transaction_id is available.

        Args:
            transaction_id: Supplier transaction handle
            product_id: Used to resolve instructions if the card has none
            cancel: Optional event; setting it stops polling
            on_state: Optional callback receiving state transitions

        Raises:
            PollingTimeoutError: deadline or attempt cap reached
            PollingCancelledError: cancel was set
            SupplierError: fatal (non-404) supplier response
        """

        def emit(state: PollState, **context: Any) -> None:
            if on_state is not None:
                on_state(state, {"transactionId": transaction_id, **context})

        started = self._clock()
        attempt = 0
        emit(PollState.SUBMITTED)
        emit(PollState.POLLING)

        while True:
            if cancel is not None and cancel.is_set():
                emit(PollState.CANCELLED, attempts=attempt)
                raise PollingCancelledError(
                    f"Polling cancelled for transaction {transaction_id}",
                    details={"transactionId": transaction_id, "attempts": attempt},
                )

            logger.debug(
                "Fetching gift card details",
                extra={"transaction_id": transaction_id, "attempt": attempt + 1},
            )

            try:
                body = self._supplier.get_card(transaction_id)
                artifact = RedemptionArtifact.from_supplier_card(body)
                reason = "card number not yet available" if artifact is None else ""
            except ProcessingError:
                artifact = None
                reason = "order still processing"
            except SupplierTransportError as exc:
                artifact = None
                reason = f"supplier unreachable: {exc.message}"
            except SupplierError:
                emit(PollState.FAILED, attempts=attempt + 1)
                raise
            except requests.RequestException as exc:
                artifact = None
                reason = f"transport error: {exc}"

            wait = self._policy.wait_for(attempt)
            attempt += 1

            if artifact is not None:
                instructions = self._resolver.resolve(
                    artifact.product_id or product_id,
                    artifact.redemption_instructions,
                )
                delivered = artifact.with_instructions(instructions).delivered(utc_now())
                emit(PollState.DELIVERED, attempts=attempt)
                logger.info(
                    "Gift card delivered by supplier",
                    extra={"transaction_id": transaction_id, "attempts": attempt},
                )
                return delivered

            elapsed = self._clock() - started
            remaining = self._policy.deadline_seconds - elapsed
            if remaining <= 0 or attempt >= self._policy.max_attempts:
                emit(PollState.TIMEOUT, attempts=attempt, elapsedSeconds=elapsed)
                logger.error(
                    "Gift card not delivered before polling deadline",
                    extra={
                        "transaction_id": transaction_id,
                        "attempts": attempt,
                        "elapsed_seconds": round(elapsed, 1),
                        "deadline_seconds": self._policy.deadline_seconds,
                    },
                )
                raise PollingTimeoutError(transaction_id, elapsed, attempt)

            # The last wait is cut short so one more attempt lands on the deadline.
            wait = min(wait, remaining)
            logger.info(
                "Gift card not ready (%s), retrying in %.1fs",
                reason,
                wait,
                extra={"transaction_id": transaction_id, "attempt": attempt},
            )
            if self._wait(wait, cancel):
                emit(PollState.CANCELLED, attempts=attempt)
                raise PollingCancelledError(
                    f"Polling cancelled for transaction {transaction_id}",
                    details={"transactionId": transaction_id, "attempts": attempt},
                )


__all__ = ["PollState", "CompletionPoller"]
