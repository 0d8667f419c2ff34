"""
Tests for `services/completion_poller.py`.

Covers contract rules:
- 404s and bodies without a card number are retried with
  min(base * 1.5**attempt, cap) waits.
- The deadline bounds total polling time; the last wait is clamped to the
  time remaining so one final attempt lands on the deadline. Expiry raises
  a TimeoutError that carries the transaction handle, elapsed time and attempt count.
- A non-404 error aborts immediately without waiting.
- Transport errors are retried, including an unreachable token endpoint.
- Cancellation stops polling.
"""

from __future__ import annotations

import threading

import pytest
import requests

from config.settings import PollingPolicy
from domain.errors import PollingCancelledError, PollingTimeoutError, SupplierError
from fakes import FakeHTTPResponse, FakeSession, card_body, make_supplier, sandbox_policy
from services.completion_poller import CompletionPoller, PollState
from services.instruction_resolver import GENERIC_REDEMPTION_INSTRUCTIONS

CARDS = "/orders/transactions/T-1/cards"


def _poller(supplier, clock, policy: PollingPolicy | None = None) -> CompletionPoller:
    return CompletionPoller(supplier, policy or sandbox_policy(), sleep=clock.sleep, clock=clock)


def test_backoff_policy_waits() -> None:
    policy = sandbox_policy()

    assert [policy.wait_for(a) for a in range(4)] == [8.0, 12.0, 15.0, 15.0]
    assert PollingPolicy.for_environment("production").wait_for(0) == 2.0
    assert PollingPolicy.for_environment("production").deadline_seconds == 60.0


def test_two_not_ready_responses_then_delivery(session, supplier, clock) -> None:
    session.add(
        "GET",
        CARDS,
        FakeHTTPResponse(404, {"message": "processing"}),
        FakeHTTPResponse(404, {"message": "processing"}),
        FakeHTTPResponse(200, card_body("CODE-3")),
    )
    session.add("GET", "/redeem-instructions/120", FakeHTTPResponse(200, {"content": "Redeem online"}))

    artifact = _poller(supplier, clock).poll("T-1", product_id="120")

    assert artifact.redemption_code == "CODE-3"
    assert artifact.redemption_instructions == "Redeem online"
    assert artifact.delivered_at is not None
    assert clock.sleeps == [8.0, 12.0]
    assert len(session.calls_to("GET", CARDS)) == 3


def test_card_without_number_is_retried(session, supplier, clock) -> None:
    session.add(
        "GET",
        CARDS,
        FakeHTTPResponse(200, {"cardNumber": None, "pinCode": None}),
        FakeHTTPResponse(200, card_body("LATE")),
    )

    artifact = _poller(supplier, clock).poll("T-1")

    assert artifact.redemption_code == "LATE"
    assert artifact.redemption_instructions == GENERIC_REDEMPTION_INSTRUCTIONS
    assert clock.sleeps == [8.0]


def test_deadline_raises_timeout_with_context(session, supplier, clock) -> None:
    session.add("GET", CARDS, FakeHTTPResponse(404, {"message": "processing"}))

    with pytest.raises(PollingTimeoutError) as excinfo:
        _poller(supplier, clock).poll("T-1")

    err = excinfo.value
    assert isinstance(err, TimeoutError)
    assert err.transaction_id == "T-1"
    assert err.elapsed_seconds == 120.0
    assert err.attempts == 10
    assert err.code == "CARD_FETCH_TIMEOUT"
    assert clock.sleeps == [8.0, 12.0, 15.0, 15.0, 15.0, 15.0, 15.0, 15.0, 10.0]
    assert len(session.calls_to("GET", CARDS)) == 10


def test_last_wait_is_clamped_and_card_at_deadline_is_delivered(session, supplier, clock) -> None:
    """A card issued in the final partial window is still picked up."""

    session.add("GET", CARDS, *([FakeHTTPResponse(404, {})] * 9), FakeHTTPResponse(200, card_body("LAST")))

    artifact = _poller(supplier, clock).poll("T-1")

    assert artifact.redemption_code == "LAST"
    assert clock.sleeps[-1] == 10.0
    assert clock.now == 120.0


def test_attempt_cap_raises_timeout(session, supplier, clock) -> None:
    session.add("GET", CARDS, FakeHTTPResponse(404, {}))
    policy = PollingPolicy(base_seconds=1.0, cap_seconds=1.0, deadline_seconds=1000.0, max_attempts=3)

    with pytest.raises(PollingTimeoutError) as excinfo:
        _poller(supplier, clock, policy).poll("T-1")

    assert excinfo.value.attempts == 3
    assert len(session.calls_to("GET", CARDS)) == 3
    assert clock.sleeps == [1.0, 1.0]


def test_fatal_supplier_error_aborts_without_waiting(session, supplier, clock) -> None:
    session.add("GET", CARDS, FakeHTTPResponse(500, {"message": "internal"}))
    states: list[PollState] = []

    with pytest.raises(SupplierError) as excinfo:
        _poller(supplier, clock).poll("T-1", on_state=lambda state, ctx: states.append(state))

    assert excinfo.value.status == 500
    assert clock.sleeps == []
    assert states == [PollState.SUBMITTED, PollState.POLLING, PollState.FAILED]


def test_transport_error_is_retried(session, supplier, clock) -> None:
    session.add(
        "GET",
        CARDS,
        requests.ConnectionError("connection reset"),
        FakeHTTPResponse(200, card_body("AFTER-RESET")),
    )

    artifact = _poller(supplier, clock).poll("T-1")

    assert artifact.redemption_code == "AFTER-RESET"
    assert clock.sleeps == [8.0]


def test_state_transitions_on_delivery(session, supplier, clock) -> None:
    session.add("GET", CARDS, FakeHTTPResponse(200, card_body()))
    states: list[PollState] = []

    _poller(supplier, clock).poll("T-1", on_state=lambda state, ctx: states.append(state))

    assert states == [PollState.SUBMITTED, PollState.POLLING, PollState.DELIVERED]


def test_cancelled_before_first_attempt(session, supplier, clock) -> None:
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(PollingCancelledError):
        _poller(supplier, clock).poll("T-1", cancel=cancel)

    assert session.calls_to("GET", CARDS) == []


def test_cancel_during_wait_stops_polling(session, supplier, clock) -> None:
    cancel = threading.Event()

    def _not_ready_then_cancel() -> FakeHTTPResponse:
        cancel.set()
        return FakeHTTPResponse(404, {})

    session.add("GET", CARDS, _not_ready_then_cancel)
    states: list[PollState] = []

    with pytest.raises(PollingCancelledError):
        _poller(supplier, clock).poll("T-1", cancel=cancel, on_state=lambda state, ctx: states.append(state))

    assert len(session.calls_to("GET", CARDS)) == 1
    assert states[-1] == PollState.CANCELLED
    # The cancel event replaces the injected sleep while waiting.
    assert clock.sleeps == []


def test_unreachable_token_endpoint_is_retried(clock) -> None:
    session = FakeSession(token=False)
    session.add(
        "POST",
        "/oauth/token",
        requests.ConnectTimeout("auth timed out"),
        FakeHTTPResponse(200, {"access_token": "tok", "expires_in": 3600}),
    )
    session.add("GET", CARDS, FakeHTTPResponse(200, card_body("AFTER-TOKEN")))

    artifact = _poller(make_supplier(session), clock).poll("T-1")

    assert artifact.redemption_code == "AFTER-TOKEN"
    assert clock.sleeps == [8.0]
