"""
Tests for `services/instruction_resolver.py`.

First non-empty source wins: card instructions, then the supplier's
per-product instructions, then the generic template. Resolution never fails.
"""

from __future__ import annotations

import requests

from fakes import FakeHTTPResponse
from services.instruction_resolver import GENERIC_REDEMPTION_INSTRUCTIONS, InstructionResolver


def test_provided_instructions_win_without_network(session, supplier) -> None:
    resolver = InstructionResolver(supplier)

    assert resolver.resolve("120", "Scratch and redeem") == "Scratch and redeem"
    assert session.calls == []


def test_supplier_instructions_used_when_card_has_none(session, supplier) -> None:
    session.add("GET", "/redeem-instructions/120", FakeHTTPResponse(200, {"content": "Go to amazon.com/redeem"}))

    assert InstructionResolver(supplier).resolve("120", "  ") == "Go to amazon.com/redeem"


def test_generic_template_when_supplier_has_nothing(session, supplier) -> None:
    session.add("GET", "/redeem-instructions/120", FakeHTTPResponse(404, {"message": "none"}))

    assert InstructionResolver(supplier).resolve("120") == GENERIC_REDEMPTION_INSTRUCTIONS


def test_generic_template_on_transport_error(session, supplier) -> None:
    session.add("GET", "/redeem-instructions/120", requests.Timeout("read timed out"))

    assert InstructionResolver(supplier).resolve("120") == GENERIC_REDEMPTION_INSTRUCTIONS


def test_generic_template_without_product_or_supplier() -> None:
    assert InstructionResolver(None).resolve("120") == GENERIC_REDEMPTION_INSTRUCTIONS
    assert InstructionResolver(None).resolve(None) == GENERIC_REDEMPTION_INSTRUCTIONS
    assert GENERIC_REDEMPTION_INSTRUCTIONS.count("\n") == 3
