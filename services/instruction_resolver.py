"""
Redemption instruction resolver.

First non-empty source wins:
1. Instructions returned with the card itself
2. The supplier's per-product redeem-instructions endpoint
3. A generic four-step template

Resolution never fails; supplier or transport errors degrade to the next
source.
"""

from __future__ import annotations

import logging
from typing import Optional

import requests

from domain.errors import FulfillmentError
from services.supplier_client import SupplierClient

logger = logging.getLogger(__name__)

GENERIC_REDEMPTION_INSTRUCTIONS = (
    "1. Visit the official website of the gift card provider\n"
    "2. Select 'Redeem Gift Card' option\n"
    "3. Enter the redemption code\n"
    "4. Follow the on-screen instructions to complete the redemption process"
)


class InstructionResolver:
    def __init__(self, supplier: Optional[SupplierClient]) -> None:
        self._supplier = supplier

    def resolve(self, product_id: Optional[str], provided: Optional[str] = None) -> str:
        if provided and provided.strip():
            return provided

        if product_id and self._supplier is not None:
            try:
                fetched = self._supplier.get_redeem_instructions(product_id)
            except (FulfillmentError, requests.RequestException) as exc:
                logger.warning(
                    "Could not fetch redeem instructions, using generic template",
                    extra={"product_id": product_id, "error": str(exc)},
                )
                fetched = None
            if fetched and fetched.strip():
                return fetched

        return GENERIC_REDEMPTION_INSTRUCTIONS


__all__ = ["GENERIC_REDEMPTION_INSTRUCTIONS", "InstructionResolver"]
