"""
Fallback extractor.

Single source of truth for "where does the redemption code come from when
the supplier is unreachable". Precedence:

1. Redemption code cached on the order's own metadata
2. Redemption code stored on the most recent transaction's metadata

Never calls the network. Returns None when neither source holds a code;
callers report "redemption details not available" instead of fabricating
one.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional

from domain.order import Order
from domain.transaction import GiftCardTransaction, RedemptionArtifact

FallbackSource = Literal["order_metadata", "transaction_metadata"]


@dataclass(frozen=True, slots=True)
class RecoveredRedemption:
    artifact: RedemptionArtifact
    source: FallbackSource


def extract_fallback_redemption(
    order: Order,
    latest_transaction: Optional[GiftCardTransaction],
) -> Optional[RecoveredRedemption]:
    artifact = RedemptionArtifact.from_metadata(order.metadata)
    if artifact is not None:
        return RecoveredRedemption(artifact=artifact, source="order_metadata")

    if latest_transaction is not None:
        artifact = RedemptionArtifact.from_metadata(latest_transaction.metadata)
        if artifact is not None:
            return RecoveredRedemption(artifact=artifact, source="transaction_metadata")

    return None


__all__ = ["RecoveredRedemption", "extract_fallback_redemption"]
