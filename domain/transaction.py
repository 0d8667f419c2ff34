"""
Domain: Supplier transactions and the redemption artifact they deliver.

A GiftCardTransaction is created when the supplier accepts a purchase and is
updated once the redemption artifact is retrieved. The artifact is decoded
from the supplier response exactly once (RedemptionArtifact.from_supplier_card)
and stored in transaction/order metadata under stable camelCase keys.

Contract rules:
- A redemption code, once stored, is immutable. merge_metadata keeps the
  existing code when a different one is offered.
- Metadata is merged, never clobbered: new non-empty values win, empty or
  missing values leave existing keys untouched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from .time import parse_utc_datetime, require_utc_timestamp

logger = logging.getLogger(__name__)

REDEMPTION_CODE_KEY = "redemptionCode"


class TransactionStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True, slots=True)
class RedemptionArtifact:
    """Code (and optional PIN/serial/instructions) a customer redeems."""

    redemption_code: str
    pin_code: Optional[str] = None
    serial_number: Optional[str] = None
    redemption_instructions: Optional[str] = None
    product_id: Optional[str] = None
    delivered_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if not self.redemption_code or not self.redemption_code.strip():
            raise ValueError("redemption_code must be non-empty")
        if self.delivered_at is not None:
            require_utc_timestamp("delivered_at", self.delivered_at)

    @classmethod
    def from_supplier_card(cls, body: Mapping[str, Any]) -> Optional["RedemptionArtifact"]:
        """
        Decode a supplier card body.

        Returns None when the card number is not present yet; the supplier
        sometimes answers 200 before the card is issued.
        """

        code = _clean(body.get("cardNumber"))
        if code is None:
            return None
        return cls(
            redemption_code=code,
            pin_code=_clean(body.get("pinCode")),
            serial_number=_clean(body.get("serialNumber")),
            redemption_instructions=_clean(
                body.get("redemptionInstructions") or body.get("redeemInstruction")
            ),
            product_id=_clean(body.get("productId")),
        )

    @classmethod
    def from_metadata(cls, metadata: Optional[Mapping[str, Any]]) -> Optional["RedemptionArtifact"]:
        """Decode a previously stored artifact; None if no usable code is stored."""

        if not isinstance(metadata, Mapping):
            return None
        code = _clean(metadata.get(REDEMPTION_CODE_KEY))
        if code is None:
            return None
        delivered = metadata.get("deliveredAt") or metadata.get("sentAt")
        delivered_at: Optional[datetime] = None
        if delivered:
            try:
                delivered_at = parse_utc_datetime(delivered)
            except (TypeError, ValueError):
                # The code is still usable; only the timestamp is dropped.
                logger.warning(
                    "Ignoring unparseable delivery timestamp in stored metadata",
                    extra={"delivered_value": str(delivered)},
                )
        return cls(
            redemption_code=code,
            pin_code=_clean(metadata.get("pinCode")),
            serial_number=_clean(metadata.get("serialNumber")),
            redemption_instructions=_clean(metadata.get("redemptionInstructions")),
            product_id=_clean(metadata.get("productId")),
            delivered_at=delivered_at,
        )

    def with_instructions(self, instructions: str) -> "RedemptionArtifact":
        return RedemptionArtifact(
            redemption_code=self.redemption_code,
            pin_code=self.pin_code,
            serial_number=self.serial_number,
            redemption_instructions=instructions,
            product_id=self.product_id,
            delivered_at=self.delivered_at,
        )

    def delivered(self, at: datetime) -> "RedemptionArtifact":
        return RedemptionArtifact(
            redemption_code=self.redemption_code,
            pin_code=self.pin_code,
            serial_number=self.serial_number,
            redemption_instructions=self.redemption_instructions,
            product_id=self.product_id,
            delivered_at=at,
        )

    def to_metadata(self) -> Dict[str, Any]:
        return {
            REDEMPTION_CODE_KEY: self.redemption_code,
            "pinCode": self.pin_code,
            "serialNumber": self.serial_number,
            "redemptionInstructions": self.redemption_instructions,
            "productId": self.product_id,
            "deliveredAt": self.delivered_at.isoformat() if self.delivered_at else None,
        }


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def merge_metadata(existing: Optional[Mapping[str, Any]], new: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Merge new metadata keys into existing metadata.

    - New non-empty values replace existing values.
    - Empty/None new values never erase existing keys.
    - An existing redemption code is never replaced by a different one.
    """

    merged: Dict[str, Any] = dict(existing or {})
    for key, value in new.items():
        if _is_empty(value):
            merged.setdefault(key, value)
            continue
        if key == REDEMPTION_CODE_KEY:
            current = merged.get(key)
            if not _is_empty(current) and str(current) != str(value):
                logger.warning(
                    "Refusing to overwrite stored redemption code with a different value",
                    extra={"modification_type": "redemption_code_conflict"},
                )
                continue
        merged[key] = value
    return merged


@dataclass(frozen=True, slots=True)
class GiftCardTransaction:
    """
    Persisted supplier transaction for an order.

    external_id is always the supplier's transaction handle.
    """

    transaction_id: str
    external_id: str
    order_id: str
    status: TransactionStatus
    amount: int
    recipient_email: Optional[str] = None
    metadata: Mapping[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.created_at is not None:
            require_utc_timestamp("created_at", self.created_at)

    @property
    def artifact(self) -> Optional[RedemptionArtifact]:
        return RedemptionArtifact.from_metadata(self.metadata)


__all__ = [
    "REDEMPTION_CODE_KEY",
    "TransactionStatus",
    "RedemptionArtifact",
    "GiftCardTransaction",
    "merge_metadata",
]
