"""
API Request and Response Models.

Pydantic models for serializing fulfillment responses.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel


# ============================================================================
# Fulfillment Models
# ============================================================================

class ApproveOrderResponse(BaseModel):
    """Result of approving an order."""
    success: bool
    order_id: str
    status: str
    transaction_id: Optional[str] = None
    processing: bool = False
    delivered: bool = False
    email_sent: bool = False
    message: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "success": True,
                "order_id": "ord_123",
                "status": "completed",
                "transaction_id": "48213",
                "processing": False,
                "delivered": True,
                "email_sent": True,
                "message": "Gift card delivered"
            }
        }


class RejectOrderResponse(BaseModel):
    success: bool
    order_id: str
    status: str


class ResendGiftCardResponse(BaseModel):
    """Result of re-sending a gift card."""
    success: bool
    order_id: str
    source: str  # "supplier", "order_metadata" or "transaction_metadata"
    email_sent: bool
    message: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "success": True,
                "order_id": "ord_123",
                "source": "supplier",
                "email_sent": True,
                "message": "Gift card email resent successfully"
            }
        }


class RedemptionDetailsResponse(BaseModel):
    """Stored redemption details for an order."""
    order_id: str
    available: bool
    source: Optional[str] = None
    redemption_code: Optional[str] = None
    pin_code: Optional[str] = None
    serial_number: Optional[str] = None
    redemption_instructions: Optional[str] = None
    delivered_at: Optional[datetime] = None


# ============================================================================
# Gift Card Order Listing
# ============================================================================

class GiftCardOrderItem(BaseModel):
    name: str
    quantity: int
    product_id: Optional[str] = None


class GiftCardOrderSummary(BaseModel):
    order_id: str
    status: str
    amount: Decimal
    currency: str
    email_sent: bool
    customer_email: Optional[str] = None
    items: List[GiftCardOrderItem]
    redemption_available: bool
    created_at: Optional[datetime] = None


class GiftCardOrderListResponse(BaseModel):
    orders: List[GiftCardOrderSummary]
    total_count: int


# ============================================================================
# Error Models
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard fulfillment error body (returned under `detail`)."""
    error: str
    code: str
    status: int
    details: Optional[Dict[str, Any]] = None

    class Config:
        json_schema_extra = {
            "example": {
                "error": "Invalid price. Must be between 5 and 500",
                "code": "INVALID_PRICE_RANGE",
                "status": 400,
                "details": {"requestedPrice": "1000", "min": "5", "max": "500"}
            }
        }
