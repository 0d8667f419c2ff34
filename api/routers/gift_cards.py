"""
Gift Card API Endpoints.

Read-only views over gift card orders and their stored redemption details.
These endpoints never call the supplier.
"""

from fastapi import APIRouter, Depends, HTTPException, Query

from api.models import (
    GiftCardOrderItem,
    GiftCardOrderListResponse,
    GiftCardOrderSummary,
    RedemptionDetailsResponse,
)
from api.routers.orders import fulfillment_http_error
from domain.errors import FulfillmentError
from repositories.order_repository import list_gift_card_orders
from repositories.transaction_repository import get_latest_transaction_for_order
from services.fallback_extractor import extract_fallback_redemption
from services.fulfillment_service import FulfillmentService, get_fulfillment_service

router = APIRouter()


@router.get(
    "/gift-card-orders",
    response_model=GiftCardOrderListResponse,
    summary="List Gift Card Orders",
)
def list_orders(limit: int = Query(100, ge=1, le=500)):
    """List gift card orders, newest first, with whether a code is on file."""
    try:
        orders = list_gift_card_orders(limit=limit)

        summaries = []
        for order in orders:
            latest = get_latest_transaction_for_order(order.order_id)
            summaries.append(GiftCardOrderSummary(
                order_id=order.order_id,
                status=order.status.value,
                amount=order.major_amount,
                currency=order.currency,
                email_sent=order.email_sent,
                customer_email=order.user_email,
                items=[
                    GiftCardOrderItem(name=i.name, quantity=i.quantity, product_id=i.product_id)
                    for i in order.items
                ],
                redemption_available=extract_fallback_redemption(order, latest) is not None,
                created_at=order.created_at,
            ))

        return GiftCardOrderListResponse(orders=summaries, total_count=len(summaries))

    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Error fetching gift card orders: {str(e)}"
        )


@router.get(
    "/orders/{order_id}/redemption",
    response_model=RedemptionDetailsResponse,
    summary="Stored Redemption Details",
)
def redemption_details(order_id: str, service: FulfillmentService = Depends(get_fulfillment_service)):
    try:
        recovered = service.get_redemption_details(order_id)
    except FulfillmentError as e:
        raise fulfillment_http_error(e)

    if recovered is None:
        return RedemptionDetailsResponse(order_id=order_id, available=False)

    artifact = recovered.artifact
    return RedemptionDetailsResponse(
        order_id=order_id,
        available=True,
        source=recovered.source,
        redemption_code=artifact.redemption_code,
        pin_code=artifact.pin_code,
        serial_number=artifact.serial_number,
        redemption_instructions=artifact.redemption_instructions,
        delivered_at=artifact.delivered_at,
    )
