"""
Order Fulfillment API Endpoints.

Admin actions on orders: approve (and fulfill gift cards), reject, and
resend a gift card through the repair path.
"""

from fastapi import APIRouter, Depends, HTTPException
from fastapi.encoders import jsonable_encoder

from api.models import ApproveOrderResponse, ErrorResponse, RejectOrderResponse, ResendGiftCardResponse
from domain.errors import FulfillmentError
from services.fulfillment_service import FulfillmentService, get_fulfillment_service

router = APIRouter()


def fulfillment_http_error(error: FulfillmentError) -> HTTPException:
    """Translate a fulfillment error into an HTTPException with a structured detail."""

    return HTTPException(status_code=error.status, detail=jsonable_encoder(error.to_dict()))


@router.post(
    "/orders/{order_id}/approve",
    response_model=ApproveOrderResponse,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}, 504: {"model": ErrorResponse}},
    summary="Approve Order",
    description="Approve an order and fulfill it through the gift card supplier."
)
def approve(
    order_id: str,
    background: bool = False,
    service: FulfillmentService = Depends(get_fulfillment_service),
):
    """
    Approve an order.

    **Process (gift card orders):**
    1. pending -> approved
    2. Validates the price against the supplier's denominations
    3. Submits the purchase to the supplier
    4. Polls until the card is issued (or returns immediately with `background=true`)
    5. Stores the card, completes the order and emails the customer

    On any failure the order stays `approved` and can be retried with resend.
    """
    try:
        result = service.approve_order(order_id, background=background)
    except FulfillmentError as e:
        raise fulfillment_http_error(e)
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to approve order: {str(e)}"
        )

    if result.processing:
        message = "Gift card ordered; waiting for supplier delivery."
    elif result.delivered:
        message = "Gift card delivered."
    else:
        message = "Order approved."

    return ApproveOrderResponse(
        success=True,
        order_id=result.order_id,
        status=result.status.value,
        transaction_id=result.transaction_id,
        processing=result.processing,
        delivered=result.delivered,
        email_sent=result.email_sent,
        message=message,
    )


@router.post(
    "/orders/{order_id}/reject",
    response_model=RejectOrderResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Reject Order",
)
def reject(order_id: str, service: FulfillmentService = Depends(get_fulfillment_service)):
    try:
        order = service.reject_order(order_id)
    except FulfillmentError as e:
        raise fulfillment_http_error(e)

    return RejectOrderResponse(success=True, order_id=order.order_id, status=order.status.value)


@router.post(
    "/orders/{order_id}/resend-gift-card",
    response_model=ResendGiftCardResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Resend Gift Card",
    description="Re-fetch the gift card from the supplier (or stored details) and email it again."
)
def resend(order_id: str, service: FulfillmentService = Depends(get_fulfillment_service)):
    """
    Resend a gift card.

    Tries the supplier first; if that fails, falls back to the redemption
    code stored on the order, then on its latest transaction. Returns 404
    when no code is available anywhere.
    """
    try:
        result = service.resend_gift_card(order_id)
    except FulfillmentError as e:
        raise fulfillment_http_error(e)
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Error resending gift card email: {str(e)}"
        )

    message = (
        "Gift card email resent successfully"
        if result.email_sent
        else "Gift card recorded, but the email could not be sent"
    )
    return ResendGiftCardResponse(
        success=True,
        order_id=result.order_id,
        source=result.source,
        email_sent=result.email_sent,
        message=message,
    )
