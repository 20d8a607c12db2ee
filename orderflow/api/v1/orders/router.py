"""
Order API routes
"""

from fastapi import APIRouter, Depends, Header, Response, status
from typing import Optional
import uuid
import logging

from orderflow.api.deps import get_checkout_saga, get_current_user_id
from orderflow.services.checkout_saga import CheckoutSaga

from .schemas import (
    OrderCreate,
    OrderResponse,
    PaymentResponse,
    PlaceOrderRequest,
    PlaceOrderResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()

@router.post(
    "/",
    response_model=PlaceOrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Place order",
    description="Place an order from the buyer's checkout cart. Requires an Idempotency-Key."
)
async def place_order(
    order_data: OrderCreate,
    response: Response,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key", max_length=255),
    user_id: uuid.UUID = Depends(get_current_user_id),
    saga: CheckoutSaga = Depends(get_checkout_saga)
):
    """Place new order"""
    data = order_data.model_dump()
    if idempotency_key and idempotency_key.strip():
        data["idempotency_key"] = idempotency_key.strip()
    
    result = await saga.place_order(PlaceOrderRequest(**data, user_id=user_id))
    
    if result.idempotent:
        response.status_code = status.HTTP_200_OK
        message = "Order already placed"
    elif result.requires_payment:
        message = "Order created successfully. Please complete the payment."
    else:
        message = "Order created successfully"
    
    return PlaceOrderResponse(
        message=message,
        idempotent=result.idempotent,
        requires_payment=result.requires_payment,
        order=OrderResponse.model_validate(result.order),
        payment=PaymentResponse.model_validate(result.payment) if result.payment else None,
        payment_redirect=result.payment_redirect,
    )
