"""
Razorpay payment gateway integration
"""

from typing import Any, Dict, Optional, Protocol
import asyncio
import logging

import razorpay

from orderflow.core.config import settings
from orderflow.core.exceptions import PaymentGatewayError
from orderflow.models.order import Order
from orderflow.models.payment import Payment
from orderflow.utils.helpers import to_minor_units

logger = logging.getLogger(__name__)

class PaymentGateway(Protocol):
    """Starts an online payment for a committed order"""

    async def initiate(self, order: Order, payment: Payment) -> Dict[str, Any]:
        """Return the redirect payload the client needs to pay"""
        ...

class RazorpayGateway:
    """Razorpay API client wrapper"""

    name = "razorpay"

    def __init__(self, client: Optional[razorpay.Client] = None, request_timeout: Optional[float] = None):
        self.client = client or razorpay.Client(
            auth=(settings.RAZORPAY_KEY_ID, settings.RAZORPAY_KEY_SECRET)
        )
        self.key_id = settings.RAZORPAY_KEY_ID
        self.request_timeout = request_timeout or settings.RAZORPAY_REQUEST_TIMEOUT_SECONDS

    def create_order(
        self,
        amount: int,
        currency: str = "INR",
        receipt: Optional[str] = None,
        notes: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Create Razorpay order

        Args:
            amount: Amount in smallest currency unit (paise for INR)
            currency: Currency code
            receipt: Receipt number
            notes: Additional notes

        Returns:
            Razorpay order details
        """
        try:
            order_data = {
                "amount": amount,
                "currency": currency,
                "receipt": receipt or "",
                "notes": notes or {}
            }

            # Bounded so an abandoned call cannot create a gateway order after compensation
            return self.client.order.create(data=order_data, timeout=self.request_timeout)

        except Exception as e:
            raise PaymentGatewayError(f"Failed to create payment order: {str(e)}") from e

    async def initiate(self, order: Order, payment: Payment) -> Dict[str, Any]:
        """Create the gateway order off the event loop"""
        amount = to_minor_units(payment.amount)
        gateway_order = await asyncio.to_thread(
            self.create_order,
            amount,
            payment.currency,
            order.order_number,
            {"order_id": str(order.id), "payment_method": payment.method.value},
        )

        if not gateway_order or not gateway_order.get("id"):
            raise PaymentGatewayError("Gateway returned no order id")

        logger.info(f"Razorpay order {gateway_order['id']} created for {order.order_number}")
        return {
            "gateway": self.name,
            "gateway_order_id": gateway_order["id"],
            "key_id": self.key_id,
            "amount": amount,
            "currency": payment.currency,
            "receipt": order.order_number,
        }
