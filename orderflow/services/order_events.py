"""
Order placed notifications for downstream consumers
"""

from typing import Any, Dict
import logging

from orderflow.models.order import Order

logger = logging.getLogger(__name__)

def build_order_placed_payload(order: Order) -> Dict[str, Any]:
    """Dashboard friendly summary of a placed order"""
    return {
        "event": "order.placed",
        "order_id": str(order.id),
        "order_number": order.order_number,
        "user_id": str(order.user_id) if order.user_id else None,
        "status": order.status.value,
        "payment_method": order.payment_method,
        "payment_status": order.payment_status.value,
        "total_amount": str(order.total_amount),
        "total_quantity": order.total_quantity,
        "coupon_code": order.coupon_code,
        "created_at": order.created_at.isoformat() if order.created_at else None,
    }

class OrderEventPublisher:
    """Fire-and-forget publisher; failures never reach the buyer"""
    
    def order_placed(self, order: Order) -> None:
        from orderflow.tasks.order_tasks import publish_order_placed
        
        payload = build_order_placed_payload(order)
        try:
            publish_order_placed.delay(payload)
        except Exception as e:
            logger.warning(f"Failed to queue order placed event for {order.order_number}: {e}")
