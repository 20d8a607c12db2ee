"""
Order assembler
Builds the frozen order snapshot, its payment row and the cart transition
"""

from typing import List, Optional, Tuple
import logging
import uuid

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.core.config import settings
from orderflow.core.exceptions import CartNotInCheckoutException
from orderflow.models.address import Address
from orderflow.models.cart import Cart, CartStatus
from orderflow.models.order import (
    Order,
    OrderItem,
    OrderPricingSnapshot,
    OrderStatus,
    OrderStatusHistory,
)
from orderflow.models.payment import Payment, PaymentMethod, PaymentStatus
from orderflow.services.catalog_service import PricedLine
from orderflow.services.coupon_service import CouponRedemption
from orderflow.services.inventory_service import Deduction, serialize_deductions
from orderflow.services.pricing_service import PriceBreakdown
from orderflow.utils.helpers import generate_order_number, to_money, utcnow

logger = logging.getLogger(__name__)

ORDER_NUMBER_ATTEMPTS = 3

class OrderAssembler:
    """Persists orders inside the checkout transaction"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def assemble(
        self,
        *,
        user_id: uuid.UUID,
        cart: Cart,
        address: Address,
        payment_method: PaymentMethod,
        idempotency_key: str,
        lines: List[PricedLine],
        deductions: List[Deduction],
        pricing: PriceBreakdown,
        redemption: Optional[CouponRedemption] = None,
        notes: Optional[str] = None,
    ) -> Tuple[Order, Payment]:
        """
        Create order, items, pricing snapshot, history and payment

        Returns:
            (order, payment), flushed so ids and defaults are populated
        """
        now = utcnow()
        payment_status = (
            PaymentStatus.INITIATED if payment_method.requires_gateway else PaymentStatus.PENDING
        )

        order = Order(
            id=uuid.uuid4(),
            order_number=await self._unused_order_number(now),
            idempotency_key=idempotency_key,
            user_id=user_id,
            cart_id=cart.id,
            status=OrderStatus.PENDING,
            payment_status=payment_status,
            subtotal=pricing.subtotal,
            items_total=pricing.items_total,
            item_discount=pricing.item_discount,
            discount_amount=pricing.coupon_discount,
            shipping_fee=pricing.shipping,
            total_amount=pricing.grand_total,
            total_quantity=pricing.total_quantity,
            coupon_id=redemption.coupon_id if redemption else None,
            coupon_code=redemption.code if redemption else None,
            payment_method=payment_method.value,
            shipping_address_id=address.id,
            shipping_address=address.to_snapshot(),
            stock_deductions=serialize_deductions(deductions),
            notes=notes,
            order_metadata={"cart_checkout_token": cart.checkout_token},
        )

        order.items = [self._build_item(position, line) for position, line in enumerate(lines)]

        order.pricing_snapshot = OrderPricingSnapshot(
            subtotal=pricing.subtotal,
            items_total=pricing.items_total,
            item_discount=pricing.item_discount,
            coupon_discount=pricing.coupon_discount,
            shipping_fee=pricing.shipping,
            grand_total=pricing.grand_total,
            free_shipping_threshold=to_money(pricing.shipping_config.free_threshold),
            flat_shipping_cost=to_money(pricing.shipping_config.flat_cost),
            captured_at=now,
        )

        order.status_history = [
            OrderStatusHistory(status=OrderStatus.PENDING, reason="Order placed")
        ]

        payment = Payment(
            id=uuid.uuid4(),
            order_id=order.id,
            amount=pricing.grand_total,
            currency=settings.CURRENCY,
            method=payment_method,
            status=payment_status,
        )
        order.payment = payment

        self.db.add(order)
        await self.db.flush()

        logger.info(
            f"Order {order.order_number} assembled: {len(order.items)} lines, "
            f"total={order.total_amount}, method={payment_method.value}"
        )
        return order, payment

    async def transition_cart(self, cart: Cart, order: Order, payment_method: PaymentMethod) -> None:
        """
        Move the cart on from checkout

        COD carts become ordered. Gateway carts stay in checkout pointing at
        the order until the payment is settled or compensated.

        Raises:
            CartNotInCheckoutException: Cart left checkout or was claimed by another order
        """
        next_status = CartStatus.CHECKOUT if payment_method.requires_gateway else CartStatus.ORDERED

        result = await self.db.execute(
            update(Cart)
            .where(Cart.id == cart.id, Cart.status == CartStatus.CHECKOUT, Cart.order_id.is_(None))
            .values(status=next_status, order_id=order.id)
            .returning(Cart.id)
            .execution_options(synchronize_session=False)
        )
        if result.first() is None:
            raise CartNotInCheckoutException()

    async def _unused_order_number(self, now) -> str:
        number = generate_order_number(settings.ORDER_NUMBER_PREFIX, now)
        for _ in range(ORDER_NUMBER_ATTEMPTS - 1):
            taken = await self.db.scalar(select(Order.id).where(Order.order_number == number))
            if taken is None:
                break
            logger.warning(f"Order number {number} already taken, drawing another")
            number = generate_order_number(settings.ORDER_NUMBER_PREFIX, now)
        return number

    def _build_item(self, position: int, line: PricedLine) -> OrderItem:
        product = line.product
        variant = line.variant

        return OrderItem(
            position=position,
            product_id=product.id,
            variant_id=variant.id if variant else None,
            product_name=line.title or product.name,
            product_sku=product.sku,
            product_type=product.product_type.value,
            image=line.image,
            variant_name=variant.name if variant else None,
            variant_sku=variant.sku if variant else None,
            variant_attributes=dict(variant.attributes or {}) if variant else None,
            bundle_items=line.bundle_items,
            is_gift=line.is_gift,
            gift_for_product_id=line.gift_for_product_id,
            gift_label=line.gift_label,
            quantity=line.quantity,
            regular_price=to_money(line.regular_price),
            unit_price=to_money(line.unit_price),
            total_price=to_money(line.line_total),
            pricing_tier=_jsonable_rule(line.applied_rule),
        )

def _jsonable_rule(rule):
    if not rule:
        return None
    return {"min_qty": rule["min_qty"], "price": str(rule["price"])}
