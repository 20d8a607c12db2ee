"""
Checkout saga
Places an order in one transaction, then drives the payment gateway and
compensates the committed order when the gateway step fails.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set
import asyncio
import enum
import logging
import time
import uuid

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from orderflow.core.config import settings
from orderflow.core.exceptions import (
    CartNotFoundException,
    CartNotInCheckoutException,
    CheckoutExpiredException,
    ConflictException,
    MissingIdempotencyKeyException,
    OrderFlowException,
    PaymentGatewayError,
    PaymentInitiationException,
    ServiceUnavailableException,
)
from orderflow.core.monitoring import (
    order_failures,
    order_replays,
    orders_placed,
    placement_duration,
    saga_compensations,
)
from orderflow.models.cart import Cart, CartStatus
from orderflow.models.order import Order, OrderStatus
from orderflow.models.payment import Payment, PaymentMethod, PaymentStatus
from orderflow.services.address_service import AddressService
from orderflow.services.catalog_service import CatalogService, PricedLine
from orderflow.services.coupon_service import CouponService
from orderflow.services.inventory_service import InventoryService, deserialize_deductions
from orderflow.services.order_assembler import OrderAssembler
from orderflow.services.order_events import OrderEventPublisher
from orderflow.services.order_state_machine import OrderStateMachine
from orderflow.services.payment_gateway import PaymentGateway
from orderflow.services.pricing_service import PricingService
from orderflow.utils.helpers import utcnow

logger = logging.getLogger(__name__)

class SagaState(str, enum.Enum):
    VALIDATING = "validating"
    RESERVING = "reserving"
    PRICING = "pricing"
    PERSISTING = "persisting"
    COMMITTED = "committed"
    GATEWAY_OK = "gateway_ok"
    GATEWAY_FAILED = "gateway_failed"
    COMPENSATING = "compensating"
    COMPENSATED = "compensated"
    COMPENSATION_FAILED = "compensation_failed"
    FAILED = "failed"

class InvalidSagaTransition(RuntimeError):
    pass

class SagaStateMachine:
    """
    Tracks one order placement through the saga states
    """

    transitions: Dict[SagaState, Set[SagaState]] = {
        SagaState.VALIDATING: {SagaState.RESERVING, SagaState.FAILED},
        SagaState.RESERVING: {SagaState.PRICING, SagaState.FAILED},
        SagaState.PRICING: {SagaState.PERSISTING, SagaState.FAILED},
        SagaState.PERSISTING: {SagaState.COMMITTED, SagaState.FAILED},
        SagaState.COMMITTED: {SagaState.GATEWAY_OK, SagaState.GATEWAY_FAILED},
        SagaState.GATEWAY_FAILED: {SagaState.COMPENSATING},
        SagaState.COMPENSATING: {SagaState.COMPENSATED, SagaState.COMPENSATION_FAILED},
        SagaState.GATEWAY_OK: set(),
        SagaState.COMPENSATED: set(),
        SagaState.COMPENSATION_FAILED: set(),
        SagaState.FAILED: set(),
    }

    # Failures here abort the transaction; nothing has been committed yet
    transactional_states = {
        SagaState.VALIDATING,
        SagaState.RESERVING,
        SagaState.PRICING,
        SagaState.PERSISTING,
    }

    def __init__(self, reference: str):
        self.reference = reference
        self.state = SagaState.VALIDATING
        self.history: List[SagaState] = [SagaState.VALIDATING]

    def can_transition(self, new_state: SagaState) -> bool:
        return new_state in self.transitions.get(self.state, set())

    def advance(self, new_state: SagaState) -> None:
        if not self.can_transition(new_state):
            raise InvalidSagaTransition(
                f"Saga {self.reference}: cannot move from {self.state.value} to {new_state.value}"
            )
        logger.debug(f"Saga {self.reference}: {self.state.value} -> {new_state.value}")
        self.state = new_state
        self.history.append(new_state)

    def fail(self) -> None:
        """Abort before commit; a no-op once the saga left the transaction"""
        if self.state in self.transactional_states:
            self.advance(SagaState.FAILED)

@dataclass
class PlaceOrderResult:
    order: Order
    payment: Optional[Payment]
    idempotent: bool = False
    requires_payment: bool = False
    payment_redirect: Optional[Dict[str, Any]] = None
    saga_state: Optional[SagaState] = None

class CheckoutSaga:
    """
    Coordinates order placement

    Everything up to COMMITTED runs in one transaction. The payment gateway
    call happens after commit; when it fails the order is cancelled and its
    stock, coupon and cart are put back by compensate().
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        gateway: Optional[PaymentGateway] = None,
        events: Optional[OrderEventPublisher] = None,
        gateway_timeout: Optional[float] = None,
    ):
        self.session_factory = session_factory
        self.gateway = gateway
        self.events = events
        self.gateway_timeout = gateway_timeout or settings.PAYMENT_GATEWAY_TIMEOUT_SECONDS
        self.order_state_machine = OrderStateMachine()

    async def place_order(self, request) -> PlaceOrderResult:
        """
        Place an order for a PlaceOrderRequest

        Returns:
            PlaceOrderResult; idempotent=True when the key was already used

        Raises:
            MissingIdempotencyKeyException: No idempotency key
            OrderFlowException: Business rule rejection before commit
            PaymentInitiationException: Gateway failed after commit
        """
        key = request.idempotency_key
        if not key:
            raise MissingIdempotencyKeyException()

        existing = await self.find_by_idempotency_key(key, request.user_id)
        if existing:
            return self._replay(existing)

        payment_method = PaymentMethod(request.payment_method)
        if payment_method.requires_gateway and self.gateway is None:
            raise ServiceUnavailableException(
                "Online payments are currently unavailable",
                error_code="PAYMENT_METHOD_UNAVAILABLE"
            )

        saga = SagaStateMachine(key)
        started = time.perf_counter()

        try:
            async with self.session_factory() as db:
                async with db.begin():
                    order, payment = await self._run_transaction(db, request, payment_method, saga)
            saga.advance(SagaState.COMMITTED)
        except (OrderFlowException, IntegrityError) as exc:
            saga.fail()
            replay = await self.find_by_idempotency_key(key, request.user_id)
            if replay:
                logger.info(f"Order for key {key} was placed by a concurrent request, replaying")
                return self._replay(replay)

            if isinstance(exc, IntegrityError):
                logger.error(f"Integrity error while placing order for key {key}: {exc.orig}")
                order_failures.labels(error_code="ORDER_CONFLICT").inc()
                raise ConflictException(
                    "Order could not be saved, please retry",
                    error_code="ORDER_CONFLICT"
                ) from exc

            order_failures.labels(error_code=exc.error_code or "UNKNOWN").inc()
            logger.info(f"Order placement rejected for user {request.user_id}: {exc.error_code} {exc.detail}")
            raise
        except Exception:
            saga.fail()
            order_failures.labels(error_code="INTERNAL_ERROR").inc()
            logger.exception(f"Unexpected error while placing order for key {key}")
            raise
        finally:
            placement_duration.observe(time.perf_counter() - started)

        orders_placed.labels(payment_method=payment_method.value).inc()
        logger.info(f"Order {order.order_number} committed for user {request.user_id}")

        if not payment_method.requires_gateway:
            self._publish(order)
            return PlaceOrderResult(
                order=order,
                payment=payment,
                saga_state=saga.state,
            )

        return await self._initiate_payment(order, payment, saga)

    async def compensate(
        self,
        order_pk: uuid.UUID,
        reason: str,
        saga: Optional[SagaStateMachine] = None
    ) -> bool:
        """
        Undo a committed order whose payment could not be started

        Cancels the order, fails the payment, restores every reserved stock
        unit, releases the coupon redemption and reopens the cart, all in one
        transaction. The order update only matches a cancellable status, so
        running this twice restores stock once.

        Returns:
            True when the order ends up cancelled
        """
        if saga:
            saga.advance(SagaState.COMPENSATING)

        try:
            async with self.session_factory() as db:
                async with db.begin():
                    cancelled = await self._cancel_and_restore(db, order_pk, reason)
        except Exception as exc:
            logger.critical(
                f"Compensation failed for order {order_pk}, manual intervention required: {exc}",
                exc_info=True
            )
            saga_compensations.labels(outcome="failed").inc()
            if saga:
                saga.advance(SagaState.COMPENSATION_FAILED)
            return False

        if not cancelled:
            saga_compensations.labels(outcome="failed").inc()
            if saga:
                saga.advance(SagaState.COMPENSATION_FAILED)
            return False

        saga_compensations.labels(outcome="compensated").inc()
        if saga:
            saga.advance(SagaState.COMPENSATED)
        return True

    async def find_by_idempotency_key(self, key: str, user_id: uuid.UUID) -> Optional[Order]:
        """Return the order already placed with this key, if any"""
        async with self.session_factory() as db:
            result = await db.execute(select(Order).where(Order.idempotency_key == key))
            order = result.scalar_one_or_none()

        if order and order.user_id != user_id:
            raise ConflictException(
                "Idempotency key has already been used",
                error_code="IDEMPOTENCY_KEY_REUSED"
            )
        return order

    async def _run_transaction(self, db: AsyncSession, request, payment_method: PaymentMethod, saga: SagaStateMachine):
        # VALIDATING
        cart = await self._load_cart(db, request.user_id, request.cart_id)
        address = await AddressService(db).resolve(
            request.user_id,
            address_id=request.address_id,
            new_address=request.new_address
        )
        items = request.items or cart.items
        resolution = await CatalogService(db).resolve_lines(items)
        self._apply_cart_snapshots(resolution.lines, cart)

        saga.advance(SagaState.RESERVING)
        await InventoryService(db).reserve(resolution.deductions)

        saga.advance(SagaState.PRICING)
        pricing_service = PricingService(db)
        shipping_config = await pricing_service.get_shipping_config()
        summary = pricing_service.summarize(resolution.lines)

        redemption = None
        if cart.coupon_code:
            redemption = await CouponService(db).consume(cart.coupon_code, request.user_id, summary.total)

        pricing = pricing_service.finalize(
            summary,
            shipping_config,
            redemption.discount if redemption else 0
        )

        saga.advance(SagaState.PERSISTING)
        assembler = OrderAssembler(db)
        order, payment = await assembler.assemble(
            user_id=request.user_id,
            cart=cart,
            address=address,
            payment_method=payment_method,
            idempotency_key=request.idempotency_key,
            lines=resolution.lines,
            deductions=resolution.deductions,
            pricing=pricing,
            redemption=redemption,
            notes=request.notes,
        )
        await assembler.transition_cart(cart, order, payment_method)
        return order, payment

    async def _load_cart(self, db: AsyncSession, user_id: uuid.UUID, cart_id: Optional[uuid.UUID]) -> Cart:
        """Buyer's cart, which must be locked for checkout and not expired"""
        if cart_id:
            query = select(Cart).where(Cart.id == cart_id, Cart.user_id == user_id)
        else:
            query = (
                select(Cart)
                .where(Cart.user_id == user_id, Cart.status == CartStatus.CHECKOUT)
                .order_by(Cart.updated_at.desc())
                .limit(1)
            )

        result = await db.execute(query)
        cart = result.scalar_one_or_none()

        if not cart:
            raise CartNotFoundException()

        if cart.status != CartStatus.CHECKOUT:
            raise CartNotInCheckoutException(cart.status.value)
        # Gateway carts keep their order until the payment settles
        if cart.order_id is not None:
            raise CartNotInCheckoutException(cart.status.value)

        if cart.checkout_expiry and cart.checkout_expiry < utcnow():
            raise CheckoutExpiredException()

        return cart

    def _apply_cart_snapshots(self, lines: List[PricedLine], cart: Cart) -> None:
        """Carry the display title and image frozen on the cart onto the order lines"""
        snapshots = {
            (str(item.product_id), str(item.variant_id) if item.variant_id else None): item
            for item in cart.items
        }
        for line in lines:
            if line.is_gift:
                continue
            key = (str(line.product.id), str(line.variant.id) if line.variant else None)
            item = snapshots.get(key)
            if not item:
                continue
            line.title = item.title or line.title
            line.image = item.image or line.image

    async def _initiate_payment(self, order: Order, payment: Payment, saga: SagaStateMachine) -> PlaceOrderResult:
        try:
            redirect = await asyncio.wait_for(
                self.gateway.initiate(order, payment),
                timeout=self.gateway_timeout
            )
        except asyncio.TimeoutError:
            reason = f"Payment gateway did not respond within {self.gateway_timeout}s"
            await self._fail_payment(order, saga, reason)
        except PaymentGatewayError as exc:
            await self._fail_payment(order, saga, str(exc) or "Payment gateway error")
        except Exception as exc:
            logger.exception(f"Unexpected payment gateway failure for order {order.order_number}")
            await self._fail_payment(order, saga, str(exc) or exc.__class__.__name__)

        saga.advance(SagaState.GATEWAY_OK)
        payment = await self._record_gateway_order(payment, redirect)
        self._publish(order)

        return PlaceOrderResult(
            order=order,
            payment=payment,
            requires_payment=True,
            payment_redirect=redirect,
            saga_state=saga.state,
        )

    async def _fail_payment(self, order: Order, saga: SagaStateMachine, reason: str) -> None:
        """Compensate and raise the gateway failure for the caller"""
        saga.advance(SagaState.GATEWAY_FAILED)
        logger.error(f"Payment initiation failed for order {order.order_number}: {reason}")

        cancelled = await self.compensate(order.id, reason, saga)
        if cancelled:
            order.status = OrderStatus.CANCELLED
            order.payment_status = PaymentStatus.FAILED

        raise PaymentInitiationException(order.order_number, cancelled, reason)

    async def _cancel_and_restore(self, db: AsyncSession, order_pk: uuid.UUID, reason: str) -> bool:
        result = await db.execute(select(Order.status).where(Order.id == order_pk))
        previous_status = result.scalar_one_or_none()
        if previous_status is None:
            logger.critical(f"Compensation target order {order_pk} does not exist")
            return False

        now = utcnow()
        result = await db.execute(
            update(Order)
            .where(
                Order.id == order_pk,
                Order.status.in_(self.order_state_machine.cancellable_statuses())
            )
            .values(
                status=OrderStatus.CANCELLED,
                payment_status=PaymentStatus.FAILED,
                cancelled_at=now,
                cancellation_reason=reason[:500],
            )
            .returning(Order.order_number, Order.stock_deductions, Order.coupon_id, Order.cart_id)
            .execution_options(synchronize_session=False)
        )
        row = result.first()

        if row is None:
            if previous_status == OrderStatus.CANCELLED:
                logger.warning(f"Order {order_pk} already cancelled, stock was restored then")
                return True
            logger.critical(f"Order {order_pk} is {previous_status.value} and cannot be compensated")
            return False

        await db.execute(
            update(Payment)
            .where(Payment.order_id == order_pk)
            .values(status=PaymentStatus.FAILED, failed_at=now, failure_reason=reason)
            .execution_options(synchronize_session=False)
        )

        await InventoryService(db).restore(deserialize_deductions(row.stock_deductions))

        if row.coupon_id:
            await CouponService(db).release(row.coupon_id)

        if row.cart_id:
            await db.execute(
                update(Cart)
                .where(Cart.id == row.cart_id, Cart.order_id == order_pk)
                .values(
                    status=CartStatus.ACTIVE,
                    order_id=None,
                    checkout_token=None,
                    checkout_expiry=None,
                )
                .execution_options(synchronize_session=False)
            )

        db.add(self.order_state_machine.history_entry(
            order_pk,
            previous_status,
            OrderStatus.CANCELLED,
            "Payment initiation failed",
            notes=reason,
        ))

        logger.info(f"Order {row.order_number} compensated: stock restored, cart reopened")
        return True

    async def _record_gateway_order(self, payment: Payment, redirect: Dict[str, Any]) -> Payment:
        """Store the gateway reference; the order stands even if this write fails"""
        try:
            async with self.session_factory() as db:
                async with db.begin():
                    stored = await db.get(Payment, payment.id)
                    stored.gateway = redirect.get("gateway")
                    stored.gateway_order_id = redirect.get("gateway_order_id")
                    stored.gateway_response = redirect
            return stored
        except Exception:
            logger.exception(f"Could not record gateway order for payment {payment.id}")
            return payment

    def _replay(self, order: Order) -> PlaceOrderResult:
        order_replays.inc()
        payment = order.payment
        requires_payment = bool(
            payment
            and PaymentMethod(order.payment_method).requires_gateway
            and payment.status == PaymentStatus.INITIATED
        )
        return PlaceOrderResult(
            order=order,
            payment=payment,
            idempotent=True,
            requires_payment=requires_payment,
            payment_redirect=payment.gateway_response if requires_payment else None,
        )

    def _publish(self, order: Order) -> None:
        if self.events:
            self.events.order_placed(order)
