"""Pytest fixtures for orderflow tests."""

import asyncio
import uuid
from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest
import pytest_asyncio

from orderflow.api.v1.orders.schemas import AddressInfo, OrderLineRequest, PlaceOrderRequest
from orderflow.core.database import create_engine_for, create_session_factory, init_db
from orderflow.core.exceptions import PaymentGatewayError
from orderflow.models import (
    Address,
    Cart,
    CartItem,
    CartStatus,
    Coupon,
    CouponType,
    Order,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    Product,
    ProductType,
    ProductVariant,
)
from orderflow.services.order_events import OrderEventPublisher
from orderflow.utils.helpers import utcnow

BUYER_ID = uuid.UUID("11111111-1111-1111-1111-111111111111")
OTHER_BUYER_ID = uuid.UUID("22222222-2222-2222-2222-222222222222")


class FakeGateway:
    """Payment gateway double that can fail or stall on demand."""

    def __init__(self, fail=False, delay=0.0):
        self.fail = fail
        self.delay = delay
        self.calls = []

    async def initiate(self, order, payment):
        self.calls.append(order.order_number)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise PaymentGatewayError("Gateway rejected the request")
        return {
            "gateway": "fake",
            "gateway_order_id": f"gw_{order.order_number}",
            "amount": int(payment.amount * 100),
            "currency": payment.currency,
            "receipt": order.order_number,
        }


class RecordingPublisher(OrderEventPublisher):
    """Keeps order placed events in memory instead of queueing them."""

    def __init__(self):
        self.events = []

    def order_placed(self, order):
        self.events.append(order.order_number)


async def seed(session_factory, *objects):
    """Persist objects in their own transaction and return them detached."""
    async with session_factory() as session:
        async with session.begin():
            session.add_all(objects)
    return objects


async def reload(session_factory, model, pk):
    """Fresh copy of a row read in a short-lived session."""
    async with session_factory() as session:
        return await session.get(model, pk)


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'orderflow.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def catalog(session_factory):
    """
    Seed a small catalog.

    The bundle is built from 2 socks (stock 10) and 1 large shirt (stock 3),
    so it can be sold 3 times.
    """
    tee = Product(
        name="Cotton Tee", sku="SKU-TEE", product_type=ProductType.SIMPLE,
        price=Decimal("500"), stock_quantity=10, stock=10, primary_image="tee.jpg",
    )
    mug = Product(
        name="Mug", sku="SKU-MUG", product_type=ProductType.SIMPLE,
        price=Decimal("500"), stock_quantity=20, stock=20,
        quantity_rules=[{"min_qty": 3, "price": "450"}, {"min_qty": 6, "price": "400"}],
    )
    sock = Product(
        name="Socks", sku="SKU-SOCK", product_type=ProductType.SIMPLE,
        price=Decimal("100"), stock_quantity=10, stock=10,
    )
    shirt = Product(
        name="Shirt", sku="SKU-SHIRT", product_type=ProductType.CONFIGURABLE,
        price=Decimal("800"), stock_quantity=0, stock=0,
    )
    shirt_large = ProductVariant(
        sku="SKU-SHIRT-L", name="Large", attributes={"size": "L"},
        price=Decimal("850"), stock_quantity=3, stock=3, image="shirt-l.jpg",
    )
    shirt.variants = [shirt_large]
    gift = Product(
        name="Tote Bag", sku="SKU-TOTE", product_type=ProductType.SIMPLE,
        price=Decimal("150"), stock_quantity=5, stock=5, primary_image="tote.jpg",
    )
    bundle = Product(
        name="Starter Pack", sku="SKU-PACK", product_type=ProductType.BUNDLE,
        price=Decimal("1000"), stock_quantity=0, stock=0,
        bundle_config=[{"sku": "SKU-SOCK", "qty": 2}, {"sku": "SKU-SHIRT-L", "qty": 1}],
        gift_slot={
            "enabled": True,
            "options": [{"sku": "SKU-TOTE", "label": "Free tote", "image": "tote-gift.jpg"}],
        },
    )
    choice = Product(
        name="Pick Any", sku="SKU-CHOICE", product_type=ProductType.CHOICE_GROUP,
        price=Decimal("300"), stock_quantity=5, stock=5,
    )

    await seed(session_factory, tee, mug, sock, shirt, gift, bundle, choice)
    return SimpleNamespace(
        tee=tee, mug=mug, sock=sock, shirt=shirt, shirt_large=shirt_large,
        gift=gift, bundle=bundle, choice=choice,
    )


@pytest_asyncio.fixture
async def address(session_factory):
    (saved,) = await seed(
        session_factory,
        Address(
            user_id=BUYER_ID, label="Home", recipient_name="Asha Rao", phone="9876543210",
            address_line1="12 MG Road", city="Bengaluru", state="Karnataka", postal_code="560001",
        ),
    )
    return saved


@pytest.fixture
def make_cart(session_factory):
    """Create a cart locked for checkout."""

    async def _make_cart(
        user_id=BUYER_ID,
        items=(),
        status=CartStatus.CHECKOUT,
        expiry_delta=timedelta(minutes=5),
        coupon=None,
    ):
        cart = Cart(
            user_id=user_id,
            status=status,
            checkout_token=uuid.uuid4().hex,
            checkout_expiry=utcnow() + expiry_delta if expiry_delta is not None else None,
            coupon_id=coupon.id if coupon else None,
            coupon_code=coupon.code if coupon else None,
        )
        cart.items = [
            CartItem(
                product_id=product.id,
                variant_id=variant.id if variant else None,
                quantity=quantity,
                title=f"{product.name} (cart)",
            )
            for product, variant, quantity in items
        ]
        await seed(session_factory, cart)
        return cart

    return _make_cart


@pytest.fixture
def make_coupon(session_factory):
    async def _make_coupon(**overrides):
        values = dict(
            code="SAVE20",
            discount_type=CouponType.PERCENTAGE,
            discount_value=Decimal("20"),
            min_cart_value=Decimal("0"),
            max_discount=Decimal("100"),
            usage_limit=None,
            usage_count=0,
            is_active=True,
        )
        values.update(overrides)
        (coupon,) = await seed(session_factory, Coupon(**values))
        return coupon

    return _make_coupon


@pytest.fixture
def make_order_row(session_factory):
    """Insert a historical order directly, for coupon eligibility checks."""

    async def _make_order_row(
        user_id=BUYER_ID,
        status=OrderStatus.DELIVERED,
        payment_method=PaymentMethod.COD,
        payment_status=PaymentStatus.PENDING,
        coupon=None,
    ):
        order = Order(
            order_number=f"ORDHIST{uuid.uuid4().hex[:8].upper()}",
            user_id=user_id,
            status=status,
            payment_status=payment_status,
            subtotal=Decimal("500"),
            items_total=Decimal("500"),
            total_amount=Decimal("500"),
            payment_method=payment_method.value,
            shipping_address={},
            stock_deductions=[],
            coupon_id=coupon.id if coupon else None,
            coupon_code=coupon.code if coupon else None,
        )
        await seed(session_factory, order)
        return order

    return _make_order_row


@pytest.fixture
def make_request(address):
    def _make_request(items=None, **overrides):
        values = dict(
            user_id=BUYER_ID,
            items=[OrderLineRequest(**item) for item in (items or [])],
            address_id=address.id,
            payment_method=PaymentMethod.COD,
            idempotency_key=uuid.uuid4().hex,
        )
        values.update(overrides)
        return PlaceOrderRequest(**values)

    return _make_request


@pytest.fixture
def new_address():
    return AddressInfo(
        recipient_name="Ravi Kumar",
        phone="9123456789",
        address_line1="44 Park Street",
        city="Kolkata",
        state="West Bengal",
        postal_code="700016",
    )


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def publisher():
    return RecordingPublisher()
