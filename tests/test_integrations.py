"""Tests for the Razorpay wrapper and order placed events."""

import json
import logging
import uuid
from datetime import datetime
from decimal import Decimal
from types import SimpleNamespace

import pytest

from orderflow.core.config import settings
from orderflow.core.exceptions import PaymentGatewayError
from orderflow.models import Order, OrderStatus, Payment, PaymentMethod, PaymentStatus
from orderflow.services import order_events
from orderflow.services.order_events import OrderEventPublisher, build_order_placed_payload
from orderflow.services.payment_gateway import RazorpayGateway
from orderflow.tasks import order_tasks


def make_order():
    return Order(
        id=uuid.uuid4(),
        order_number="ORD20260101120000ABCD",
        user_id=uuid.uuid4(),
        status=OrderStatus.PENDING,
        payment_status=PaymentStatus.INITIATED,
        payment_method=PaymentMethod.RAZORPAY.value,
        total_amount=Decimal("560.00"),
        total_quantity=1,
        created_at=datetime(2026, 1, 1, 12, 0, 0),
    )


def make_payment():
    return Payment(amount=Decimal("560.00"), currency="INR", method=PaymentMethod.RAZORPAY)


def fake_client(create):
    return SimpleNamespace(order=SimpleNamespace(create=create))


class TestRazorpayGateway:
    """Tests for gateway order creation."""

    async def test_initiate_returns_redirect(self):
        sent = {}

        def create(data, **options):
            sent.update(data)
            return {"id": "order_rzp_1", "amount": data["amount"]}

        redirect = await RazorpayGateway(client=fake_client(create)).initiate(make_order(), make_payment())

        assert sent["amount"] == 56000
        assert sent["receipt"] == "ORD20260101120000ABCD"
        assert redirect["gateway"] == "razorpay"
        assert redirect["gateway_order_id"] == "order_rzp_1"
        assert redirect["amount"] == 56000
        assert redirect["currency"] == "INR"

    async def test_sdk_call_has_request_timeout(self):
        """The HTTP call gives up before the checkout stops waiting for it."""
        sent = {}

        def create(data, **options):
            sent.update(options)
            return {"id": "order_rzp_2"}

        await RazorpayGateway(client=fake_client(create)).initiate(make_order(), make_payment())

        assert sent["timeout"] == settings.RAZORPAY_REQUEST_TIMEOUT_SECONDS
        assert sent["timeout"] < settings.PAYMENT_GATEWAY_TIMEOUT_SECONDS

    async def test_sdk_error_becomes_gateway_error(self):
        def create(data, **options):
            raise RuntimeError("bad credentials")

        with pytest.raises(PaymentGatewayError, match="bad credentials"):
            await RazorpayGateway(client=fake_client(create)).initiate(make_order(), make_payment())

    async def test_missing_order_id(self):
        gateway = RazorpayGateway(client=fake_client(lambda data, **options: {}))

        with pytest.raises(PaymentGatewayError):
            await gateway.initiate(make_order(), make_payment())


class TestOrderEvents:
    """Tests for the order placed event."""

    def test_payload(self):
        order = make_order()
        payload = build_order_placed_payload(order)

        assert payload["event"] == "order.placed"
        assert payload["order_id"] == str(order.id)
        assert payload["status"] == "pending"
        assert payload["payment_status"] == "initiated"
        assert payload["total_amount"] == "560.00"
        assert payload["created_at"] == "2026-01-01T12:00:00"

    def test_dispatch_failure_is_swallowed(self, monkeypatch, caplog):
        def broken_delay(payload):
            raise ConnectionError("broker down")

        monkeypatch.setattr(order_tasks, "publish_order_placed", SimpleNamespace(delay=broken_delay))

        with caplog.at_level(logging.WARNING, logger=order_events.logger.name):
            OrderEventPublisher().order_placed(make_order())

        assert "broker down" in caplog.text

    def test_task_publishes_to_channel(self, monkeypatch):
        published = []

        class FakeRedis:
            def publish(self, channel, message):
                published.append((channel, json.loads(message)))
                return 2

            def close(self):
                pass

        monkeypatch.setattr(order_tasks.redis.Redis, "from_url", lambda url: FakeRedis())

        result = order_tasks.publish_order_placed.run({"order_number": "ORD1"})

        assert result == {"success": True, "receivers": 2}
        assert published == [(order_tasks.settings.ORDER_EVENTS_CHANNEL, {"order_number": "ORD1"})]
