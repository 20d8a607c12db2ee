"""HTTP tests for the order placement endpoint."""

from decimal import Decimal

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from orderflow.main import create_app
from orderflow.models import Product

from .conftest import BUYER_ID, FakeGateway, reload


def client_for(app, raise_app_exceptions=True):
    transport = ASGITransport(app=app, raise_app_exceptions=raise_app_exceptions)
    return AsyncClient(transport=transport, base_url="http://test")


class BrokenSaga:
    async def place_order(self, request):
        raise RuntimeError("database went away")


@pytest_asyncio.fixture
async def client(session_factory, gateway, publisher):
    async with client_for(create_app(session_factory, gateway, publisher)) as client:
        yield client


def headers(key="order-key-1", user_id=BUYER_ID):
    values = {"X-User-Id": str(user_id)}
    if key:
        values["Idempotency-Key"] = key
    return values


class TestPlaceOrderEndpoint:
    """Tests for POST /api/v1/orders/."""

    async def test_created_then_replayed(self, client, catalog, make_cart, address):
        await make_cart(items=[(catalog.tee, None, 2)])
        body = {"address_id": str(address.id), "payment_method": "cod"}

        created = await client.post("/api/v1/orders/", json=body, headers=headers())
        replayed = await client.post("/api/v1/orders/", json=body, headers=headers())

        assert created.status_code == 201
        data = created.json()
        assert data["success"] is True
        assert data["idempotent"] is False
        assert data["order"]["status"] == "pending"
        assert Decimal(data["order"]["total_amount"]) == Decimal("1000")
        assert data["payment"]["method"] == "cod"

        assert replayed.status_code == 200
        assert replayed.json()["idempotent"] is True
        assert replayed.json()["order"]["id"] == data["order"]["id"]

    async def test_body_key_used_without_header(self, client, catalog, make_cart, address):
        await make_cart(items=[(catalog.tee, None, 1)])
        body = {"address_id": str(address.id), "payment_method": "cod", "idempotency_key": "body-key"}

        response = await client.post("/api/v1/orders/", json=body, headers=headers(key=None))

        assert response.status_code == 201

    async def test_missing_idempotency_key(self, client, catalog, make_cart, address):
        await make_cart(items=[(catalog.tee, None, 1)])

        response = await client.post(
            "/api/v1/orders/",
            json={"address_id": str(address.id), "payment_method": "cod"},
            headers=headers(key=None),
        )

        assert response.status_code == 400
        assert response.json()["errorCode"] == "MISSING_IDEMPOTENCY_KEY"

    async def test_out_of_stock_reports_context(self, client, catalog, make_cart, address):
        await make_cart(items=[(catalog.tee, None, 11)])

        response = await client.post(
            "/api/v1/orders/",
            json={"address_id": str(address.id), "payment_method": "cod"},
            headers=headers(),
        )

        assert response.status_code == 400
        data = response.json()
        assert data["success"] is False
        assert data["errorCode"] == "OUT_OF_STOCK"
        assert data["productId"] == str(catalog.tee.id)
        assert data["available"] == 10
        assert data["requested"] == 11

    async def test_gateway_failure_returns_502(self, session_factory, catalog, make_cart, address, publisher):
        await make_cart(items=[(catalog.tee, None, 1)])
        app = create_app(session_factory, FakeGateway(fail=True), publisher)

        async with client_for(app) as client:
            response = await client.post(
                "/api/v1/orders/",
                json={"address_id": str(address.id), "payment_method": "razorpay"},
                headers=headers(),
            )

        assert response.status_code == 502
        data = response.json()
        assert data["errorCode"] == "PAYMENT_INITIATION_FAILED"
        assert data["orderCancelled"] is True
        assert data["orderId"].startswith("ORD")
        tee = await reload(session_factory, Product, catalog.tee.id)
        assert tee.stock_quantity == 10

    async def test_gateway_payment_redirect(self, client, catalog, make_cart, address):
        await make_cart(items=[(catalog.tee, None, 1)])

        response = await client.post(
            "/api/v1/orders/",
            json={"address_id": str(address.id), "payment_method": "upi"},
            headers=headers(),
        )

        assert response.status_code == 201
        data = response.json()
        assert data["requires_payment"] is True
        assert data["payment_redirect"]["gateway"] == "fake"
        assert data["payment"]["status"] == "initiated"

    async def test_user_header_required(self, client, address):
        response = await client.post(
            "/api/v1/orders/",
            json={"address_id": str(address.id), "payment_method": "cod"},
            headers={"Idempotency-Key": "order-key-1"},
        )

        assert response.status_code == 422
        assert response.json()["errorCode"] == "VALIDATION_ERROR"

    async def test_invalid_user_header(self, client, address):
        response = await client.post(
            "/api/v1/orders/",
            json={"address_id": str(address.id), "payment_method": "cod"},
            headers={"X-User-Id": "not-a-uuid", "Idempotency-Key": "order-key-1"},
        )

        assert response.status_code == 400
        assert response.json()["errorCode"] == "INVALID_USER_ID"

    async def test_overlong_idempotency_key_rejected(self, client, address):
        response = await client.post(
            "/api/v1/orders/",
            json={"address_id": str(address.id), "payment_method": "cod"},
            headers=headers(key="k" * 300),
        )

        assert response.status_code == 422
        assert response.json()["errorCode"] == "VALIDATION_ERROR"

    async def test_unexpected_error_uses_error_payload(self, session_factory, address):
        """Unhandled failures are rendered like every other error, without details."""
        app = create_app(session_factory)
        app.state.checkout_saga = BrokenSaga()

        async with client_for(app, raise_app_exceptions=False) as client:
            response = await client.post(
                "/api/v1/orders/",
                json={"address_id": str(address.id), "payment_method": "cod"},
                headers=headers(),
            )

        assert response.status_code == 500
        assert response.json() == {
            "success": False,
            "errorCode": "INTERNAL_ERROR",
            "message": "An internal error occurred",
        }


class TestHealth:
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
