"""Tests for coupon eligibility and atomic redemption."""

import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest

from orderflow.core.exceptions import CouponException
from orderflow.models import Coupon, CouponType, OrderStatus, PaymentMethod, PaymentStatus
from orderflow.services.coupon_service import CouponService, calculate_discount
from orderflow.utils.helpers import utcnow

from .conftest import BUYER_ID, OTHER_BUYER_ID, reload


async def consume_in_own_transaction(session_factory, code, user_id, cart_value):
    async with session_factory() as session:
        try:
            async with session.begin():
                return await CouponService(session).consume(code, user_id, cart_value)
        except CouponException as exc:
            return exc.error_code


class TestCalculateDiscount:
    """Tests for the pure discount calculation."""

    def test_percentage_capped_by_max_discount(self):
        assert calculate_discount(CouponType.PERCENTAGE, Decimal("20"), Decimal("100"), Decimal("1000")) == Decimal("100.00")

    def test_percentage_without_cap(self):
        assert calculate_discount("percentage", Decimal("10"), None, Decimal("1234.50")) == Decimal("123.45")

    def test_flat_capped_at_cart_value(self):
        assert calculate_discount(CouponType.FLAT, Decimal("300"), None, Decimal("250")) == Decimal("250.00")

    def test_zero_cart(self):
        assert calculate_discount(CouponType.FLAT, Decimal("50"), None, Decimal("0")) == Decimal("0.00")


class TestEligibility:
    """Tests for the non-atomic pre-checks."""

    async def test_unknown_code(self, db):
        with pytest.raises(CouponException) as exc_info:
            await CouponService(db).check_eligibility("NOPE", BUYER_ID, Decimal("500"))
        assert exc_info.value.error_code == "INVALID_COUPON"

    async def test_code_is_case_insensitive(self, db, make_coupon):
        await make_coupon()
        coupon = await CouponService(db).check_eligibility("save20", BUYER_ID, Decimal("500"))
        assert coupon.code == "SAVE20"

    @pytest.mark.parametrize(
        "overrides, error_code",
        [
            ({"is_active": False}, "COUPON_INACTIVE"),
            ({"valid_until": utcnow() - timedelta(days=1)}, "COUPON_EXPIRED"),
            ({"valid_from": utcnow() + timedelta(days=1)}, "COUPON_EXPIRED"),
            ({"min_cart_value": Decimal("600")}, "MIN_CART_NOT_MET"),
            ({"usage_limit": 2, "usage_count": 2}, "COUPON_EXHAUSTED"),
        ],
    )
    async def test_rejections(self, db, make_coupon, overrides, error_code):
        await make_coupon(**overrides)
        with pytest.raises(CouponException) as exc_info:
            await CouponService(db).check_eligibility("SAVE20", BUYER_ID, Decimal("500"))
        assert exc_info.value.error_code == error_code
        assert exc_info.value.status_code == 400

    async def test_first_order_only_with_prior_cod_order(self, db, make_coupon, make_order_row):
        await make_coupon(first_order_only=True)
        await make_order_row(payment_method=PaymentMethod.COD)

        with pytest.raises(CouponException) as exc_info:
            await CouponService(db).check_eligibility("SAVE20", BUYER_ID, Decimal("500"))
        assert exc_info.value.error_code == "NOT_FIRST_ORDER"

    async def test_first_order_ignores_unpaid_and_cancelled(self, db, make_coupon, make_order_row):
        await make_coupon(first_order_only=True)
        await make_order_row(payment_method=PaymentMethod.RAZORPAY, payment_status=PaymentStatus.INITIATED)
        await make_order_row(status=OrderStatus.CANCELLED)

        coupon = await CouponService(db).check_eligibility("SAVE20", BUYER_ID, Decimal("500"))
        assert coupon.first_order_only

    async def test_per_user_limit(self, db, make_coupon, make_order_row):
        coupon = await make_coupon(per_user_limit=1)
        await make_order_row(coupon=coupon)

        service = CouponService(db)
        with pytest.raises(CouponException) as exc_info:
            await service.check_eligibility("SAVE20", BUYER_ID, Decimal("500"))
        assert exc_info.value.error_code == "PER_USER_LIMIT_REACHED"

        # Another buyer is unaffected
        assert await service.check_eligibility("SAVE20", OTHER_BUYER_ID, Decimal("500"))


class TestConsume:
    """Tests for the conditional usage increment."""

    async def test_increments_usage_and_returns_discount(self, session_factory, make_coupon):
        coupon = await make_coupon(usage_limit=5)

        redemption = await consume_in_own_transaction(session_factory, "SAVE20", BUYER_ID, Decimal("1000"))

        assert redemption.discount == Decimal("100.00")
        assert redemption.usage_count == 1
        stored = await reload(session_factory, Coupon, coupon.id)
        assert stored.usage_count == 1

    async def test_concurrent_consumption_respects_limit(self, session_factory, make_coupon):
        coupon = await make_coupon(usage_limit=3)

        results = await asyncio.gather(
            *(
                consume_in_own_transaction(session_factory, "SAVE20", None, Decimal("800"))
                for _ in range(8)
            )
        )

        assert sum(1 for result in results if not isinstance(result, str)) == 3
        assert all(result == "COUPON_EXHAUSTED" for result in results if isinstance(result, str))
        stored = await reload(session_factory, Coupon, coupon.id)
        assert stored.usage_count == 3


class TestRelease:
    """Tests for giving a redemption back."""

    async def test_release_decrements(self, session_factory, make_coupon):
        coupon = await make_coupon(usage_count=2)

        async with session_factory() as session:
            async with session.begin():
                assert await CouponService(session).release(coupon.id)

        stored = await reload(session_factory, Coupon, coupon.id)
        assert stored.usage_count == 1

    async def test_release_never_goes_negative(self, session_factory, make_coupon):
        coupon = await make_coupon(usage_count=0)

        async with session_factory() as session:
            async with session.begin():
                assert not await CouponService(session).release(coupon.id)

        stored = await reload(session_factory, Coupon, coupon.id)
        assert stored.usage_count == 0
