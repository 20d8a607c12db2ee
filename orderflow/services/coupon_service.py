"""
Coupon service for validating and redeeming discount coupons
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional
import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func, and_, or_

from orderflow.models.coupon import Coupon, CouponType
from orderflow.models.order import Order, OrderStatus
from orderflow.models.payment import PaymentMethod, PaymentStatus
from orderflow.core.exceptions import CouponException
from orderflow.utils.helpers import to_decimal, to_money, utcnow

logger = logging.getLogger(__name__)


@dataclass
class CouponRedemption:
    """Result of a successful atomic consumption"""
    coupon_id: uuid.UUID
    code: str
    discount: Decimal
    usage_count: int


def calculate_discount(
    discount_type,
    value,
    max_discount,
    cart_value,
) -> Decimal:
    """
    Calculate coupon discount for a cart value

    Flat discounts are capped at the cart value. Percentage discounts are
    capped at max_discount when set, and at the cart value.
    """
    cart_value = to_decimal(cart_value)
    value = to_decimal(value)

    if cart_value <= 0 or value <= 0:
        return Decimal("0.00")

    if CouponType(discount_type) == CouponType.PERCENTAGE:
        discount = cart_value * value / Decimal("100")
        if max_discount is not None:
            discount = min(discount, to_decimal(max_discount))
    else:
        discount = value

    return to_money(min(discount, cart_value))


class CouponService:
    """
    Service for coupon eligibility and redemption
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_code(self, code: str) -> Optional[Coupon]:
        result = await self.db.execute(
            select(Coupon).where(Coupon.code == code.strip().upper())
        )
        return result.scalar_one_or_none()

    async def check_eligibility(
        self,
        code: str,
        user_id: Optional[uuid.UUID],
        cart_value: Decimal,
        now: Optional[datetime] = None
    ) -> Coupon:
        """
        Non-atomic coupon checks run before redemption

        Args:
            code: Coupon code, any case
            user_id: Buyer; history based checks are skipped without one
            cart_value: Value the coupon is validated against

        Returns:
            Coupon

        Raises:
            CouponException: With the specific rejection code
        """
        now = now or utcnow()
        coupon = await self.get_by_code(code) if code else None

        if not coupon:
            raise CouponException("INVALID_COUPON", "Invalid coupon code", code)

        self._check_state(coupon, to_decimal(cart_value), now)

        if user_id is not None and coupon.first_order_only:
            if await self._count_prior_orders(user_id) > 0:
                raise CouponException(
                    "NOT_FIRST_ORDER",
                    "This coupon is valid only on your first order",
                    coupon.code
                )

        if user_id is not None and coupon.per_user_limit:
            used = await self._count_user_redemptions(coupon.id, user_id)
            if used >= coupon.per_user_limit:
                raise CouponException(
                    "PER_USER_LIMIT_REACHED",
                    f"You have already used this coupon {used} time(s)",
                    coupon.code
                )

        return coupon

    async def consume(
        self,
        code: str,
        user_id: Optional[uuid.UUID],
        cart_value: Decimal
    ) -> CouponRedemption:
        """
        Validate and redeem a coupon in one conditional update

        The eligibility checks narrow the window; the UPDATE re-checks every
        numeric predicate and increments usage_count in the same statement.

        Raises:
            CouponException: Coupon rejected or exhausted by a concurrent order
        """
        cart_value = to_decimal(cart_value)
        coupon = await self.check_eligibility(code, user_id, cart_value)
        now = utcnow()

        stmt = (
            update(Coupon)
            .where(
                and_(
                    Coupon.id == coupon.id,
                    Coupon.is_active.is_(True),
                    or_(Coupon.valid_from.is_(None), Coupon.valid_from <= now),
                    or_(Coupon.valid_until.is_(None), Coupon.valid_until >= now),
                    Coupon.min_cart_value <= cart_value,
                    or_(Coupon.usage_limit.is_(None), Coupon.usage_count < Coupon.usage_limit),
                )
            )
            .values(usage_count=Coupon.usage_count + 1)
            .returning(
                Coupon.code,
                Coupon.discount_type,
                Coupon.discount_value,
                Coupon.max_discount,
                Coupon.usage_count,
            )
            .execution_options(synchronize_session=False)
        )
        row = (await self.db.execute(stmt)).first()

        if row is None:
            await self._raise_rejection(coupon.id, cart_value, now)

        discount = calculate_discount(row.discount_type, row.discount_value, row.max_discount, cart_value)
        logger.info(f"Coupon {row.code} redeemed by {user_id}: discount={discount} usage={row.usage_count}")

        return CouponRedemption(
            coupon_id=coupon.id,
            code=row.code,
            discount=discount,
            usage_count=row.usage_count
        )

    async def release(self, coupon_id: uuid.UUID) -> bool:
        """Give back one redemption; usage_count never drops below zero"""
        result = await self.db.execute(
            update(Coupon)
            .where(Coupon.id == coupon_id, Coupon.usage_count > 0)
            .values(usage_count=Coupon.usage_count - 1)
            .returning(Coupon.id)
            .execution_options(synchronize_session=False)
        )
        released = result.first() is not None
        if not released:
            logger.warning(f"Coupon {coupon_id} had no redemption to release")
        return released

    def _check_state(self, coupon: Coupon, cart_value: Decimal, now: datetime) -> None:
        if not coupon.is_active:
            raise CouponException("COUPON_INACTIVE", "This coupon is no longer active", coupon.code)

        if (coupon.valid_from and now < coupon.valid_from) or (coupon.valid_until and now > coupon.valid_until):
            raise CouponException("COUPON_EXPIRED", "This coupon has expired", coupon.code)

        min_cart_value = to_decimal(coupon.min_cart_value)
        if cart_value < min_cart_value:
            raise CouponException(
                "MIN_CART_NOT_MET",
                f"Minimum cart value of ₹{min_cart_value} required",
                coupon.code
            )

        if coupon.usage_limit is not None and (coupon.usage_count or 0) >= coupon.usage_limit:
            raise CouponException("COUPON_EXHAUSTED", "Coupon usage limit reached", coupon.code)

    async def _raise_rejection(self, coupon_id: uuid.UUID, cart_value: Decimal, now: datetime) -> None:
        """Re-read the coupon to report why the conditional update matched nothing"""
        result = await self.db.execute(
            select(Coupon)
            .where(Coupon.id == coupon_id)
            .execution_options(populate_existing=True)
        )
        coupon = result.scalar_one_or_none()
        if not coupon:
            raise CouponException("INVALID_COUPON", "Invalid coupon code")

        self._check_state(coupon, cart_value, now)
        raise CouponException("COUPON_EXHAUSTED", "Coupon usage limit reached", coupon.code)

    async def _count_prior_orders(self, user_id: uuid.UUID) -> int:
        """Orders that disqualify a first-order coupon: paid or cash on delivery"""
        result = await self.db.execute(
            select(func.count(Order.id)).where(
                Order.user_id == user_id,
                Order.status != OrderStatus.CANCELLED,
                or_(
                    Order.payment_status == PaymentStatus.SUCCESS,
                    Order.payment_method == PaymentMethod.COD.value,
                ),
            )
        )
        return result.scalar_one()

    async def _count_user_redemptions(self, coupon_id: uuid.UUID, user_id: uuid.UUID) -> int:
        result = await self.db.execute(
            select(func.count(Order.id)).where(
                Order.coupon_id == coupon_id,
                Order.user_id == user_id,
                Order.status != OrderStatus.CANCELLED,
            )
        )
        return result.scalar_one()
