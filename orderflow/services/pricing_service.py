"""
Pricing calculator for order totals
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Iterable
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.core.config import settings
from orderflow.models.site_setting import SiteSetting
from orderflow.utils.helpers import to_decimal, to_money

logger = logging.getLogger(__name__)

FREE_THRESHOLD_KEY = "cart.shipping.freeThreshold"
FLAT_SHIPPING_KEY = "cart.shipping.flat"

@dataclass(frozen=True)
class ShippingConfig:
    free_threshold: Decimal
    flat_cost: Decimal

    def shipping_for(self, total: Decimal) -> Decimal:
        return Decimal("0") if total >= self.free_threshold else self.flat_cost

@dataclass
class CartSummary:
    """Running totals before rounding"""
    subtotal: Decimal = Decimal("0")
    total: Decimal = Decimal("0")
    quantity: int = 0

    @property
    def item_discount(self) -> Decimal:
        return self.subtotal - self.total

@dataclass(frozen=True)
class PriceBreakdown:
    """Persisted totals, all rounded to two places"""
    subtotal: Decimal
    items_total: Decimal
    item_discount: Decimal
    coupon_discount: Decimal
    shipping: Decimal
    grand_total: Decimal
    total_quantity: int
    shipping_config: ShippingConfig

class PricingService:
    """Computes subtotal, shipping and grand total"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_shipping_config(self) -> ShippingConfig:
        """
        Read shipping thresholds from site settings

        Falls back to FREE_SHIPPING_THRESHOLD / FLAT_SHIPPING_COST when a row is
        missing or holds something that is not a number.
        """
        result = await self.db.execute(
            select(SiteSetting.key, SiteSetting.value).where(
                SiteSetting.scope == "cart",
                SiteSetting.key.in_([FREE_THRESHOLD_KEY, FLAT_SHIPPING_KEY]),
            )
        )
        values = {row.key: row.value for row in result}

        return ShippingConfig(
            free_threshold=self._setting_amount(values, FREE_THRESHOLD_KEY, settings.FREE_SHIPPING_THRESHOLD),
            flat_cost=self._setting_amount(values, FLAT_SHIPPING_KEY, settings.FLAT_SHIPPING_COST),
        )

    @staticmethod
    def summarize(lines: Iterable) -> CartSummary:
        """Sum regular and effective line values; lines need regular_price, unit_price and quantity"""
        summary = CartSummary()
        for line in lines:
            summary.subtotal += to_decimal(line.regular_price) * line.quantity
            summary.total += to_decimal(line.unit_price) * line.quantity
            summary.quantity += line.quantity
        return summary

    @staticmethod
    def finalize(
        summary: CartSummary,
        shipping_config: ShippingConfig,
        coupon_discount: Decimal = Decimal("0")
    ) -> PriceBreakdown:
        """
        Round the summary into the totals stored on the order

        grand_total = total + shipping - coupon_discount, never below zero.
        Shipping is decided on the items total before the coupon.
        """
        shipping = shipping_config.shipping_for(summary.total)
        grand_total = max(Decimal("0"), summary.total + shipping - to_decimal(coupon_discount))

        return PriceBreakdown(
            subtotal=to_money(summary.subtotal),
            items_total=to_money(summary.total),
            item_discount=to_money(max(Decimal("0"), summary.item_discount)),
            coupon_discount=to_money(coupon_discount),
            shipping=to_money(shipping),
            grand_total=to_money(grand_total),
            total_quantity=summary.quantity,
            shipping_config=shipping_config,
        )

    @staticmethod
    def _setting_amount(values: dict, key: str, default: Decimal) -> Decimal:
        raw = values.get(key)
        if raw is None:
            return to_decimal(default)
        try:
            amount = to_decimal(raw)
        except (InvalidOperation, ValueError, TypeError):
            logger.warning(f"Ignoring non-numeric site setting {key}={raw!r}")
            return to_decimal(default)
        if amount < 0:
            logger.warning(f"Ignoring negative site setting {key}={raw!r}")
            return to_decimal(default)
        return amount
