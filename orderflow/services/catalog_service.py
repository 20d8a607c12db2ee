"""
Catalog reader for order placement
Resolves requested lines to prices, available stock and stock deductions.
Everything here is read-only; stock only moves in InventoryService.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.core.exceptions import (
    BadRequestException,
    OutOfStockException,
    ProductNotFoundException,
    VariantNotFoundException,
)
from orderflow.models.product import Product, ProductType, ProductVariant
from orderflow.services.inventory_service import (
    BundleChildDeduction,
    Deduction,
    GiftDeduction,
    SimpleDeduction,
    VariantDeduction,
)
from orderflow.utils.helpers import to_decimal, utcnow

logger = logging.getLogger(__name__)

@dataclass
class QuantityPrice:
    """Unit price after quantity tiers"""
    unit_price: Decimal
    base_price: Decimal
    applied_rule: Optional[Dict[str, Any]] = None
    next_tier: Optional[Dict[str, Any]] = None
    savings: Decimal = Decimal("0")

@dataclass
class BundleChild:
    sku: str
    qty_per_bundle: int
    product: Optional[Product] = None
    variant: Optional[ProductVariant] = None
    stock: int = 0

    @property
    def found(self) -> bool:
        return self.product is not None

    @property
    def bundles_possible(self) -> int:
        if not self.found or self.qty_per_bundle <= 0:
            return 0
        return self.stock // self.qty_per_bundle

@dataclass
class BundleAvailability:
    available: int
    children: List[BundleChild] = field(default_factory=list)

    @property
    def is_in_stock(self) -> bool:
        return self.available > 0

    @property
    def missing_skus(self) -> List[str]:
        return [child.sku for child in self.children if not child.found]

@dataclass
class PricedLine:
    """One resolved order line, including synthesized gift lines"""
    product: Product
    quantity: int
    regular_price: Decimal
    unit_price: Decimal
    available_stock: int
    variant: Optional[ProductVariant] = None
    applied_rule: Optional[Dict[str, Any]] = None
    is_offer_active: bool = False
    bundle_items: Optional[List[Dict[str, Any]]] = None
    is_gift: bool = False
    gift_for_product_id: Any = None
    gift_label: Optional[str] = None
    image: Optional[str] = None
    title: Optional[str] = None

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    @property
    def line_regular_total(self) -> Decimal:
        return self.regular_price * self.quantity

@dataclass
class CatalogResolution:
    lines: List[PricedLine]
    deductions: List[Deduction]

def is_offer_active(
    offer_price: Optional[Decimal],
    start_at: Optional[datetime],
    end_at: Optional[datetime],
    now: Optional[datetime] = None,
) -> bool:
    """Check whether an offer price applies at the given moment"""
    if offer_price is None or to_decimal(offer_price) <= 0:
        return False

    now = now or utcnow()
    if start_at and now < start_at:
        return False
    if end_at and now > end_at:
        return False
    return True

def resolve_quantity_price(
    base_price: Decimal,
    rules: Optional[Sequence[Dict[str, Any]]],
    quantity: int,
) -> QuantityPrice:
    """
    Resolve unit price from quantity tier rules

    The rule with the highest min_qty not above quantity wins. Tiers only
    apply from two units upwards. The next tier is always reported so the
    storefront can nudge bulk purchases.

    Args:
        base_price: Offer price when active, else list price
        rules: [{"min_qty": int, "price": number}]
        quantity: Requested quantity

    Returns:
        QuantityPrice
    """
    base_price = to_decimal(base_price)
    result = QuantityPrice(unit_price=base_price, base_price=base_price)

    if base_price <= 0 or not rules:
        return result

    normalised = sorted(
        (
            {"min_qty": int(rule["min_qty"]), "price": to_decimal(rule["price"])}
            for rule in rules
            if rule.get("min_qty") is not None and rule.get("price") is not None
        ),
        key=lambda rule: rule["min_qty"],
    )

    if quantity >= 2:
        for rule in reversed(normalised):
            if quantity >= rule["min_qty"]:
                result.unit_price = rule["price"]
                result.applied_rule = rule
                result.savings = (base_price - rule["price"]) * quantity
                break

    for rule in normalised:
        if rule["min_qty"] > quantity:
            result.next_tier = {
                "min_qty": rule["min_qty"],
                "price": rule["price"],
                "units_needed": rule["min_qty"] - quantity,
            }
            break

    return result

class CatalogService:
    """Read-only catalog lookups used while placing an order"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_product(self, product_id) -> Product:
        """Get sellable product or raise PRODUCT_NOT_FOUND"""
        result = await self.db.execute(select(Product).where(Product.id == product_id))
        product = result.scalar_one_or_none()

        if not product or not product.is_active:
            raise ProductNotFoundException(product_id=product_id)

        return product

    async def get_bundle_availability(self, bundle_config: Optional[List[Dict[str, Any]]]) -> BundleAvailability:
        """
        Derive bundle stock from its child SKUs

        available = min(floor(child_stock / qty_per_bundle)); a child SKU that
        cannot be found contributes 0.
        """
        if not bundle_config:
            return BundleAvailability(available=0)

        children = [
            BundleChild(sku=item.get("sku"), qty_per_bundle=int(item.get("qty") or 0))
            for item in bundle_config
        ]
        skus = {child.sku for child in children if child.sku}

        # Simple products first
        result = await self.db.execute(
            select(Product).where(
                Product.sku.in_(skus),
                Product.product_type == ProductType.SIMPLE,
            )
        )
        simple_by_sku = {product.sku: product for product in result.scalars().all()}

        # Remaining SKUs may be variants of configurable products
        variant_skus = skus - simple_by_sku.keys()
        variant_by_sku = {}
        if variant_skus:
            result = await self.db.execute(
                select(ProductVariant).where(ProductVariant.sku.in_(variant_skus))
            )
            variant_by_sku = {variant.sku: variant for variant in result.scalars().all()}

        for child in children:
            if child.sku in simple_by_sku:
                child.product = simple_by_sku[child.sku]
                child.stock = child.product.stock_quantity or 0
            elif child.sku in variant_by_sku:
                child.variant = variant_by_sku[child.sku]
                child.product = await self._variant_parent(child.variant)
                child.stock = child.variant.stock_quantity or 0

        available = min(child.bundles_possible for child in children)
        return BundleAvailability(available=max(0, available), children=children)

    async def resolve_lines(self, items: Sequence[Any]) -> CatalogResolution:
        """
        Resolve every requested line in submission order

        Args:
            items: Objects with product_id, variant_id, quantity and
                selected_gift_sku attributes

        Returns:
            CatalogResolution with priced lines and the deduction queue

        Raises:
            BadRequestException: Empty order, bad quantity, unorderable product
            ProductNotFoundException: Unknown or inactive product
            VariantNotFoundException: Variant not on product
            OutOfStockException: Advisory stock check failed
        """
        if not items:
            raise BadRequestException("Order must contain at least one item", error_code="EMPTY_ORDER")

        lines: List[PricedLine] = []
        deductions: List[Deduction] = []

        for item in items:
            if not isinstance(item.quantity, int) or item.quantity <= 0:
                raise BadRequestException(
                    "Quantity must be a positive integer",
                    error_code="INVALID_QUANTITY",
                    context={"productId": str(item.product_id), "quantity": item.quantity}
                )

            product = await self.get_product(item.product_id)

            if product.product_type == ProductType.CHOICE_GROUP:
                raise BadRequestException(
                    f"{product.name} cannot be ordered directly",
                    error_code="PRODUCT_NOT_ORDERABLE",
                    context={"productId": str(product.id)}
                )

            if product.product_type == ProductType.BUNDLE:
                line, line_deductions = await self._resolve_bundle(product, item.quantity)
            else:
                line, line_deductions = self._resolve_stocked(product, item.variant_id, item.quantity)

            lines.append(line)
            deductions.extend(line_deductions)

            gift_sku = getattr(item, "selected_gift_sku", None)
            if gift_sku:
                gift = await self._resolve_gift(product, gift_sku, item.quantity)
                if gift:
                    gift_line, gift_deduction = gift
                    lines.append(gift_line)
                    deductions.append(gift_deduction)

        return CatalogResolution(lines=lines, deductions=deductions)

    def _resolve_stocked(self, product: Product, variant_id, quantity: int):
        """Price and stock for SIMPLE / CONFIGURABLE lines"""
        variant = None
        if variant_id:
            variant = product.get_variant(variant_id)
            if not variant:
                raise VariantNotFoundException(product.id, variant_id)

        source = variant or product
        available = source.stock_quantity or 0

        if available < quantity:
            raise OutOfStockException(
                product_id=product.id,
                available=available,
                requested=quantity,
                sku=source.sku
            )

        pricing, offer_active = self._price(product, variant, quantity)
        line = PricedLine(
            product=product,
            variant=variant,
            quantity=quantity,
            regular_price=to_decimal(source.price if source.price is not None else product.price),
            unit_price=pricing.unit_price,
            available_stock=available,
            applied_rule=pricing.applied_rule,
            is_offer_active=offer_active,
            image=(variant.image if variant and variant.image else product.primary_image),
        )

        if variant:
            deduction = VariantDeduction(product_id=product.id, variant_id=variant.id, quantity=quantity)
        else:
            deduction = SimpleDeduction(product_id=product.id, quantity=quantity)

        return line, [deduction]

    async def _resolve_bundle(self, product: Product, quantity: int):
        """Price and derived stock for BUNDLE lines"""
        availability = await self.get_bundle_availability(product.bundle_config)

        if availability.available < quantity:
            if availability.missing_skus:
                logger.warning(f"Bundle {product.sku} references missing SKUs: {availability.missing_skus}")
            raise OutOfStockException(
                product_id=product.id,
                available=availability.available,
                requested=quantity,
                sku=product.sku
            )

        pricing, offer_active = self._price(product, None, quantity)
        line = PricedLine(
            product=product,
            quantity=quantity,
            regular_price=to_decimal(product.price),
            unit_price=pricing.unit_price,
            available_stock=availability.available,
            applied_rule=pricing.applied_rule,
            is_offer_active=offer_active,
            bundle_items=[
                {"sku": child.sku, "qty": child.qty_per_bundle}
                for child in availability.children
            ],
            image=product.primary_image,
        )

        deductions = [
            BundleChildDeduction(
                bundle_product_id=product.id,
                sku=child.sku,
                child_product_id=child.product.id,
                child_variant_id=child.variant.id if child.variant else None,
                quantity=child.qty_per_bundle * quantity,
            )
            for child in availability.children
        ]
        return line, deductions

    async def _resolve_gift(self, product: Product, gift_sku: str, quantity: int):
        """Zero priced gift line plus its deduction, or None when gifts are off"""
        gift_slot = product.gift_slot or {}
        if not gift_slot.get("enabled"):
            logger.debug(f"Ignoring gift {gift_sku} for {product.id}: gift slot disabled")
            return None

        option = next(
            (opt for opt in gift_slot.get("options") or [] if opt.get("sku") == gift_sku),
            None
        )
        if option is None:
            raise BadRequestException(
                f"Gift {gift_sku} is not offered with {product.name}",
                error_code="INVALID_GIFT",
                context={"productId": str(product.id), "sku": gift_sku}
            )

        result = await self.db.execute(select(Product).where(Product.sku == gift_sku))
        gift_product = result.scalar_one_or_none()
        if not gift_product or not gift_product.is_active:
            raise ProductNotFoundException(sku=gift_sku)

        available = gift_product.stock_quantity or 0
        if available < quantity:
            raise OutOfStockException(
                product_id=gift_product.id,
                available=available,
                requested=quantity,
                sku=gift_sku
            )

        line = PricedLine(
            product=gift_product,
            quantity=quantity,
            regular_price=Decimal("0"),
            unit_price=Decimal("0"),
            available_stock=available,
            is_gift=True,
            gift_for_product_id=product.id,
            gift_label=option.get("label"),
            image=option.get("image") or gift_product.primary_image,
        )
        return line, GiftDeduction(product_id=gift_product.id, sku=gift_sku, quantity=quantity)

    def _price(self, product: Product, variant: Optional[ProductVariant], quantity: int):
        """Effective unit price: offer window, then quantity tier"""
        source = variant or product
        base_price = to_decimal(source.price if source.price is not None else product.price)

        offer_price = source.offer_price if source.offer_price is not None else product.offer_price
        offer_start = source.offer_start_at or product.offer_start_at
        offer_end = source.offer_end_at or product.offer_end_at

        offer_active = is_offer_active(offer_price, offer_start, offer_end)
        effective = to_decimal(offer_price) if offer_active else base_price

        # Variant rules override product rules when defined
        rules = (variant.quantity_rules if variant and variant.quantity_rules else product.quantity_rules) or []
        return resolve_quantity_price(effective, rules, quantity), offer_active

    async def _variant_parent(self, variant: ProductVariant) -> Optional[Product]:
        result = await self.db.execute(select(Product).where(Product.id == variant.product_id))
        return result.scalar_one_or_none()
