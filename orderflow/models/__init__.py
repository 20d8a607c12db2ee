"""Models package initialization"""

from .base import Base
from .product import Product, ProductVariant, ProductType
from .cart import Cart, CartItem, CartStatus
from .coupon import Coupon, CouponType
from .address import Address
from .payment import Payment, PaymentMethod, PaymentStatus
from .order import Order, OrderItem, OrderStatus, OrderStatusHistory, OrderPricingSnapshot
from .site_setting import SiteSetting

__all__ = [
    "Base",
    "Product",
    "ProductVariant",
    "ProductType",
    "Cart",
    "CartItem",
    "CartStatus",
    "Coupon",
    "CouponType",
    "Address",
    "Payment",
    "PaymentMethod",
    "PaymentStatus",
    "Order",
    "OrderItem",
    "OrderStatus",
    "OrderStatusHistory",
    "OrderPricingSnapshot",
    "SiteSetting",
]
