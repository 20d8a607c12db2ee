"""
Shopping cart model
Carts are locked for checkout by the cart service before an order is placed
"""

from sqlalchemy import Column, String, Integer, Numeric, ForeignKey, Index, CheckConstraint, DateTime, Enum, Uuid
from sqlalchemy.orm import relationship
import enum

from .base import Base, TimestampedModel, UUIDModel

class CartStatus(str, enum.Enum):
    ACTIVE = "active"
    CHECKOUT = "checkout"
    ORDERED = "ordered"

class Cart(Base, TimestampedModel, UUIDModel):
    """Shopping cart"""
    
    __tablename__ = "carts"
    
    user_id = Column(Uuid, nullable=True, index=True)
    status = Column(Enum(CartStatus), default=CartStatus.ACTIVE, nullable=False, index=True)
    
    # Checkout lock
    checkout_token = Column(String(64), nullable=True)
    checkout_expiry = Column(DateTime, nullable=True)
    
    # Applied coupon
    coupon_id = Column(Uuid, ForeignKey("coupons.id"), nullable=True)
    coupon_code = Column(String(50), nullable=True)
    coupon_discount = Column(Numeric(10, 2), default=0)
    
    # Order created from this cart
    order_id = Column(Uuid, nullable=True)
    
    # Relationships
    items = relationship(
        "CartItem",
        back_populates="cart",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="CartItem.created_at"
    )
    
    __table_args__ = (
        Index("idx_carts_user_status", "user_id", "status"),
    )

class CartItem(Base, TimestampedModel, UUIDModel):
    """Shopping cart items"""
    
    __tablename__ = "cart_items"
    
    cart_id = Column(Uuid, ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)
    
    # Product
    product_id = Column(Uuid, ForeignKey("products.id"), nullable=False)
    variant_id = Column(Uuid, ForeignKey("product_variants.id"), nullable=True)
    selected_gift_sku = Column(String(100), nullable=True)
    
    quantity = Column(Integer, nullable=False, default=1)
    
    # Display snapshot captured when the item was added
    title = Column(String(255), nullable=True)
    image = Column(String(500), nullable=True)
    
    # Relationships
    cart = relationship("Cart", back_populates="items")
    
    __table_args__ = (
        CheckConstraint("quantity > 0", name="check_positive_cart_quantity"),
    )
