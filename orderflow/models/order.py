"""Order model with state machine"""

from sqlalchemy import Column, String, Numeric, Integer, Enum, ForeignKey, Index, Text, DateTime, Boolean, JSON, Uuid
from sqlalchemy.orm import relationship
import enum

from .base import Base, TimestampedModel, UUIDModel
from .payment import PaymentStatus

class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"

class Order(Base, TimestampedModel, UUIDModel):
    """Placed order with frozen line items"""
    
    __tablename__ = "orders"
    
    # Order identification
    order_number = Column(String(50), unique=True, nullable=False, index=True)
    idempotency_key = Column(String(255), unique=True, nullable=True, index=True)
    
    # Parties
    user_id = Column(Uuid, nullable=True, index=True)
    cart_id = Column(Uuid, ForeignKey("carts.id"), nullable=True)
    
    # Status
    status = Column(Enum(OrderStatus), default=OrderStatus.PENDING, nullable=False, index=True)
    payment_status = Column(Enum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False)
    
    # Amounts
    subtotal = Column(Numeric(10, 2), nullable=False)  # regular price x qty
    items_total = Column(Numeric(10, 2), nullable=False)  # unit price x qty
    item_discount = Column(Numeric(10, 2), default=0)
    discount_amount = Column(Numeric(10, 2), default=0)  # coupon
    shipping_fee = Column(Numeric(10, 2), default=0)
    total_amount = Column(Numeric(10, 2), nullable=False)
    total_quantity = Column(Integer, default=0, nullable=False)
    
    # Coupon
    coupon_id = Column(Uuid, ForeignKey("coupons.id"), nullable=True)
    coupon_code = Column(String(50), nullable=True)
    
    # Payment
    payment_method = Column(String(50), nullable=False)
    
    # Address
    shipping_address_id = Column(Uuid, ForeignKey("addresses.id"), nullable=True)
    shipping_address = Column(JSON, nullable=False)
    
    # Reserved stock, replayed in reverse on compensation
    stock_deductions = Column(JSON, default=list, nullable=False)
    
    # Timestamps
    cancelled_at = Column(DateTime, nullable=True)
    cancellation_reason = Column(String(500), nullable=True)
    
    notes = Column(Text, nullable=True)
    order_metadata = Column(JSON, default=dict)
    
    # Relationships
    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderItem.position"
    )
    status_history = relationship(
        "OrderStatusHistory",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderStatusHistory.created_at"
    )
    payment = relationship("Payment", back_populates="order", uselist=False, lazy="selectin")
    pricing_snapshot = relationship(
        "OrderPricingSnapshot",
        back_populates="order",
        uselist=False,
        cascade="all, delete-orphan",
        lazy="selectin"
    )
    
    # Indexes
    __table_args__ = (
        Index("idx_orders_user_status", "user_id", "status"),
        Index("idx_orders_created_status", "created_at", "status"),
    )

class OrderItem(Base, TimestampedModel, UUIDModel):
    """Individual items within an order"""
    
    __tablename__ = "order_items"
    
    order_id = Column(Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    product_id = Column(Uuid, ForeignKey("products.id"), nullable=False)
    variant_id = Column(Uuid, ForeignKey("product_variants.id"), nullable=True)
    
    # Item details (snapshot at time of order)
    product_name = Column(String(500), nullable=False)
    product_sku = Column(String(100), nullable=True)
    product_type = Column(String(20), nullable=False)
    image = Column(String(500), nullable=True)
    variant_name = Column(String(255), nullable=True)
    variant_sku = Column(String(100), nullable=True)
    variant_attributes = Column(JSON, nullable=True)
    bundle_items = Column(JSON, nullable=True)  # [{"sku", "qty"}] per bundle unit
    
    # Gift line
    is_gift = Column(Boolean, default=False, nullable=False)
    gift_for_product_id = Column(Uuid, nullable=True)
    gift_label = Column(String(255), nullable=True)
    
    # Quantities and pricing
    quantity = Column(Integer, nullable=False)
    regular_price = Column(Numeric(10, 2), nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    total_price = Column(Numeric(10, 2), nullable=False)
    pricing_tier = Column(JSON, nullable=True)  # {"min_qty", "price"} when a tier applied
    
    # Relationships
    order = relationship("Order", back_populates="items")
    
    __table_args__ = (
        Index("idx_order_items_order_product", "order_id", "product_id"),
    )

class OrderStatusHistory(Base, TimestampedModel, UUIDModel):
    """Track order status changes"""
    
    __tablename__ = "order_status_history"
    
    order_id = Column(Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(Enum(OrderStatus), nullable=False)
    previous_status = Column(Enum(OrderStatus), nullable=True)
    reason = Column(String(500), nullable=True)
    notes = Column(Text, nullable=True)
    
    # Relationships
    order = relationship("Order", back_populates="status_history")

class OrderPricingSnapshot(Base, TimestampedModel, UUIDModel):
    """Audit copy of the totals an order was charged"""
    
    __tablename__ = "order_pricing_snapshots"
    
    order_id = Column(Uuid, ForeignKey("orders.id", ondelete="CASCADE"), unique=True, nullable=False)
    
    subtotal = Column(Numeric(10, 2), nullable=False)
    items_total = Column(Numeric(10, 2), nullable=False)
    item_discount = Column(Numeric(10, 2), nullable=False)
    coupon_discount = Column(Numeric(10, 2), nullable=False)
    shipping_fee = Column(Numeric(10, 2), nullable=False)
    grand_total = Column(Numeric(10, 2), nullable=False)
    
    # Shipping configuration in force when the order was priced
    free_shipping_threshold = Column(Numeric(10, 2), nullable=False)
    flat_shipping_cost = Column(Numeric(10, 2), nullable=False)
    
    captured_at = Column(DateTime, nullable=False)
    
    order = relationship("Order", back_populates="pricing_snapshot")
