"""
Coupon and discount models
"""

from sqlalchemy import Column, String, Integer, Numeric, Boolean, Index, CheckConstraint, Text, DateTime, Enum
import enum

from .base import Base, TimestampedModel, UUIDModel

class CouponType(str, enum.Enum):
    FLAT = "flat"
    PERCENTAGE = "percentage"

class Coupon(Base, TimestampedModel, UUIDModel):
    """Discount coupons and promo codes"""
    
    __tablename__ = "coupons"
    
    code = Column(String(50), unique=True, nullable=False, index=True)
    description = Column(Text, nullable=True)
    
    # Discount details
    discount_type = Column(Enum(CouponType), nullable=False)
    discount_value = Column(Numeric(10, 2), nullable=False)
    
    # Conditions
    min_cart_value = Column(Numeric(10, 2), default=0, nullable=False)
    max_discount = Column(Numeric(10, 2), nullable=True)  # percentage coupons only
    
    # Usage limits
    usage_limit = Column(Integer, nullable=True)  # Total usage limit
    usage_count = Column(Integer, default=0, nullable=False)
    per_user_limit = Column(Integer, nullable=True)
    first_order_only = Column(Boolean, default=False, nullable=False)
    
    # Validity
    valid_from = Column(DateTime, nullable=True)
    valid_until = Column(DateTime, nullable=True)
    
    # Status
    is_active = Column(Boolean, default=True, nullable=False)
    
    # Constraints
    __table_args__ = (
        CheckConstraint("discount_value > 0", name="check_positive_discount"),
        CheckConstraint("usage_limit IS NULL OR usage_limit > 0", name="check_positive_usage_limit"),
        CheckConstraint("usage_count >= 0", name="check_non_negative_usage_count"),
        Index("idx_coupons_active_valid", "is_active", "valid_from", "valid_until"),
    )
