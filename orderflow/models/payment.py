"""
Payment model for transaction handling
Integrates with payment gateways
"""

from sqlalchemy import Column, String, Numeric, ForeignKey, Enum, DateTime, Text, JSON, Uuid
from sqlalchemy.orm import relationship
import enum

from .base import Base, TimestampedModel, UUIDModel

class PaymentStatus(str, enum.Enum):
    """Payment status enumeration"""
    PENDING = "pending"
    INITIATED = "initiated"
    SUCCESS = "success"
    FAILED = "failed"

class PaymentMethod(str, enum.Enum):
    """Payment method enumeration"""
    COD = "cod"
    RAZORPAY = "razorpay"
    UPI = "upi"
    CARD = "card"
    NET_BANKING = "net_banking"
    
    @property
    def requires_gateway(self) -> bool:
        return self is not PaymentMethod.COD

class Payment(Base, TimestampedModel, UUIDModel):
    """Payment transaction records"""
    
    __tablename__ = "payments"
    
    order_id = Column(Uuid, ForeignKey("orders.id"), unique=True, nullable=False)
    
    # Payment details
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), default="INR", nullable=False)
    method = Column(Enum(PaymentMethod), nullable=False)
    status = Column(Enum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False)
    
    # Gateway details
    gateway = Column(String(50), nullable=True)
    gateway_order_id = Column(String(255), nullable=True)
    gateway_response = Column(JSON, nullable=True)
    
    # Timestamps
    failed_at = Column(DateTime, nullable=True)
    failure_reason = Column(Text, nullable=True)
    
    # Relationships
    order = relationship("Order", back_populates="payment")
