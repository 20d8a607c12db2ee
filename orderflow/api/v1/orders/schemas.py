"""
Order schemas for request/response validation
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Dict, Any
from datetime import datetime
from decimal import Decimal
import uuid

from orderflow.models.order import OrderStatus
from orderflow.models.payment import PaymentMethod, PaymentStatus

class OrderLineRequest(BaseModel):
    """One requested order line"""
    product_id: uuid.UUID
    variant_id: Optional[uuid.UUID] = None
    quantity: int = Field(..., gt=0)
    selected_gift_sku: Optional[str] = Field(None, max_length=100)

class AddressInfo(BaseModel):
    """Schema for address information"""
    label: Optional[str] = Field(None, max_length=100)
    recipient_name: str = Field(..., min_length=2, max_length=255)
    phone: str = Field(..., pattern=r'^(\+91)?[6-9]\d{9}$')
    address_line1: str = Field(..., min_length=5, max_length=500)
    address_line2: Optional[str] = Field(None, max_length=500)
    city: str = Field(..., min_length=2, max_length=100)
    state: str = Field(..., min_length=2, max_length=100)
    postal_code: str = Field(..., pattern=r'^\d{6}$')
    country: str = Field("India", max_length=100)

class OrderCreate(BaseModel):
    """Body of the place order request"""
    items: List[OrderLineRequest] = Field(default_factory=list)
    cart_id: Optional[uuid.UUID] = None
    address_id: Optional[uuid.UUID] = None
    new_address: Optional[AddressInfo] = None
    payment_method: PaymentMethod
    idempotency_key: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = Field(None, max_length=500)
    
    @field_validator("idempotency_key")
    @classmethod
    def strip_idempotency_key(cls, value):
        if value is None:
            return value
        return value.strip() or None

class PlaceOrderRequest(OrderCreate):
    """Order placement as seen by the checkout saga"""
    user_id: uuid.UUID

class OrderItemResponse(BaseModel):
    """Schema for order item response"""
    id: uuid.UUID
    product_id: uuid.UUID
    variant_id: Optional[uuid.UUID] = None
    product_name: str
    product_sku: Optional[str] = None
    product_type: str
    image: Optional[str] = None
    variant_name: Optional[str] = None
    variant_attributes: Optional[Dict[str, Any]] = None
    bundle_items: Optional[List[Dict[str, Any]]] = None
    is_gift: bool
    gift_label: Optional[str] = None
    quantity: int
    regular_price: Decimal
    unit_price: Decimal
    total_price: Decimal
    
    class Config:
        from_attributes = True

class PaymentResponse(BaseModel):
    """Schema for payment response"""
    id: uuid.UUID
    method: PaymentMethod
    status: PaymentStatus
    amount: Decimal
    currency: str
    gateway: Optional[str] = None
    gateway_order_id: Optional[str] = None
    
    class Config:
        from_attributes = True
        use_enum_values = True

class OrderResponse(BaseModel):
    """Schema for order response"""
    id: uuid.UUID
    order_number: str
    
    # Amounts
    subtotal: Decimal
    items_total: Decimal
    item_discount: Decimal
    discount_amount: Decimal
    shipping_fee: Decimal
    total_amount: Decimal
    total_quantity: int
    coupon_code: Optional[str] = None
    
    # Status
    status: OrderStatus
    payment_status: PaymentStatus
    payment_method: str
    
    shipping_address: Dict[str, Any]
    notes: Optional[str] = None
    created_at: datetime
    
    items: List[OrderItemResponse]
    
    class Config:
        from_attributes = True
        use_enum_values = True

class PlaceOrderResponse(BaseModel):
    """Schema returned by POST /orders"""
    success: bool = True
    message: str
    idempotent: bool = False
    requires_payment: bool = False
    order: OrderResponse
    payment: Optional[PaymentResponse] = None
    payment_redirect: Optional[Dict[str, Any]] = None
