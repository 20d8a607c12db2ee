"""
Custom exception classes and error handlers
Provides consistent error responses across the application
"""

from fastapi import HTTPException, status
from typing import Any, Dict, Optional

class OrderFlowException(HTTPException):
    """Base exception class for OrderFlow application"""
    
    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code
        self.context = context or {}
    
    def to_payload(self) -> Dict[str, Any]:
        """Render the error body returned to API callers"""
        payload = {
            "success": False,
            "errorCode": self.error_code,
            "message": self.detail,
        }
        payload.update(self.context)
        return payload

class BadRequestException(OrderFlowException):
    """400 Bad Request"""
    
    def __init__(
        self,
        detail: str,
        error_code: str = "BAD_REQUEST",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            error_code=error_code,
            context=context
        )

class NotFoundException(OrderFlowException):
    """404 Not Found"""
    
    def __init__(
        self,
        detail: str = "Not found",
        error_code: str = "NOT_FOUND",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
            error_code=error_code,
            context=context
        )

class ConflictException(OrderFlowException):
    """409 Conflict"""
    
    def __init__(
        self,
        detail: str,
        error_code: str = "CONFLICT",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            error_code=error_code,
            context=context
        )

class ValidationException(OrderFlowException):
    """422 Validation Error"""

    def __init__(
        self,
        detail: str,
        error_code: str = "VALIDATION_ERROR",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            status_code=422,
            detail=detail,
            error_code=error_code,
            context=context
        )

class ServiceUnavailableException(OrderFlowException):
    """503 Service Unavailable"""

    def __init__(
        self,
        detail: str = "Service temporarily unavailable",
        error_code: str = "SERVICE_UNAVAILABLE"
    ):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=detail,
            error_code=error_code
        )

class InternalServerException(OrderFlowException):
    """500 Internal Server Error"""
    
    def __init__(
        self, 
        detail: str = "Internal server error", 
        error_code: str = "INTERNAL_ERROR"
    ):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
            error_code=error_code
        )

# Business logic exceptions
class MissingIdempotencyKeyException(BadRequestException):
    """Order placement without an idempotency key"""
    
    def __init__(self):
        super().__init__(
            detail="Idempotency-Key is required to place an order",
            error_code="MISSING_IDEMPOTENCY_KEY"
        )

class ProductNotFoundException(NotFoundException):
    """Product missing or not sellable"""
    
    def __init__(self, product_id: Any = None, sku: Optional[str] = None):
        context = {"productId": str(product_id) if product_id else None}
        if sku:
            context["sku"] = sku
        super().__init__(
            detail=f"Product {sku or product_id} not found",
            error_code="PRODUCT_NOT_FOUND",
            context=context
        )

class VariantNotFoundException(NotFoundException):
    """Variant missing from product"""
    
    def __init__(self, product_id: Any, variant_id: Any):
        super().__init__(
            detail=f"Variant {variant_id} not found for product {product_id}",
            error_code="VARIANT_NOT_FOUND",
            context={"productId": str(product_id), "variantId": str(variant_id)}
        )

class OutOfStockException(BadRequestException):
    """Product stock insufficient"""
    
    def __init__(
        self,
        product_id: Any,
        available: int,
        requested: int,
        sku: Optional[str] = None,
        race_condition: bool = False,
    ):
        self.race_condition = race_condition
        context = {
            "productId": str(product_id) if product_id else None,
            "available": available,
            "requested": requested,
        }
        if sku:
            context["sku"] = sku
        if race_condition:
            context["raceCondition"] = True
        super().__init__(
            detail=f"Insufficient stock for {sku or product_id}. Only {available} available.",
            error_code="OUT_OF_STOCK",
            context=context
        )

class CouponException(BadRequestException):
    """Coupon rejected by the ledger"""
    
    def __init__(self, error_code: str, detail: str, code: Optional[str] = None):
        super().__init__(
            detail=detail,
            error_code=error_code,
            context={"couponCode": code} if code else None
        )

class CartNotFoundException(NotFoundException):
    """No cart available for checkout"""
    
    def __init__(self, detail: str = "Cart not found"):
        super().__init__(detail=detail, error_code="CART_NOT_FOUND")

class CartNotInCheckoutException(ConflictException):
    """Cart is not locked for checkout"""
    
    def __init__(self, cart_status: Optional[str] = None):
        super().__init__(
            detail="Checkout has not been started or cart has already been ordered",
            error_code="CART_NOT_IN_CHECKOUT",
            context={"cartStatus": cart_status} if cart_status else None
        )

class CheckoutExpiredException(BadRequestException):
    """Checkout lock expired before the order was placed"""
    
    def __init__(self):
        super().__init__(
            detail="Checkout session has expired. Please restart checkout.",
            error_code="CHECKOUT_EXPIRED"
        )

class AddressRequiredException(BadRequestException):
    """Neither an address reference nor a new address was supplied"""
    
    def __init__(self):
        super().__init__(
            detail="Address ID or new address is required",
            error_code="ADDRESS_REQUIRED"
        )

class PaymentInitiationException(OrderFlowException):
    """502 Gateway handshake failed after the order was committed"""
    
    def __init__(self, order_id: str, order_cancelled: bool, reason: str):
        super().__init__(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Payment could not be initiated: {reason}",
            error_code="PAYMENT_INITIATION_FAILED",
            context={"orderId": order_id, "orderCancelled": order_cancelled}
        )
        self.order_cancelled = order_cancelled

# Internal failures, never rendered directly
class PaymentGatewayError(Exception):
    """Payment provider rejected or did not answer the request"""

class StockRestoreError(Exception):
    """A compensating stock restore did not find its target"""
