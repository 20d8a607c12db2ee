"""Product and variant models"""

from sqlalchemy import Column, String, Text, Numeric, Integer, JSON, ForeignKey, Index, CheckConstraint, DateTime, Enum, Uuid
from sqlalchemy.orm import relationship
import enum

from .base import Base, TimestampedModel, UUIDModel, StatusModel

class ProductType(str, enum.Enum):
    SIMPLE = "SIMPLE"
    CONFIGURABLE = "CONFIGURABLE"
    BUNDLE = "BUNDLE"
    CHOICE_GROUP = "CHOICE_GROUP"

class Product(Base, TimestampedModel, UUIDModel, StatusModel):
    """Sellable catalog product"""
    
    __tablename__ = "products"
    
    # Basic info
    name = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=True)
    sku = Column(String(100), unique=True, index=True, nullable=True)
    product_type = Column(Enum(ProductType), default=ProductType.SIMPLE, nullable=False, index=True)
    
    # Pricing
    price = Column(Numeric(10, 2), nullable=False)
    offer_price = Column(Numeric(10, 2), nullable=True)
    offer_start_at = Column(DateTime, nullable=True)
    offer_end_at = Column(DateTime, nullable=True)
    quantity_rules = Column(JSON, default=list)  # [{"min_qty": 2, "price": "450.00"}]
    
    # Inventory
    stock_quantity = Column(Integer, default=0, nullable=False)
    stock = Column(Integer, default=0, nullable=False)  # Keep for compatibility
    
    # Media
    primary_image = Column(String(500), nullable=True)
    
    # Bundle / gift configuration
    bundle_config = Column(JSON, default=list)  # [{"sku": "...", "qty": 2}]
    gift_slot = Column(JSON, nullable=True)  # {"enabled": true, "options": [{"sku", "label", "image"}]}
    
    # Relationships
    variants = relationship(
        "ProductVariant",
        back_populates="product",
        cascade="all, delete-orphan",
        lazy="selectin"
    )
    
    # Constraints
    __table_args__ = (
        CheckConstraint("price >= 0", name="check_non_negative_price"),
        CheckConstraint("stock_quantity >= 0", name="check_non_negative_stock_quantity"),
        Index("idx_products_type_status", "product_type", "status"),
    )
    
    @property
    def is_active(self) -> bool:
        return self.status == "active"
    
    @property
    def is_in_stock(self) -> bool:
        return (self.stock_quantity or 0) > 0
    
    def get_variant(self, variant_id):
        """Find a variant by id"""
        for variant in self.variants:
            if str(variant.id) == str(variant_id):
                return variant
        return None

class ProductVariant(Base, TimestampedModel, UUIDModel):
    """Configurable product variant with its own price and stock"""
    
    __tablename__ = "product_variants"
    
    product_id = Column(Uuid, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    sku = Column(String(100), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=True)
    attributes = Column(JSON, default=dict)  # {"size": "L", "color": "Red"}
    
    # Pricing overrides
    price = Column(Numeric(10, 2), nullable=False)
    offer_price = Column(Numeric(10, 2), nullable=True)
    offer_start_at = Column(DateTime, nullable=True)
    offer_end_at = Column(DateTime, nullable=True)
    quantity_rules = Column(JSON, default=list)
    
    # Inventory
    stock_quantity = Column(Integer, default=0, nullable=False)
    stock = Column(Integer, default=0, nullable=False)  # Keep for compatibility
    
    image = Column(String(500), nullable=True)
    
    # Relationships
    product = relationship("Product", back_populates="variants")
    
    __table_args__ = (
        CheckConstraint("stock_quantity >= 0", name="check_non_negative_variant_stock"),
    )
