"""
Address model for shipping
"""

from sqlalchemy import Column, String, Boolean, Index, Uuid

from .base import Base, TimestampedModel, UUIDModel

class Address(Base, TimestampedModel, UUIDModel):
    """User addresses for shipping"""
    
    __tablename__ = "addresses"
    
    user_id = Column(Uuid, nullable=False)
    
    # Address details
    label = Column(String(100), nullable=True)  # Home, Office, etc.
    recipient_name = Column(String(255), nullable=False)
    phone = Column(String(15), nullable=False)
    
    # Location
    address_line1 = Column(String(500), nullable=False)
    address_line2 = Column(String(500), nullable=True)
    city = Column(String(100), nullable=False)
    state = Column(String(100), nullable=False)
    postal_code = Column(String(20), nullable=False)
    country = Column(String(100), default="India", nullable=False)
    
    is_active = Column(Boolean, default=True)
    
    # Indexes
    __table_args__ = (
        Index("idx_addresses_user_active", "user_id", "is_active"),
    )
    
    def to_snapshot(self) -> dict:
        """Frozen copy stored on the order"""
        return {
            "id": str(self.id),
            "label": self.label,
            "recipient_name": self.recipient_name,
            "phone": self.phone,
            "address_line1": self.address_line1,
            "address_line2": self.address_line2,
            "city": self.city,
            "state": self.state,
            "postal_code": self.postal_code,
            "country": self.country,
        }
