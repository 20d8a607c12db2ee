"""Key/value site settings edited from the admin panel"""

from sqlalchemy import Column, String, JSON, UniqueConstraint

from .base import Base, TimestampedModel, UUIDModel

class SiteSetting(Base, TimestampedModel, UUIDModel):
    """Scoped setting, e.g. scope="cart", key="cart.shipping.flat" """
    
    __tablename__ = "site_settings"
    
    scope = Column(String(50), nullable=False, index=True)
    key = Column(String(100), nullable=False)
    value = Column(JSON, nullable=True)
    
    __table_args__ = (
        UniqueConstraint("scope", "key", name="uq_site_settings_scope_key"),
    )
