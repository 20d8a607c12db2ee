"""Base models and mixins for database models"""

from sqlalchemy import Column, DateTime, String, Uuid
from sqlalchemy.orm import DeclarativeBase, declared_attr
import uuid

from orderflow.utils.helpers import utcnow

# Create declarative base
class Base(DeclarativeBase):
    pass

class TimestampedModel:
    """Mixin for adding created_at and updated_at timestamps"""
    
    @declared_attr
    def created_at(cls):
        return Column(
            DateTime,
            nullable=False,
            default=utcnow,
            index=True
        )
    
    @declared_attr
    def updated_at(cls):
        return Column(
            DateTime,
            nullable=False,
            default=utcnow,
            onupdate=utcnow
        )

class UUIDModel:
    """Mixin for adding UUID primary key"""
    
    @declared_attr
    def id(cls):
        return Column(
            Uuid,
            primary_key=True,
            default=uuid.uuid4,
            nullable=False
        )

class StatusModel:
    """Mixin for status tracking"""
    
    @declared_attr
    def status(cls):
        return Column(
            String(50),
            nullable=False,
            default='active',
            index=True
        )

__all__ = [
    'Base',
    'TimestampedModel',
    'UUIDModel',
    'StatusModel',
]
