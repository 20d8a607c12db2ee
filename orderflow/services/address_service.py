"""
Address resolution for checkout
"""

from typing import Optional
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.core.exceptions import AddressRequiredException, NotFoundException
from orderflow.models.address import Address

class AddressService:
    """Reads saved addresses and creates inline ones"""
    
    def __init__(self, db: AsyncSession):
        self.db = db
    
    async def resolve(
        self,
        user_id: uuid.UUID,
        address_id: Optional[uuid.UUID] = None,
        new_address=None
    ) -> Address:
        """
        Resolve the shipping address for an order
        
        Args:
            user_id: Buyer
            address_id: Saved address owned by the buyer
            new_address: AddressInfo to save when no address_id is given
            
        Returns:
            Address
            
        Raises:
            NotFoundException: address_id missing or owned by someone else
            AddressRequiredException: Neither option supplied
        """
        if address_id:
            result = await self.db.execute(
                select(Address).where(
                    Address.id == address_id,
                    Address.user_id == user_id,
                    Address.is_active.is_(True)
                )
            )
            address = result.scalar_one_or_none()
            if not address:
                raise NotFoundException(
                    "Address not found",
                    error_code="ADDRESS_NOT_FOUND",
                    context={"addressId": str(address_id)}
                )
            return address
        
        if new_address is not None:
            address = Address(user_id=user_id, **new_address.model_dump())
            self.db.add(address)
            await self.db.flush()
            return address
        
        raise AddressRequiredException()
