"""
Inventory reservation
Every stock change is a single conditional UPDATE, never read-modify-write
"""

from dataclasses import dataclass, asdict
from typing import ClassVar, Dict, Iterable, List, Optional, Union
import logging
import uuid

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.core.exceptions import OutOfStockException, StockRestoreError
from orderflow.core.monitoring import stock_conflicts
from orderflow.models.product import Product, ProductVariant

logger = logging.getLogger(__name__)

@dataclass(frozen=True)
class SimpleDeduction:
    product_id: uuid.UUID
    quantity: int
    kind: ClassVar[str] = "simple"

@dataclass(frozen=True)
class VariantDeduction:
    product_id: uuid.UUID
    variant_id: uuid.UUID
    quantity: int
    kind: ClassVar[str] = "variant"

@dataclass(frozen=True)
class BundleChildDeduction:
    bundle_product_id: uuid.UUID
    sku: str
    child_product_id: uuid.UUID
    child_variant_id: Optional[uuid.UUID]
    quantity: int
    kind: ClassVar[str] = "bundle_child"

@dataclass(frozen=True)
class GiftDeduction:
    product_id: uuid.UUID
    sku: str
    quantity: int
    kind: ClassVar[str] = "gift"

Deduction = Union[SimpleDeduction, VariantDeduction, BundleChildDeduction, GiftDeduction]

_DEDUCTION_TYPES = {
    cls.kind: cls
    for cls in (SimpleDeduction, VariantDeduction, BundleChildDeduction, GiftDeduction)
}

_UUID_FIELDS = ("product_id", "variant_id", "bundle_product_id", "child_product_id", "child_variant_id")

def deduction_to_dict(deduction: Deduction) -> Dict:
    """Serialise a deduction for the order's JSON column"""
    data = {"kind": deduction.kind}
    for key, value in asdict(deduction).items():
        data[key] = str(value) if isinstance(value, uuid.UUID) else value
    return data

def deduction_from_dict(data: Dict) -> Deduction:
    """Rebuild a deduction persisted by deduction_to_dict"""
    payload = dict(data)
    kind = payload.pop("kind", None)
    cls = _DEDUCTION_TYPES.get(kind)
    if cls is None:
        raise ValueError(f"Unknown stock deduction kind: {kind!r}")
    
    for key in _UUID_FIELDS:
        if payload.get(key) is not None:
            payload[key] = uuid.UUID(str(payload[key]))
    return cls(**payload)

def _target(deduction: Deduction):
    """(model, row id, owning product id) the deduction applies to"""
    if isinstance(deduction, VariantDeduction):
        return ProductVariant, deduction.variant_id, deduction.product_id
    if isinstance(deduction, BundleChildDeduction):
        if deduction.child_variant_id is not None:
            return ProductVariant, deduction.child_variant_id, deduction.child_product_id
        return Product, deduction.child_product_id, None
    return Product, deduction.product_id, None

class InventoryService:
    """Reserves and restores stock for order placement"""
    
    def __init__(self, db: AsyncSession):
        self.db = db
    
    async def reserve(self, deductions: Iterable[Deduction]) -> None:
        """
        Decrement stock for every deduction in submission order
        
        Args:
            deductions: Queue built by the catalog reader
            
        Raises:
            OutOfStockException: A conditional decrement matched no row,
                i.e. a concurrent order took the stock first
        """
        for deduction in deductions:
            reserved = await self._apply(deduction, -deduction.quantity)
            if reserved:
                continue
            
            available = await self._read_available(deduction)
            stock_conflicts.labels(kind=deduction.kind).inc()
            logger.warning(
                f"Stock reservation lost race: kind={deduction.kind} "
                f"target={_target(deduction)[1]} requested={deduction.quantity} available={available}"
            )
            raise OutOfStockException(
                product_id=_owning_product(deduction),
                available=available,
                requested=deduction.quantity,
                sku=getattr(deduction, "sku", None),
                race_condition=True,
            )
    
    async def restore(self, deductions: Iterable[Deduction]) -> None:
        """
        Add back stock for previously reserved deductions, newest first
        
        Raises:
            StockRestoreError: The product or variant no longer exists
        """
        for deduction in reversed(list(deductions)):
            restored = await self._apply(deduction, deduction.quantity)
            if not restored:
                raise StockRestoreError(
                    f"Cannot restore {deduction.quantity} units for {deduction.kind} "
                    f"deduction on {_target(deduction)[1]}: target not found"
                )
    
    async def _apply(self, deduction: Deduction, delta: int) -> bool:
        """Run the conditional update; True when a row matched"""
        model, row_id, parent_id = _target(deduction)
        
        stmt = update(model).where(model.id == row_id)
        if parent_id is not None:
            stmt = stmt.where(model.product_id == parent_id)
        if delta < 0:
            stmt = stmt.where(model.stock_quantity >= -delta)
        
        stmt = (
            stmt.values(
                stock_quantity=model.stock_quantity + delta,
                stock=model.stock_quantity + delta,
            )
            .returning(model.id)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.first() is not None
    
    async def _read_available(self, deduction: Deduction) -> int:
        model, row_id, _ = _target(deduction)
        result = await self.db.execute(select(model.stock_quantity).where(model.id == row_id))
        return result.scalar_one_or_none() or 0

def _owning_product(deduction: Deduction) -> uuid.UUID:
    if isinstance(deduction, BundleChildDeduction):
        return deduction.bundle_product_id
    return deduction.product_id

def serialize_deductions(deductions: Iterable[Deduction]) -> List[Dict]:
    return [deduction_to_dict(d) for d in deductions]

def deserialize_deductions(data: Optional[Iterable[Dict]]) -> List[Deduction]:
    return [deduction_from_dict(d) for d in (data or [])]
