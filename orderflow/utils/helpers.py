"""
Helper utilities
"""

import secrets
import string
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Optional

MONEY_PLACES = Decimal("0.01")

def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in every DateTime column"""
    return datetime.now(timezone.utc).replace(tzinfo=None)

def to_decimal(value: Any) -> Decimal:
    """Coerce a price-like value into Decimal without float artefacts"""
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))

def to_money(value: Any) -> Decimal:
    """
    Round amount to two decimal places
    
    Args:
        value: Amount as Decimal, int, str or float
        
    Returns:
        Decimal quantized with ROUND_HALF_UP
    """
    return to_decimal(value).quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)

def to_minor_units(amount: Decimal) -> int:
    """Convert rupees to paise for the payment gateway"""
    return int(to_money(amount) * 100)

def generate_order_number(prefix: str = "ORD", now: Optional[datetime] = None) -> str:
    """
    Generate human readable order number
    
    Format: ORD + YYYYMMDDHHMMSS + 6 random characters
    """
    timestamp = (now or utcnow()).strftime("%Y%m%d%H%M%S")
    alphabet = string.ascii_uppercase + string.digits
    random_suffix = "".join(secrets.choice(alphabet) for _ in range(6))
    return f"{prefix}{timestamp}{random_suffix}"
