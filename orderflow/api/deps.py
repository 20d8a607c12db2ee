"""
Shared API dependencies
"""

from fastapi import Header, Request
import uuid

from orderflow.core.exceptions import BadRequestException
from orderflow.services.checkout_saga import CheckoutSaga

async def get_current_user_id(
    x_user_id: str = Header(..., alias="X-User-Id", description="Buyer id set by the auth gateway")
) -> uuid.UUID:
    """Buyer identity forwarded by the authentication layer"""
    try:
        return uuid.UUID(x_user_id)
    except ValueError:
        raise BadRequestException("X-User-Id must be a UUID", error_code="INVALID_USER_ID")

def get_checkout_saga(request: Request) -> CheckoutSaga:
    return request.app.state.checkout_saga
