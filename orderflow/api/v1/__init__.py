"""API v1 routes aggregation"""

from fastapi import APIRouter

from .orders.router import router as orders_router

# Create v1 router
api_router = APIRouter()

# Include all routers
api_router.include_router(orders_router, prefix="/orders", tags=["Orders"])
