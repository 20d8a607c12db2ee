"""Main FastAPI application"""

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from typing import Optional
import logging

from sqlalchemy.ext.asyncio import async_sessionmaker

from orderflow.core.config import settings
from orderflow.core.database import AsyncSessionLocal, close_db, init_db
from orderflow.core.exceptions import InternalServerException, OrderFlowException, ValidationException
from orderflow.core.monitoring import metrics_response, setup_logging, setup_monitoring_middleware
from orderflow.services.checkout_saga import CheckoutSaga
from orderflow.services.order_events import OrderEventPublisher
from orderflow.services.payment_gateway import PaymentGateway, RazorpayGateway

logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    # Startup
    logger.info(f"Starting up {settings.APP_NAME}...")

    if settings.ENVIRONMENT == "development":
        await init_db()

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.APP_NAME}...")
    await close_db()

def default_gateway() -> Optional[PaymentGateway]:
    """Razorpay when credentials are configured, otherwise COD only"""
    if settings.RAZORPAY_KEY_ID and settings.RAZORPAY_KEY_SECRET:
        return RazorpayGateway()
    logger.warning("Razorpay credentials missing, online payments disabled")
    return None

def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(OrderFlowException)
    async def orderflow_exception_handler(request: Request, exc: OrderFlowException):
        return JSONResponse(
            status_code=exc.status_code,
            content=jsonable_encoder(exc.to_payload()),
            headers=exc.headers
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        error = ValidationException(
            "Request validation failed",
            context={"errors": jsonable_encoder(exc.errors())}
        )
        return JSONResponse(status_code=error.status_code, content=error.to_payload())

    @app.exception_handler(Exception)
    async def internal_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        error = InternalServerException("An internal error occurred")
        return JSONResponse(status_code=error.status_code, content=error.to_payload())

def create_app(
    session_factory: Optional[async_sessionmaker] = None,
    gateway: Optional[PaymentGateway] = None,
    events: Optional[OrderEventPublisher] = None,
) -> FastAPI:
    """Build the API with its checkout saga wired in"""
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="OrderFlow API - order placement for the storefront",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        lifespan=lifespan
    )

    app.state.checkout_saga = CheckoutSaga(
        session_factory=session_factory or AsyncSessionLocal,
        gateway=gateway if gateway is not None else default_gateway(),
        events=events if events is not None else OrderEventPublisher(),
    )

    register_exception_handlers(app)

    if settings.PROMETHEUS_ENABLED:
        setup_monitoring_middleware(app)

        @app.get("/metrics", include_in_schema=False)
        async def metrics():
            return metrics_response()

    # Include routers
    from orderflow.api.v1 import api_router
    app.include_router(api_router, prefix="/api/v1")

    # Health check
    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "version": settings.APP_VERSION}

    return app

setup_logging()
app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "orderflow.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        workers=1 if settings.DEBUG else settings.WORKERS
    )
