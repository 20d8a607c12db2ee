# OrderFlow Monitoring Configuration
# Prometheus metrics and logging setup

import logging
import logging.handlers
import os
import time

from fastapi import FastAPI, Request, Response
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

from orderflow.core.config import settings

# HTTP metrics
request_count = Counter('orderflow_http_requests_total', 'Total HTTP requests', ['method', 'endpoint', 'status'])
request_duration = Histogram('orderflow_http_request_duration_seconds', 'HTTP request duration', ['method', 'endpoint'])

# Order placement metrics
orders_placed = Counter('orderflow_orders_placed_total', 'Orders committed', ['payment_method'])
order_replays = Counter('orderflow_order_replays_total', 'Order placements answered from the idempotency key')
order_failures = Counter('orderflow_order_failures_total', 'Order placements rejected before commit', ['error_code'])
stock_conflicts = Counter('orderflow_stock_reservation_conflicts_total', 'Conditional stock decrements that lost a race', ['kind'])
saga_compensations = Counter('orderflow_saga_compensations_total', 'Compensations run after gateway failure', ['outcome'])
placement_duration = Histogram('orderflow_order_placement_duration_seconds', 'End-to-end order placement time')

def setup_logging():
    """Configure structured logging for the application"""
    
    log_level = settings.LOG_LEVEL
    log_file = os.getenv("LOG_FILE")
    
    # Configure logging format
    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    
    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    handlers = [console_handler]
    
    # File handler with rotation
    if log_file:
        os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=int(os.getenv("LOG_MAX_SIZE", "10MB").replace("MB", "")) * 1024 * 1024,
            backupCount=int(os.getenv("LOG_BACKUP_COUNT", "5"))
        )
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)
    
    # Configure root logger
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        handlers=handlers
    )
    
    # Silence noisy loggers in production
    if settings.ENVIRONMENT == "production":
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

def setup_monitoring_middleware(app: FastAPI):
    """Add monitoring middleware to track metrics"""
    
    @app.middleware("http")
    async def monitor_requests(request: Request, call_next):
        start_time = time.time()
        
        # Process request
        response = await call_next(request)
        
        # Calculate metrics
        process_time = time.time() - start_time
        
        # Update metrics
        request_count.labels(
            method=request.method,
            endpoint=request.url.path,
            status=response.status_code
        ).inc()
        
        request_duration.labels(
            method=request.method,
            endpoint=request.url.path
        ).observe(process_time)
        
        # Add response headers
        response.headers["X-Process-Time"] = str(process_time)
        
        return response

def metrics_response() -> Response:
    """Expose collected metrics in Prometheus text format"""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
