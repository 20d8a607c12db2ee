"""Celery application for order events"""

from celery import Celery
from kombu import Exchange, Queue
from orderflow.core.config import settings

celery_app = Celery(
    "orderflow",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["orderflow.tasks.order_tasks"]
)

orders_exchange = Exchange(settings.ORDER_EVENTS_QUEUE, type="direct")

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone=settings.CELERY_TIMEZONE,
    enable_utc=True,

    # Fire and forget
    task_ignore_result=True,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    task_time_limit=60,
    task_soft_time_limit=45,

    # Bounded publish retries
    broker_connection_retry_on_startup=True,
    task_publish_retry=True,
    task_publish_retry_policy={
        "max_retries": 2,
        "interval_start": 0,
        "interval_step": 0.5,
        "interval_max": 1,
    },

    task_default_queue="default",
    task_routes={
        "publish_order_placed": {"queue": settings.ORDER_EVENTS_QUEUE},
    },
)

celery_app.conf.task_queues = (
    Queue("default", Exchange("default"), routing_key="default"),
    Queue(settings.ORDER_EVENTS_QUEUE, orders_exchange, routing_key=settings.ORDER_EVENTS_QUEUE),
)
