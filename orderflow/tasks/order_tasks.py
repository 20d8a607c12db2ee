"""Order event background tasks"""

from celery import Task
from celery.utils.log import get_task_logger
from typing import Dict, Any
import json

import redis

from orderflow.core.celery_app import celery_app
from orderflow.core.config import settings

logger = get_task_logger(__name__)

class OrderEventTask(Task):
    """Base order event task with retry logic"""
    autoretry_for = (redis.RedisError,)
    retry_kwargs = {"max_retries": 3}
    retry_backoff = True
    retry_backoff_max = 300
    retry_jitter = True

@celery_app.task(base=OrderEventTask, name="publish_order_placed")
def publish_order_placed(payload: Dict[str, Any]):
    """Publish an order placed event to the dashboard channel"""
    client = redis.Redis.from_url(settings.REDIS_URL)
    try:
        receivers = client.publish(settings.ORDER_EVENTS_CHANNEL, json.dumps(payload))
    finally:
        client.close()
    
    logger.info(f"Order placed event for {payload.get('order_number')} delivered to {receivers} subscriber(s)")
    return {"success": True, "receivers": receivers}
