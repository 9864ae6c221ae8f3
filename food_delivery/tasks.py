"""
Celery Tasks
Background delivery of order status SMS.
"""

import asyncio
import logging
import time
from datetime import datetime

from food_delivery.celery_worker import celery_app
from food_delivery.core.config import get_settings
from food_delivery.services.notifications import get_notification_service

logger = logging.getLogger(__name__)


class NotificationFailed(Exception):
    """The SMS provider rejected the message; Celery retries the task."""


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=5,
    autoretry_for=(NotificationFailed,),
    retry_backoff=True
)
def send_order_status_sms(self, order_id: str, phone: str, status: str) -> dict:
    """
    Send the customer an SMS about their order's new status.

    Args:
        order_id: Order identifier
        phone: Customer phone number
        status: New order status value

    Returns:
        dict: Result of the send
    """
    task_id = self.request.id
    start_time = time.time()

    service = get_notification_service()
    result = asyncio.run(
        service.send_order_status_update(
            order_id=order_id,
            to_phone=phone,
            status=status,
            brand_name=get_settings().brand_name,
        )
    )

    elapsed = round(time.time() - start_time, 3)
    if not result.success:
        logger.warning(
            f"Task {task_id}: status SMS for order #{order_id} failed after {elapsed}s - "
            f"{result.error_message}"
        )
        raise NotificationFailed(result.error_message or "SMS not sent")

    logger.info(f"Task {task_id}: status SMS for order #{order_id} ({status}) sent in {elapsed}s")

    payload = result.to_dict()
    payload['task_id'] = task_id
    payload['processing_time_seconds'] = elapsed
    return payload


@celery_app.task
def health_check() -> dict:
    """
    Simple health check task to verify Celery is working.
    """
    return {
        'status': 'healthy',
        'worker': 'celery',
        'timestamp': datetime.now().isoformat()
    }


def dispatch_status_notification(order_id: str, phone: str, status: str) -> None:
    """
    Queue ``send_order_status_sms`` after a committed status change.

    The status change has already committed, so a broker outage is logged
    and never raised to the caller.
    """
    if not get_settings().order_notifications_enabled:
        return
    try:
        send_order_status_sms.delay(order_id, phone, status)
    except Exception as e:
        logger.error(f"Could not queue status SMS for order #{order_id}: {e}")
