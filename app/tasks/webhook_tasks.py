# app/tasks/webhook_tasks.py
import logging
from typing import Any, Dict

from app.services.campaigns import webhook_notifier
from app.worker import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="campaigns.dispatch_webhook", ignore_result=True)
def dispatch_webhook_event(event_name: str, data: Dict[str, Any]) -> int:
    delivered = webhook_notifier.dispatch(event_name, data)
    logger.info(f"Webhook {event_name} delivered to {delivered} subscriber(s)")
    return delivered


def publish_event(event_name: str, data: Dict[str, Any]) -> bool:
    """
    Fire-and-forget publish. A broker outage is logged and reported as
    False; it never propagates to the caller.
    """
    try:
        dispatch_webhook_event.delay(event_name, data)
        return True
    except Exception as e:
        logger.error(f"Failed to publish webhook event {event_name}: {e}")
        return False
