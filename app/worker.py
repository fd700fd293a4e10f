# app/worker.py
"""
Celery application for campaign delivery.

Each worker claims one job at a time (prefetch 1) and acknowledges it only
after the task finishes, so a crashed worker's job goes back on the queue.
Concurrency is the size of the delivery worker pool.
"""

from celery import Celery

from app.core.config import settings

celery_app = Celery("campaign_delivery", broker=settings.REDIS_URL, backend=settings.REDIS_URL)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Task execution
    task_acks_late=True,  # Acknowledge after task completes
    task_reject_on_worker_lost=True,  # Requeue if worker dies
    worker_prefetch_multiplier=1,
    worker_concurrency=settings.CAMPAIGN_SEND_CONCURRENCY,

    result_expires=3600,

    task_default_queue=settings.CAMPAIGN_SEND_QUEUE,
    task_routes={
        "campaigns.deliver_send": {"queue": settings.CAMPAIGN_SEND_QUEUE},
        "campaigns.dispatch_webhook": {"queue": "webhooks"},
    },
)

# Tell Celery where to find our tasks
celery_app.conf.imports = ("app.tasks.delivery_tasks", "app.tasks.webhook_tasks")
