# app/services/campaigns/delivery_queue.py
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from app.core.config import settings
from app.tasks.delivery_tasks import deliver_campaign_send_task

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CampaignSendJob:
    campaign_send_id: str
    user_id: Optional[str] = None


def enqueue_send_jobs(jobs: Iterable[CampaignSendJob]) -> int:
    """Hand a batch of delivery jobs to the Celery queue. Returns the number enqueued."""
    count = 0
    for job in jobs:
        deliver_campaign_send_task.apply_async(
            args=[job.campaign_send_id, job.user_id],
            queue=settings.CAMPAIGN_SEND_QUEUE,
        )
        count += 1
    logger.info(f"Enqueued {count} campaign send job(s) on '{settings.CAMPAIGN_SEND_QUEUE}'")
    return count
