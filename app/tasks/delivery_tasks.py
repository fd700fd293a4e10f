# app/tasks/delivery_tasks.py
"""
Celery task that delivers one CampaignSend.

Retry policy: up to CAMPAIGN_SEND_MAX_ATTEMPTS attempts with an exponential
countdown (CAMPAIGN_SEND_BACKOFF_SECONDS * 2^retry). Earlier attempts only
log a warning and re-queue; the final attempt records failed_at/last_error
on the send. A soft time limit bounds a hung provider call and counts as a
transient failure.
"""

import logging
from typing import Optional

from app.core.config import settings
from app.db.session import SessionLocal
from app.services.campaigns.delivery import deliver_campaign_send, mark_send_failed
from app.worker import celery_app

logger = logging.getLogger(__name__)

MAX_RETRIES = max(settings.CAMPAIGN_SEND_MAX_ATTEMPTS - 1, 0)


def retry_countdown(retries: int) -> int:
    return settings.CAMPAIGN_SEND_BACKOFF_SECONDS * (2 ** retries)


def _rate_limit() -> Optional[str]:
    if settings.EMAIL_THROTTLE_PER_MINUTE and settings.EMAIL_THROTTLE_PER_MINUTE > 0:
        return f"{settings.EMAIL_THROTTLE_PER_MINUTE}/m"
    return None


@celery_app.task(
    bind=True,
    name="campaigns.deliver_send",
    max_retries=MAX_RETRIES,
    rate_limit=_rate_limit(),
    soft_time_limit=settings.CAMPAIGN_SEND_TIMEOUT_SECONDS,
    time_limit=settings.CAMPAIGN_SEND_TIMEOUT_SECONDS + 15,
    acks_late=True,
)
def deliver_campaign_send_task(self, campaign_send_id: str, user_id: Optional[str] = None):
    db = SessionLocal()
    try:
        outcome = deliver_campaign_send(db, campaign_send_id, user_id=user_id)
        return outcome.value
    except Exception as exc:
        db.rollback()
        attempt = self.request.retries + 1
        if self.request.retries >= self.max_retries:
            logger.error(
                f"Campaign send {campaign_send_id} failed permanently after {attempt} attempts: {exc}"
            )
            mark_send_failed(db, campaign_send_id, str(exc) or exc.__class__.__name__)
            raise

        countdown = retry_countdown(self.request.retries)
        logger.warning(
            f"Campaign send {campaign_send_id} attempt {attempt} failed, retrying in {countdown}s: {exc}"
        )
        raise self.retry(exc=exc, countdown=countdown)
    finally:
        db.close()
