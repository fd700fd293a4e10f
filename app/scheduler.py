# app/scheduler.py
"""
Periodic campaign jobs.

Both jobs rescan the database on every tick, so a restart never loses a
scheduled campaign: a campaign that came due while the process was down is
picked up on the first tick after start.
"""

import logging
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MISSED

from app.background_tasks.campaign_tasks import promote_due_campaigns, finalize_sending_campaigns
from app.core.config import settings

logger = logging.getLogger(__name__)

CAMPAIGN_JOBS = (
    ("promote_due_campaigns", "Start due scheduled campaigns", promote_due_campaigns),
    ("finalize_sending_campaigns", "Mark drained campaigns as sent", finalize_sending_campaigns),
)

scheduler = None


def _job_listener(event):
    if event.code == EVENT_JOB_MISSED:
        logger.warning(
            f"Campaign job {event.job_id} missed its run at {event.scheduled_run_time}"
        )
        return
    logger.error(
        f"Campaign job {event.job_id} raised: {event.exception!r}\n{event.traceback or ''}"
    )


def init_scheduler():
    """Start the campaign jobs. Safe to call twice; the second call is a no-op."""
    global scheduler

    if scheduler is not None:
        logger.warning("Campaign scheduler already running; not starting another")
        return scheduler

    interval = settings.SCHEDULER_INTERVAL_SECONDS
    scheduler = BackgroundScheduler(
        timezone="UTC",
        job_defaults={
            "coalesce": True,
            "max_instances": 1,
            "misfire_grace_time": interval,
        },
    )
    for job_id, name, func in CAMPAIGN_JOBS:
        scheduler.add_job(
            func=func,
            trigger=IntervalTrigger(seconds=interval),
            id=job_id,
            name=name,
            replace_existing=True,
        )
    scheduler.add_listener(_job_listener, EVENT_JOB_ERROR | EVENT_JOB_MISSED)
    scheduler.start()

    logger.info(
        f"Campaign scheduler started with {len(CAMPAIGN_JOBS)} jobs every {interval}s"
    )
    return scheduler


def shutdown_scheduler():
    global scheduler

    if scheduler is None:
        return
    scheduler.shutdown(wait=True)
    scheduler = None
    logger.info("Campaign scheduler stopped")


def get_scheduler_status():
    if scheduler is None:
        return {"status": "not_initialized", "jobs": []}

    return {
        "status": "running" if scheduler.running else "stopped",
        "jobs": [
            {
                "id": job.id,
                "name": job.name,
                "next_run_time": job.next_run_time.isoformat() if job.next_run_time else None,
            }
            for job in scheduler.get_jobs()
        ],
    }
