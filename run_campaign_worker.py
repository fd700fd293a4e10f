#!/usr/bin/env python3
"""
Campaign Delivery Worker Entrypoint

Celery worker that drains the campaign send queue and the webhook queue.
Each job renders one campaign send and hands it to Resend.

Usage:
    python run_campaign_worker.py
"""
import logging
import os
import sys

# Add the app directory to the path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from app.core.config import settings  # noqa: E402
from app.worker import celery_app  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] %(levelname)s [%(name)s] %(message)s",
)


def main():
    queues = f"{settings.CAMPAIGN_SEND_QUEUE},webhooks"
    logging.getLogger(__name__).info(
        f"Starting campaign worker on queues {queues} "
        f"with concurrency {settings.CAMPAIGN_SEND_CONCURRENCY}"
    )
    celery_app.worker_main(
        [
            "worker",
            "--loglevel=INFO",
            "-Q",
            queues,
            f"--concurrency={settings.CAMPAIGN_SEND_CONCURRENCY}",
        ]
    )


if __name__ == "__main__":
    main()
