# app/background_tasks/campaign_tasks.py
"""
Periodic campaign jobs driven by the APScheduler instance in app.scheduler:
- promote_due_campaigns(): start every scheduled campaign whose time has come
- finalize_sending_campaigns(): close campaigns whose sends are all terminal

Both are safe to overlap with each other and with operator actions; every
status change is a conditional update.
"""

import logging

from app.crud.crud_campaign import campaign as campaign_crud
from app.db.session import SessionLocal
from app.services.campaigns.campaign_service import finalize_campaign, start_scheduled_send
from app.utils.time import utcnow

logger = logging.getLogger(__name__)


def promote_due_campaigns():
    """
    Background task: promote due scheduled campaigns to sending.

    A campaign outside its send window stays scheduled and is retried on
    the next tick. A failure on one campaign is logged and does not stop
    the others.
    """
    db = SessionLocal()
    promoted = 0
    try:
        now = utcnow()
        due = campaign_crud.get_due_scheduled(db, now=now)
        for campaign in due:
            campaign_id = campaign.id
            try:
                count = start_scheduled_send(db, campaign=campaign, now=now)
                if count is None:
                    logger.debug(f"Campaign {campaign_id} outside its send window, will retry")
                    continue
                promoted += 1
                logger.info(f"Promoted scheduled campaign {campaign_id} ({count} sends)")
            except Exception as e:
                db.rollback()
                logger.error(f"Failed to start scheduled campaign {campaign_id}: {e}", exc_info=True)
        if promoted:
            logger.info(f"Promoted {promoted} of {len(due)} due campaigns")
    except Exception as e:
        logger.error(f"Error promoting scheduled campaigns: {e}", exc_info=True)
        db.rollback()
    finally:
        db.close()
    return promoted


def finalize_sending_campaigns():
    """Background task: move sending campaigns to sent once every send is terminal."""
    db = SessionLocal()
    finalized = 0
    try:
        for campaign in campaign_crud.get_sending(db):
            campaign_id = campaign.id
            try:
                if finalize_campaign(db, campaign=campaign):
                    finalized += 1
            except Exception as e:
                db.rollback()
                logger.error(f"Failed to finalize campaign {campaign_id}: {e}", exc_info=True)
    except Exception as e:
        logger.error(f"Error finalizing sending campaigns: {e}", exc_info=True)
        db.rollback()
    finally:
        db.close()
    return finalized
