# app/services/campaigns/tracking_service.py
"""
Open/click/unsubscribe recording behind the public tracking endpoints.

Opens are idempotent per send. Clicks are recorded on every hit. Hits on a
send older than TRACKING_TOKEN_EXPIRY_DAYS are accepted but not recorded.
"""

import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.crud.crud_campaign_send import campaign_send as campaign_send_crud
from app.crud.crud_tracking import tracking_event as tracking_event_crud
from app.crud.crud_tracking import tracking_link as tracking_link_crud
from app.models.campaign_send import CampaignSend
from app.models.contact import Contact
from app.utils.time import ensure_utc, utcnow

logger = logging.getLogger(__name__)


class OpenOutcome(str, Enum):
    RECORDED = "recorded"
    DUPLICATE = "duplicate"
    EXPIRED = "expired"
    NOT_FOUND = "not_found"


def is_token_expired(
    send: CampaignSend, now: Optional[datetime] = None, expiry_days: Optional[int] = None
) -> bool:
    """Age is measured from sent_at; an unsent send or no configured expiry never expires."""
    days = settings.TRACKING_TOKEN_EXPIRY_DAYS if expiry_days is None else expiry_days
    if not days or days <= 0 or send.sent_at is None:
        return False
    return (now or utcnow()) - ensure_utc(send.sent_at) > timedelta(days=days)


def record_open(
    db: Session,
    *,
    token: str,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    now: Optional[datetime] = None,
) -> OpenOutcome:
    send = campaign_send_crud.get_by_token(db, token)
    if send is None:
        return OpenOutcome.NOT_FOUND
    if is_token_expired(send, now):
        return OpenOutcome.EXPIRED
    if tracking_event_crud.has_open(db, campaign_send_id=send.id):
        return OpenOutcome.DUPLICATE
    # The unique index settles a race between two concurrent first opens
    if not tracking_event_crud.create_open(
        db, send=send, ip_address=ip_address, user_agent=user_agent
    ):
        return OpenOutcome.DUPLICATE
    return OpenOutcome.RECORDED


def record_click(
    db: Session,
    *,
    link_id: str,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Optional[str]:
    """Return the destination URL (None for an unknown link). Expired hits still redirect."""
    link = tracking_link_crud.get(db, link_id)
    if link is None:
        return None
    url = link.url
    send = link.campaign_send
    if send is None or is_token_expired(send, now):
        return url
    try:
        tracking_event_crud.create_click(
            db, send=send, link=link, ip_address=ip_address, user_agent=user_agent
        )
    except Exception as e:
        # The recipient is redirected even when the click cannot be stored
        db.rollback()
        logger.error(f"Failed to record click on link {link_id}: {e}", exc_info=True)
    return url


def unsubscribe(db: Session, *, token: str, now: Optional[datetime] = None) -> bool:
    """Mark the contact owning the unsubscribe token as unsubscribed. Idempotent."""
    contact = db.query(Contact).filter(Contact.unsubscribe_token == token).first()
    if contact is None:
        return False
    if contact.unsubscribed_at is None:
        contact.unsubscribed_at = now or utcnow()
        db.commit()
        logger.info(f"Contact {contact.id} unsubscribed")
    return True
