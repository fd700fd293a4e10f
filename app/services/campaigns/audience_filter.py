# app/services/campaigns/audience_filter.py
"""
Suppression and frequency-cap filtering applied to every resolved audience
before variant assignment.

1. Suppression: drop recipients whose lower-cased email, or whose domain,
   is on the block list.
2. Frequency cap: drop contacts that already received `max_per_day` or more
   delivered sends in the trailing 24 hours. A non-positive limit disables
   the cap.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from app.core.config import settings
from app.crud.crud_campaign_send import campaign_send as campaign_send_crud
from app.crud.crud_suppression import suppression as suppression_crud
from app.services.campaigns.segment_resolver import Recipient
from app.utils.time import utcnow

logger = logging.getLogger(__name__)


def email_domain(email: str) -> str:
    return email.rsplit("@", 1)[-1] if "@" in email else ""


def apply_suppression(db: Session, recipients: Sequence[Recipient]) -> List[Recipient]:
    if not recipients:
        return []
    emails = {r.email.lower() for r in recipients}
    domains = {email_domain(e) for e in emails} - {""}
    blocked_emails, blocked_domains = suppression_crud.find_matches(
        db, emails=emails, domains=domains
    )
    if not blocked_emails and not blocked_domains:
        return list(recipients)

    kept = [
        r
        for r in recipients
        if r.email.lower() not in blocked_emails
        and email_domain(r.email.lower()) not in blocked_domains
    ]
    logger.info(f"Suppression list removed {len(recipients) - len(kept)} recipients")
    return kept


def apply_frequency_cap(
    db: Session,
    recipients: Sequence[Recipient],
    *,
    max_per_day: int,
    now: datetime,
) -> List[Recipient]:
    if max_per_day <= 0 or not recipients:
        return list(recipients)
    counts = campaign_send_crud.count_recent_by_contact(
        db,
        contact_ids=[r.contact_id for r in recipients],
        since=now - timedelta(hours=24),
    )
    kept = [r for r in recipients if counts.get(r.contact_id, 0) < max_per_day]
    if len(kept) != len(recipients):
        logger.info(
            f"Frequency cap ({max_per_day}/24h) removed {len(recipients) - len(kept)} recipients"
        )
    return kept


def filter_recipients(
    db: Session,
    recipients: Sequence[Recipient],
    *,
    max_per_contact_per_day: Optional[int] = None,
    now: Optional[datetime] = None,
) -> List[Recipient]:
    limit = (
        settings.EMAIL_MAX_PER_CONTACT_PER_DAY
        if max_per_contact_per_day is None
        else max_per_contact_per_day
    )
    kept = apply_suppression(db, recipients)
    return apply_frequency_cap(db, kept, max_per_day=limit, now=now or utcnow())
