# app/services/campaigns/delivery.py
"""
Per-send delivery job body, executed by the Celery delivery task.

Outcomes:
- A send that already carries sent_at (or failed_at) is a no-op, so a
  redelivered or duplicated job never transmits twice.
- A send whose lead or template vanished after enqueue can never succeed;
  it is closed with failed_at and a descriptive last_error, without raising,
  so it does not burn retries and the campaign can still finalize.
- Transport errors propagate to the task, which retries them.
"""

import logging
from enum import Enum
from typing import Optional

from sqlalchemy.orm import Session

from app.crud.crud_campaign_send import campaign_send as campaign_send_crud
from app.crud.crud_tracking import tracking_link as tracking_link_crud
from app.models.activity import Activity
from app.models.campaign_send import CampaignSend
from app.schemas.campaign import parse_ab_config
from app.services.campaigns.mail_transport import MailTransport, OutboundMessage, get_mail_transport
from app.services.campaigns.rendering import (
    append_tracking_pixel,
    build_lead_vars,
    click_url,
    first_present,
    render_template,
    rewrite_links,
    select_content,
    unsubscribe_url,
)
from app.utils.time import utcnow

logger = logging.getLogger(__name__)


class DeliveryOutcome(str, Enum):
    SENT = "sent"
    ALREADY_SENT = "already_sent"
    ALREADY_FAILED = "already_failed"
    NOT_FOUND = "not_found"
    SKIPPED = "skipped"
    DUPLICATE = "duplicate"


def mark_send_failed(db: Session, campaign_send_id: str, error: str) -> bool:
    marked = campaign_send_crud.mark_failed(
        db, send_id=campaign_send_id, failed_at=utcnow(), error=error
    )
    if marked:
        logger.error(f"Campaign send {campaign_send_id} marked failed: {error}")
    return marked


def _skip(db: Session, send: CampaignSend, reason: str) -> DeliveryOutcome:
    logger.warning(f"Skipping campaign send {send.id}: {reason}")
    campaign_send_crud.mark_failed(db, send_id=send.id, failed_at=utcnow(), error=reason)
    return DeliveryOutcome.SKIPPED


def _record_activity(
    db: Session, send: CampaignSend, user_id: Optional[str], subject: str, body: str
) -> None:
    db.add(
        Activity(
            lead_id=send.lead_id,
            contact_id=send.contact_id,
            user_id=user_id,
            type="email",
            subject=subject,
            body=body or None,
            outcome="sent",
            completed_at=utcnow(),
            activity_metadata={"campaign_id": send.campaign_id, "campaign_send_id": send.id},
        )
    )
    db.commit()


def deliver_campaign_send(
    db: Session,
    campaign_send_id: str,
    user_id: Optional[str] = None,
    transport: Optional[MailTransport] = None,
) -> DeliveryOutcome:
    send = campaign_send_crud.get_for_delivery(db, campaign_send_id)
    if send is None:
        logger.warning(f"Campaign send {campaign_send_id} not found, dropping job")
        return DeliveryOutcome.NOT_FOUND
    if send.sent_at is not None:
        logger.info(f"Campaign send {campaign_send_id} already sent, skipping")
        return DeliveryOutcome.ALREADY_SENT
    if send.failed_at is not None:
        return DeliveryOutcome.ALREADY_FAILED

    campaign = send.campaign
    lead = send.lead
    if lead is None or lead.deleted_at is not None:
        return _skip(db, send, "Lead no longer exists")
    template = campaign.template
    if template is None:
        return _skip(db, send, "Email template no longer exists")

    content = select_content(template, parse_ab_config(campaign.ab_config), send.variant)
    contact = send.contact
    unsub_url = unsubscribe_url(contact.unsubscribe_token) if contact else None
    rendered = render_template(content, build_lead_vars(lead, unsub_url))

    html = rewrite_links(
        rendered.html,
        lambda url: click_url(
            tracking_link_crud.get_or_create(db, campaign_send_id=send.id, url=url).id
        ),
        skip_urls=(unsub_url,) if unsub_url else (),
    )
    html = append_tracking_pixel(html, send.tracking_token)

    message = OutboundMessage(
        to=send.email,
        subject=rendered.subject,
        html=html,
        text=rendered.text,
        from_name=first_present(campaign.from_name, template.from_name) or None,
        from_email=first_present(campaign.from_email, template.from_email) or None,
        reply_to=campaign.reply_to,
        list_unsubscribe_url=unsub_url,
    )
    send_id = send.id
    # Tracking links must exist before the recipient can click them
    db.commit()

    message_id = (transport or get_mail_transport()).send(message)

    if not campaign_send_crud.mark_sent(db, send_id=send_id, sent_at=utcnow(), message_id=message_id):
        logger.warning(f"Campaign send {send_id} was completed by another worker")
        return DeliveryOutcome.DUPLICATE

    send = campaign_send_crud.get(db, send_id)
    _record_activity(db, send, user_id, rendered.subject, rendered.text)
    logger.info(f"Campaign send {send_id} delivered to {send.email} (message {message_id})")
    return DeliveryOutcome.SENT
