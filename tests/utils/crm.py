import itertools
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.orm import Session

from app.crud.crud_campaign_send import generate_tracking_token
from app.models.campaign import Campaign
from app.models.campaign_send import CampaignSend
from app.models.contact import Contact
from app.models.email_template import EmailTemplate
from app.models.lead import Lead
from app.models.organization import Organization
from app.models.segment import Segment
from app.models.tracking import EmailTrackingEvent

BASE_TIME = datetime(2026, 1, 1, tzinfo=timezone.utc)
_sequence = itertools.count()


def _next_created_at() -> datetime:
    # Strictly increasing so lead ordering in tests is predictable
    return BASE_TIME + timedelta(seconds=next(_sequence))


def create_random_contact(db: Session, email: Optional[str] = None, **kwargs) -> Contact:
    contact = Contact(
        first_name=kwargs.pop("first_name", "Ada"),
        last_name=kwargs.pop("last_name", "Lovelace"),
        email=email if email is not None else f"{uuid.uuid4().hex[:8]}@example.com",
        **kwargs,
    )
    db.add(contact)
    db.commit()
    db.refresh(contact)
    return contact


def create_random_organization(db: Session, name: str = "Acme Corp", industry: str = "Manufacturing") -> Organization:
    organization = Organization(name=name, industry=industry)
    db.add(organization)
    db.commit()
    db.refresh(organization)
    return organization


def create_random_lead(db: Session, contact: Optional[Contact] = None, **kwargs) -> Lead:
    """Creates a lead with a fresh primary contact. `no_contact=True` leaves it without one."""
    no_contact = kwargs.pop("no_contact", False)
    if contact is None and not no_contact:
        contact = create_random_contact(db)
    lead = Lead(
        title=kwargs.pop("title", "Test Lead"),
        primary_contact_id=contact.id if contact else None,
        created_at=kwargs.pop("created_at", None) or _next_created_at(),
        **kwargs,
    )
    db.add(lead)
    db.commit()
    db.refresh(lead)
    return lead


def create_random_segment(db: Session, filters: Optional[dict] = None, **kwargs) -> Segment:
    segment = Segment(
        name=kwargs.pop("name", "Test Segment"),
        type="dynamic",
        filters=filters if filters is not None else {"predicates": []},
        **kwargs,
    )
    db.add(segment)
    db.commit()
    db.refresh(segment)
    return segment


def create_random_template(db: Session, **kwargs) -> EmailTemplate:
    template = EmailTemplate(
        name=kwargs.pop("name", "Test Template"),
        subject=kwargs.pop("subject", "Hello {{contactFirstName}}"),
        body_html=kwargs.pop(
            "body_html", '<p>Hi {{contactName}}, see <a href="https://example.com/offer">our offer</a></p>'
        ),
        body_text=kwargs.pop("body_text", None),
        **kwargs,
    )
    db.add(template)
    db.commit()
    db.refresh(template)
    return template


def create_random_campaign(
    db: Session,
    segment: Segment,
    template: Optional[EmailTemplate] = None,
    **kwargs,
) -> Campaign:
    campaign = Campaign(
        name=kwargs.pop("name", "Test Campaign"),
        segment_id=segment.id,
        template_id=template.id if template else None,
        channel=kwargs.pop("channel", "email"),
        status=kwargs.pop("status", "draft"),
        created_by_user_id=kwargs.pop("created_by_user_id", "user_123"),
        **kwargs,
    )
    db.add(campaign)
    db.commit()
    db.refresh(campaign)
    return campaign


def create_campaign_send(
    db: Session,
    campaign: Campaign,
    lead: Optional[Lead] = None,
    contact: Optional[Contact] = None,
    **kwargs,
) -> CampaignSend:
    if contact is None and lead is not None and lead.primary_contact_id:
        contact = db.get(Contact, lead.primary_contact_id)
    send = CampaignSend(
        campaign_id=campaign.id,
        lead_id=lead.id if lead else None,
        contact_id=contact.id if contact else None,
        email=kwargs.pop("email", None) or (contact.email if contact else "nobody@example.com"),
        tracking_token=kwargs.pop("tracking_token", None) or generate_tracking_token(),
        **kwargs,
    )
    db.add(send)
    db.commit()
    db.refresh(send)
    return send


def create_open_event(db: Session, send: CampaignSend) -> EmailTrackingEvent:
    event = EmailTrackingEvent(
        type="open",
        campaign_send_id=send.id,
        contact_id=send.contact_id,
        lead_id=send.lead_id,
    )
    db.add(event)
    db.commit()
    db.refresh(event)
    return event
