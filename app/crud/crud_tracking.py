# app/crud/crud_tracking.py
"""
CRUD operations for tracking links and tracking events.

Open events are unique per send (partial unique index); click events are
appended on every hit.
"""

from typing import Dict, List, Optional, Sequence, Set

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.campaign_send import CampaignSend
from app.models.tracking import EmailTrackingEvent, TrackingLink


class CRUDTrackingLink:
    def get(self, db: Session, link_id: str) -> Optional[TrackingLink]:
        return db.query(TrackingLink).filter(TrackingLink.id == link_id).first()

    def get_or_create(self, db: Session, *, campaign_send_id: str, url: str) -> TrackingLink:
        """One link per (send, url). Flushes but does not commit."""
        link = (
            db.query(TrackingLink)
            .filter(TrackingLink.campaign_send_id == campaign_send_id, TrackingLink.url == url)
            .first()
        )
        if link:
            return link
        link = TrackingLink(campaign_send_id=campaign_send_id, url=url)
        db.add(link)
        db.flush()
        return link

    def get_by_campaign(self, db: Session, campaign_id: str) -> List[TrackingLink]:
        return (
            db.query(TrackingLink)
            .join(CampaignSend, TrackingLink.campaign_send_id == CampaignSend.id)
            .filter(CampaignSend.campaign_id == campaign_id)
            .all()
        )


class CRUDTrackingEvent:
    def has_open(self, db: Session, *, campaign_send_id: str) -> bool:
        return (
            db.query(EmailTrackingEvent.id)
            .filter(
                EmailTrackingEvent.campaign_send_id == campaign_send_id,
                EmailTrackingEvent.type == "open",
            )
            .first()
            is not None
        )

    def create_open(
        self,
        db: Session,
        *,
        send: CampaignSend,
        ip_address: Optional[str],
        user_agent: Optional[str],
    ) -> bool:
        """Insert the open event. Returns False if one already existed."""
        db.add(
            EmailTrackingEvent(
                type="open",
                campaign_send_id=send.id,
                contact_id=send.contact_id,
                lead_id=send.lead_id,
                ip_address=ip_address,
                user_agent=user_agent,
            )
        )
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            return False
        return True

    def create_click(
        self,
        db: Session,
        *,
        send: CampaignSend,
        link: TrackingLink,
        ip_address: Optional[str],
        user_agent: Optional[str],
    ) -> EmailTrackingEvent:
        event = EmailTrackingEvent(
            type="click",
            campaign_send_id=send.id,
            tracking_link_id=link.id,
            contact_id=send.contact_id,
            lead_id=send.lead_id,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        db.add(event)
        db.commit()
        db.refresh(event)
        return event

    def send_ids_with_event(
        self, db: Session, *, campaign_id: str, type: str
    ) -> Set[str]:
        rows = (
            db.query(EmailTrackingEvent.campaign_send_id)
            .join(CampaignSend, EmailTrackingEvent.campaign_send_id == CampaignSend.id)
            .filter(CampaignSend.campaign_id == campaign_id, EmailTrackingEvent.type == type)
            .distinct()
            .all()
        )
        return {send_id for (send_id,) in rows}

    def clicks_for_links(
        self, db: Session, *, link_ids: Sequence[str]
    ) -> Dict[str, List[EmailTrackingEvent]]:
        if not link_ids:
            return {}
        events = (
            db.query(EmailTrackingEvent)
            .filter(
                EmailTrackingEvent.tracking_link_id.in_(list(link_ids)),
                EmailTrackingEvent.type == "click",
            )
            .order_by(EmailTrackingEvent.created_at.asc())
            .all()
        )
        grouped: Dict[str, List[EmailTrackingEvent]] = {}
        for event in events:
            grouped.setdefault(event.tracking_link_id, []).append(event)
        return grouped

    def count_by_type(self, db: Session, *, campaign_id: str, type: str) -> int:
        """Distinct sends with at least one event of the given type."""
        return (
            db.query(func.count(func.distinct(EmailTrackingEvent.campaign_send_id)))
            .join(CampaignSend, EmailTrackingEvent.campaign_send_id == CampaignSend.id)
            .filter(CampaignSend.campaign_id == campaign_id, EmailTrackingEvent.type == type)
            .scalar()
            or 0
        )


tracking_link = CRUDTrackingLink()
tracking_event = CRUDTrackingEvent()
