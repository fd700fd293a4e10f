# app/crud/crud_campaign_send.py
"""
CRUD operations for campaign sends.

A send row is created once per recipient when a batch is enqueued and only
ever receives one terminal marker afterwards. Both markers are written with
conditional UPDATEs so a redelivered job can never overwrite the other.
"""

import secrets
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from app.models.campaign import Campaign
from app.models.campaign_send import CampaignSend
from app.models.lead import Lead

# Keeps IN (...) lists well under driver parameter limits
_CHUNK_SIZE = 500


def generate_tracking_token() -> str:
    return secrets.token_hex(16)


def _chunks(values: Sequence[str], size: int = _CHUNK_SIZE) -> Iterable[Sequence[str]]:
    for start in range(0, len(values), size):
        yield values[start:start + size]


class CRUDCampaignSend:
    def get(self, db: Session, send_id: str) -> Optional[CampaignSend]:
        return db.query(CampaignSend).filter(CampaignSend.id == send_id).first()

    def get_for_delivery(self, db: Session, send_id: str) -> Optional[CampaignSend]:
        """Load a send with everything the renderer needs in one round trip."""
        return (
            db.query(CampaignSend)
            .options(
                joinedload(CampaignSend.campaign).joinedload(Campaign.template),
                joinedload(CampaignSend.lead).joinedload(Lead.organization),
                joinedload(CampaignSend.lead).joinedload(Lead.primary_contact),
                joinedload(CampaignSend.lead).joinedload(Lead.assigned_to),
                joinedload(CampaignSend.contact),
            )
            .filter(CampaignSend.id == send_id)
            .first()
        )

    def get_by_token(self, db: Session, token: str) -> Optional[CampaignSend]:
        return db.query(CampaignSend).filter(CampaignSend.tracking_token == token).first()

    def get_by_campaign(
        self,
        db: Session,
        campaign_id: str,
        *,
        variant: Optional[str] = None,
        sent_only: bool = False,
    ) -> List[CampaignSend]:
        query = db.query(CampaignSend).filter(CampaignSend.campaign_id == campaign_id)
        if variant:
            query = query.filter(CampaignSend.variant == variant)
        if sent_only:
            query = query.filter(CampaignSend.sent_at.isnot(None))
        return query.order_by(CampaignSend.sent_at.asc(), CampaignSend.created_at.asc()).all()

    def get_failed(self, db: Session, campaign_id: str) -> List[CampaignSend]:
        return (
            db.query(CampaignSend)
            .filter(CampaignSend.campaign_id == campaign_id, CampaignSend.failed_at.isnot(None))
            .order_by(CampaignSend.failed_at.desc())
            .all()
        )

    def add_batch(
        self,
        db: Session,
        *,
        campaign_id: str,
        rows: Iterable[dict],
    ) -> List[CampaignSend]:
        """
        Stage a batch of sends with fresh tracking tokens.

        Does not commit; the caller commits the batch together with the
        campaign status change so both land or neither does.
        """
        sends = [
            CampaignSend(
                campaign_id=campaign_id,
                lead_id=row["lead_id"],
                contact_id=row["contact_id"],
                email=row["email"],
                variant=row.get("variant"),
                tracking_token=generate_tracking_token(),
            )
            for row in rows
        ]
        db.add_all(sends)
        db.flush()
        return sends

    def mark_sent(
        self,
        db: Session,
        *,
        send_id: str,
        sent_at: datetime,
        message_id: Optional[str],
    ) -> bool:
        """Set sent_at only if no terminal marker exists yet. Returns True if this call won."""
        updated = (
            db.query(CampaignSend)
            .filter(
                CampaignSend.id == send_id,
                CampaignSend.sent_at.is_(None),
                CampaignSend.failed_at.is_(None),
            )
            .update(
                {"sent_at": sent_at, "message_id": message_id, "last_error": None},
                synchronize_session=False,
            )
        )
        db.commit()
        return updated == 1

    def mark_failed(
        self,
        db: Session,
        *,
        send_id: str,
        failed_at: datetime,
        error: str,
    ) -> bool:
        """Set failed_at only if no terminal marker exists yet. Returns True if this call won."""
        updated = (
            db.query(CampaignSend)
            .filter(
                CampaignSend.id == send_id,
                CampaignSend.sent_at.is_(None),
                CampaignSend.failed_at.is_(None),
            )
            .update(
                {"failed_at": failed_at, "last_error": error[:2000]},
                synchronize_session=False,
            )
        )
        db.commit()
        return updated == 1

    def count_pending(self, db: Session, campaign_id: str) -> int:
        """Sends that have neither a sent_at nor a failed_at marker."""
        return (
            db.query(func.count(CampaignSend.id))
            .filter(
                CampaignSend.campaign_id == campaign_id,
                CampaignSend.sent_at.is_(None),
                CampaignSend.failed_at.is_(None),
            )
            .scalar()
            or 0
        )

    def count_by_campaign(self, db: Session, campaign_id: str) -> int:
        return (
            db.query(func.count(CampaignSend.id))
            .filter(CampaignSend.campaign_id == campaign_id)
            .scalar()
            or 0
        )

    def count_recent_by_contact(
        self,
        db: Session,
        *,
        contact_ids: Sequence[str],
        since: datetime,
    ) -> Dict[str, int]:
        """Number of delivered sends per contact with sent_at >= since."""
        counts: Dict[str, int] = {}
        unique_ids = list(dict.fromkeys(contact_ids))
        for chunk in _chunks(unique_ids):
            rows = (
                db.query(CampaignSend.contact_id, func.count(CampaignSend.id))
                .filter(
                    CampaignSend.contact_id.in_(chunk),
                    CampaignSend.sent_at.isnot(None),
                    CampaignSend.sent_at >= since,
                )
                .group_by(CampaignSend.contact_id)
                .all()
            )
            counts.update({contact_id: count for contact_id, count in rows})
        return counts


campaign_send = CRUDCampaignSend()
