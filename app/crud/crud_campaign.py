# app/crud/crud_campaign.py
"""
CRUD operations for campaigns.

Status changes that race with other writers (the scheduler and operators
both start sends) go through `transition_status`, a conditional UPDATE
that only succeeds when the row is still in the expected status.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from app.models.campaign import Campaign
from app.schemas.campaign import CampaignStatus


class CRUDCampaign:
    def get(self, db: Session, campaign_id: str) -> Optional[Campaign]:
        return db.query(Campaign).filter(Campaign.id == campaign_id).first()

    def get_multi(
        self,
        db: Session,
        *,
        status: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Campaign]:
        query = db.query(Campaign)
        if status:
            query = query.filter(Campaign.status == status)
        return query.order_by(Campaign.created_at.desc()).offset(skip).limit(limit).all()

    def create(self, db: Session, *, data: Dict[str, Any]) -> Campaign:
        db_obj = Campaign(**data)
        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        return db_obj

    def update(self, db: Session, *, db_obj: Campaign, data: Dict[str, Any]) -> Campaign:
        for field, value in data.items():
            setattr(db_obj, field, value)
        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        return db_obj

    def remove(self, db: Session, *, db_obj: Campaign) -> None:
        db.delete(db_obj)
        db.commit()

    def get_due_scheduled(self, db: Session, *, now: datetime) -> List[Campaign]:
        return (
            db.query(Campaign)
            .filter(
                Campaign.status == CampaignStatus.SCHEDULED.value,
                Campaign.scheduled_at.isnot(None),
                Campaign.scheduled_at <= now,
            )
            .order_by(Campaign.scheduled_at.asc())
            .all()
        )

    def get_sending(self, db: Session) -> List[Campaign]:
        return db.query(Campaign).filter(Campaign.status == CampaignStatus.SENDING.value).all()

    def transition_status(
        self,
        db: Session,
        *,
        campaign_id: str,
        from_status: str,
        to_status: str,
        values: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Move a campaign between statuses if it is still in `from_status`.

        Does not commit; the caller owns the transaction so the transition
        can be committed together with the rows it guards.
        """
        updated = (
            db.query(Campaign)
            .filter(Campaign.id == campaign_id, Campaign.status == from_status)
            .update({"status": to_status, **(values or {})}, synchronize_session=False)
        )
        return updated == 1


campaign = CRUDCampaign()
