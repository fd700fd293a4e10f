# app/crud/crud_segment.py
"""CRUD operations for segments."""

from typing import List, Optional

from sqlalchemy.orm import Session

from app.models.campaign import Campaign
from app.models.segment import Segment
from app.schemas.segment import SegmentCreate, SegmentUpdate


class CRUDSegment:
    def get(self, db: Session, segment_id: str) -> Optional[Segment]:
        return db.query(Segment).filter(Segment.id == segment_id).first()

    def get_multi(
        self,
        db: Session,
        *,
        organization_id: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Segment]:
        query = db.query(Segment)
        if organization_id:
            query = query.filter(Segment.organization_id == organization_id)
        return query.order_by(Segment.created_at.desc()).offset(skip).limit(limit).all()

    def create(self, db: Session, *, obj_in: SegmentCreate) -> Segment:
        db_obj = Segment(
            name=obj_in.name,
            type=obj_in.type,
            organization_id=obj_in.organization_id,
            exclude_segment_id=obj_in.exclude_segment_id,
            filters=obj_in.filters.model_dump(mode="json"),
        )
        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        return db_obj

    def update(self, db: Session, *, db_obj: Segment, obj_in: SegmentUpdate) -> Segment:
        update_data = obj_in.model_dump(exclude_unset=True)
        if "filters" in update_data:
            update_data["filters"] = obj_in.filters.model_dump(mode="json") if obj_in.filters else {}
        for field, value in update_data.items():
            setattr(db_obj, field, value)
        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        return db_obj

    def is_referenced(self, db: Session, *, segment_id: str) -> bool:
        """True when a campaign targets the segment or another segment excludes it."""
        in_campaign = db.query(Campaign.id).filter(Campaign.segment_id == segment_id).first()
        in_exclusion = (
            db.query(Segment.id)
            .filter(Segment.exclude_segment_id == segment_id, Segment.id != segment_id)
            .first()
        )
        return in_campaign is not None or in_exclusion is not None

    def remove(self, db: Session, *, db_obj: Segment) -> None:
        db.delete(db_obj)
        db.commit()


segment = CRUDSegment()
