# app/models/segment.py
"""
Segment model - a saved audience definition.

`filters` holds the predicate document validated by
`app.schemas.segment.SegmentFilter`. A segment may name another segment
whose resolved contacts are removed from its own audience.
"""

import uuid
from sqlalchemy import Column, String, DateTime, ForeignKey, JSON, text, func
from app.db.base_class import Base


class Segment(Base):
    __tablename__ = "segments"

    id = Column(String, primary_key=True, default=lambda: f"seg_{uuid.uuid4().hex[:12]}")
    name = Column(String(200), nullable=False)
    type = Column(String(20), nullable=False, server_default=text("'dynamic'"))
    # Options: 'static', 'dynamic'
    filters = Column(JSON, nullable=False, default=dict)
    organization_id = Column(String, ForeignKey("organizations.id"), nullable=True)
    exclude_segment_id = Column(String, ForeignKey("segments.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )
