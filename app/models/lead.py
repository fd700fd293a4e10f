# app/models/lead.py
"""
Lead model - a sales opportunity owned by a user, optionally tied to an
organization and a primary contact. Campaign audiences are built from leads.
"""

import uuid
from sqlalchemy import (
    Column, String, DateTime, Integer, Numeric, ForeignKey, Table, JSON, func,
)
from sqlalchemy.orm import relationship
from app.db.base_class import Base


lead_tags = Table(
    "lead_tags",
    Base.metadata,
    Column("lead_id", String, ForeignKey("leads.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", String, primary_key=True),
)


class Lead(Base):
    __tablename__ = "leads"

    id = Column(String, primary_key=True, default=lambda: f"lead_{uuid.uuid4().hex[:12]}")
    title = Column(String(255), nullable=False)

    # Pipeline placement
    pipeline_id = Column(String, nullable=True, index=True)
    current_stage_id = Column(String, nullable=True, index=True)

    source = Column(String(120), nullable=True)
    organization_id = Column(String, ForeignKey("organizations.id"), nullable=True, index=True)
    assigned_to_id = Column(String, ForeignKey("users.id"), nullable=True)
    primary_contact_id = Column(String, ForeignKey("contacts.id"), nullable=True, index=True)

    score = Column(Integer, nullable=True)
    utm_source = Column(String(255), nullable=True)
    utm_medium = Column(String(255), nullable=True)
    utm_campaign = Column(String(255), nullable=True)
    custom_fields = Column(JSON, nullable=True)

    next_step = Column(String(500), nullable=True)
    amount = Column(Numeric(14, 2), nullable=True)
    currency = Column(String(3), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    organization = relationship("Organization")
    assigned_to = relationship("User")
    primary_contact = relationship("Contact")
