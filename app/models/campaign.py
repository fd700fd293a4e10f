# app/models/campaign.py
"""
Campaign model - one bulk send of a template to a segment.

Lifecycle: draft -> scheduled -> sending -> sent. `scheduled -> draft` is
allowed by clearing the schedule; `sent -> sending` only happens when the
remainder of an A/B test is re-targeted at non-openers.
"""

import uuid
from sqlalchemy import Column, String, DateTime, ForeignKey, JSON, text, func
from sqlalchemy.orm import relationship
from app.db.base_class import Base


class Campaign(Base):
    __tablename__ = "campaigns"

    id = Column(String, primary_key=True, default=lambda: f"cmpn_{uuid.uuid4().hex[:12]}")
    name = Column(String(200), nullable=False)
    segment_id = Column(String, ForeignKey("segments.id"), nullable=False, index=True)
    template_id = Column(String, ForeignKey("email_templates.id"), nullable=True)
    channel = Column(String(10), nullable=False, server_default=text("'email'"))

    status = Column(String(20), nullable=False, server_default=text("'draft'"), index=True)
    # Options: 'draft', 'scheduled', 'sending', 'sent'
    scheduled_at = Column(DateTime(timezone=True), nullable=True)
    # Set once, when the first batch is enqueued
    sent_at = Column(DateTime(timezone=True), nullable=True)

    ab_config = Column(JSON, nullable=True)
    schedule_config = Column(JSON, nullable=True)

    from_name = Column(String(200), nullable=True)
    from_email = Column(String(255), nullable=True)
    reply_to = Column(String(255), nullable=True)

    created_by_user_id = Column(String, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    segment = relationship("Segment")
    template = relationship("EmailTemplate")
    sends = relationship("CampaignSend", back_populates="campaign", passive_deletes=True)
