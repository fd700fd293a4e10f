# app/models/campaign_send.py
"""
CampaignSend model - one unit of delivery work.

Recipient identity is captured when the batch is enqueued. After that the
row only changes to set exactly one terminal marker (sent_at or failed_at)
and the provider message id.
"""

import uuid
from sqlalchemy import Column, String, Text, DateTime, ForeignKey, func
from sqlalchemy.orm import relationship
from app.db.base_class import Base


class CampaignSend(Base):
    __tablename__ = "campaign_sends"

    id = Column(String, primary_key=True, default=lambda: f"csnd_{uuid.uuid4().hex[:12]}")
    campaign_id = Column(
        String, ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False, index=True
    )
    lead_id = Column(String, ForeignKey("leads.id", ondelete="SET NULL"), nullable=True, index=True)
    contact_id = Column(
        String, ForeignKey("contacts.id", ondelete="SET NULL"), nullable=True, index=True
    )
    email = Column(String(255), nullable=False)
    variant = Column(String(1), nullable=True)  # 'A', 'B' or NULL without a split
    tracking_token = Column(String(64), nullable=False, unique=True)

    message_id = Column(String(500), nullable=True)
    sent_at = Column(DateTime(timezone=True), nullable=True, index=True)
    failed_at = Column(DateTime(timezone=True), nullable=True)
    last_error = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    campaign = relationship("Campaign", back_populates="sends")
    lead = relationship("Lead")
    contact = relationship("Contact")
    links = relationship("TrackingLink", back_populates="campaign_send", passive_deletes=True)
