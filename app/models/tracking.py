# app/models/tracking.py
import uuid
from sqlalchemy import (
    Column, String, DateTime, ForeignKey, Text, Index, UniqueConstraint, text, func,
)
from sqlalchemy.orm import relationship
from app.db.base_class import Base


class TrackingLink(Base):
    """A rewritten outbound URL, one per (send, url)."""

    __tablename__ = "tracking_links"
    __table_args__ = (
        UniqueConstraint("campaign_send_id", "url", name="uq_tracking_link_send_url"),
    )

    id = Column(String, primary_key=True, default=lambda: f"tlnk_{uuid.uuid4().hex[:12]}")
    campaign_send_id = Column(
        String, ForeignKey("campaign_sends.id", ondelete="CASCADE"), nullable=False, index=True
    )
    url = Column(Text, nullable=False)

    campaign_send = relationship("CampaignSend", back_populates="links")


class EmailTrackingEvent(Base):
    """Open or click. At most one open per send; clicks are never deduplicated."""

    __tablename__ = "email_tracking_events"
    __table_args__ = (
        Index(
            "uq_tracking_event_open_per_send",
            "campaign_send_id",
            unique=True,
            postgresql_where=text("type = 'open'"),
            sqlite_where=text("type = 'open'"),
        ),
    )

    id = Column(String, primary_key=True, default=lambda: f"tevt_{uuid.uuid4().hex[:12]}")
    type = Column(String(10), nullable=False)  # 'open' | 'click'
    campaign_send_id = Column(
        String, ForeignKey("campaign_sends.id", ondelete="CASCADE"), nullable=False, index=True
    )
    tracking_link_id = Column(
        String, ForeignKey("tracking_links.id", ondelete="SET NULL"), nullable=True
    )
    contact_id = Column(String, nullable=True)
    lead_id = Column(String, nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    tracking_link = relationship("TrackingLink")
