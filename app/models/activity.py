# app/models/activity.py
import uuid
from sqlalchemy import Column, String, Text, DateTime, ForeignKey, JSON, func
from app.db.base_class import Base


class Activity(Base):
    """CRM timeline entry. Delivery writes one completed 'email' activity per send."""

    __tablename__ = "activities"

    id = Column(String, primary_key=True, default=lambda: f"act_{uuid.uuid4().hex[:12]}")
    lead_id = Column(String, ForeignKey("leads.id", ondelete="CASCADE"), nullable=False, index=True)
    contact_id = Column(String, ForeignKey("contacts.id", ondelete="SET NULL"), nullable=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=True)
    type = Column(String(30), nullable=False)
    subject = Column(String(500), nullable=True)
    body = Column(Text, nullable=True)
    outcome = Column(String(50), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    # 'metadata' is reserved on declarative classes
    activity_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
