# app/models/sequence_enrollment.py
import uuid
from sqlalchemy import Column, String, ForeignKey, text
from app.db.base_class import Base


class SequenceEnrollment(Base):
    __tablename__ = "sequence_enrollments"

    id = Column(String, primary_key=True, default=lambda: f"seqe_{uuid.uuid4().hex[:12]}")
    lead_id = Column(String, ForeignKey("leads.id", ondelete="CASCADE"), nullable=False, index=True)
    sequence_id = Column(String, nullable=False, index=True)
    state = Column(String(20), nullable=False, server_default=text("'active'"))
    # Options: 'active', 'paused', 'completed', 'cancelled'
