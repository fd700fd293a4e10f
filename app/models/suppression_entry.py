# app/models/suppression_entry.py
import uuid
from sqlalchemy import Column, String, DateTime, UniqueConstraint, func
from app.db.base_class import Base


class SuppressionEntry(Base):
    """Block-list entry. Values are stored trimmed and lower-cased."""

    __tablename__ = "suppression_entries"
    __table_args__ = (UniqueConstraint("type", "value", name="uq_suppression_type_value"),)

    id = Column(String, primary_key=True, default=lambda: f"supp_{uuid.uuid4().hex[:12]}")
    type = Column(String(10), nullable=False)  # 'email' | 'domain'
    value = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
