# app/models/organization.py
import uuid
from sqlalchemy import Column, String, DateTime, func
from app.db.base_class import Base


class Organization(Base):
    __tablename__ = "organizations"

    id = Column(String, primary_key=True, default=lambda: f"org_{uuid.uuid4().hex[:12]}")
    name = Column(String(255), nullable=False)
    industry = Column(String(120), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
