# app/models/user.py
import uuid
from sqlalchemy import Column, String, Boolean
from app.db.base_class import Base


class User(Base):
    """CRM user. Owns leads and triggers campaign sends."""

    __tablename__ = "users"

    id = Column(String, primary_key=True, default=lambda: f"usr_{uuid.uuid4().hex[:12]}")
    name = Column(String(200), nullable=True)
    email = Column(String(255), nullable=False, unique=True)
    is_active = Column(Boolean, nullable=False, default=True)
