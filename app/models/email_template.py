# app/models/email_template.py
import uuid
from sqlalchemy import Column, String, Text, DateTime, func
from app.db.base_class import Base


class EmailTemplate(Base):
    __tablename__ = "email_templates"

    id = Column(String, primary_key=True, default=lambda: f"tmpl_{uuid.uuid4().hex[:12]}")
    name = Column(String(200), nullable=False)
    subject = Column(String(500), nullable=True)
    body_html = Column(Text, nullable=True)
    body_text = Column(Text, nullable=True)
    from_name = Column(String(200), nullable=True)
    from_email = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
