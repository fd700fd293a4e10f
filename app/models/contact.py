# app/models/contact.py
import secrets
import uuid
from sqlalchemy import Column, String, DateTime, func
from app.db.base_class import Base


class Contact(Base):
    __tablename__ = "contacts"

    id = Column(String, primary_key=True, default=lambda: f"cnt_{uuid.uuid4().hex[:12]}")
    first_name = Column(String(120), nullable=True)
    last_name = Column(String(120), nullable=True)
    email = Column(String(255), nullable=True, index=True)

    # Deliverability flags. dnc_at is never overridable by a segment filter.
    unsubscribed_at = Column(DateTime(timezone=True), nullable=True)
    bounced_at = Column(DateTime(timezone=True), nullable=True)
    dnc_at = Column(DateTime(timezone=True), nullable=True)

    # Opaque token embedded in every unsubscribe link sent to this contact
    unsubscribe_token = Column(
        String(64), nullable=False, unique=True, default=lambda: secrets.token_hex(16)
    )

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p).strip()
