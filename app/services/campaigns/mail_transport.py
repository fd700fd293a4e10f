# app/services/campaigns/mail_transport.py
"""
Mail transport used by the delivery workers.

The transport only transmits an already-rendered message and returns the
provider message id. Any failure raises MailTransportError, which the
delivery task treats as transient and retries.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

import resend

from app.core.config import settings

logger = logging.getLogger(__name__)


class MailTransportError(Exception):
    """Transmission failed; safe to retry."""


@dataclass
class OutboundMessage:
    to: str
    subject: str
    html: str
    text: str
    from_name: Optional[str] = None
    from_email: Optional[str] = None
    reply_to: Optional[str] = None
    list_unsubscribe_url: Optional[str] = None


class MailTransport(ABC):
    @abstractmethod
    def send(self, message: OutboundMessage) -> str:
        """Transmit the message and return the provider message id."""


class ResendTransport(MailTransport):
    def __init__(self, api_key: Optional[str] = None):
        self.api_key = api_key or settings.RESEND_API_KEY

    def _from_header(self, message: OutboundMessage) -> str:
        name = message.from_name or settings.EMAIL_FROM_NAME
        email = message.from_email or f"noreply@{settings.RESEND_FROM_DOMAIN}"
        return f"{name} <{email}>"

    def send(self, message: OutboundMessage) -> str:
        if not self.api_key:
            raise MailTransportError("RESEND_API_KEY is not configured")
        resend.api_key = self.api_key

        params = {
            "from": self._from_header(message),
            "to": [message.to],
            "subject": message.subject,
            "html": message.html,
        }
        if message.text:
            params["text"] = message.text
        if message.reply_to:
            params["reply_to"] = message.reply_to.strip()
        if message.list_unsubscribe_url:
            params["headers"] = {"List-Unsubscribe": f"<{message.list_unsubscribe_url}>"}

        try:
            response = resend.Emails.send(params)
        except Exception as e:
            raise MailTransportError(f"Resend send failed: {e}") from e

        message_id = response.get("id") if response else None
        if not message_id:
            raise MailTransportError("Resend response did not include a message id")
        return message_id


@lru_cache()
def get_mail_transport() -> MailTransport:
    return ResendTransport()
