# app/services/campaigns/__init__.py
from .exceptions import CampaignValidationError, NotFoundError, SegmentValidationError
from .segment_resolver import Recipient, resolve_recipients
from .send_window import is_within_send_window

__all__ = [
    "CampaignValidationError",
    "NotFoundError",
    "SegmentValidationError",
    "Recipient",
    "resolve_recipients",
    "is_within_send_window",
]
