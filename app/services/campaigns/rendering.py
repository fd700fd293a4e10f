# app/services/campaigns/rendering.py
"""
Message rendering for campaign sends.

Personalization is literal `{{name}}` token replacement (case-insensitive),
not a template language: campaign bodies are operator-authored HTML and must
never be evaluated.
"""

import re
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from app.core.config import settings
from app.models.lead import Lead
from app.schemas.campaign import ABConfig

_TAG_RE = re.compile(r"<[^>]*>")
_WS_RE = re.compile(r"\s+")
_HREF_RE = re.compile(r"""(href\s*=\s*)(["'])(https?://[^"']+)\2""", re.IGNORECASE)


@dataclass
class MessageContent:
    subject: str
    body_html: str
    body_text: str


@dataclass
class RenderedMessage:
    subject: str
    html: str
    text: str


def first_present(*candidates: Optional[str], default: str = "") -> str:
    """Return the first candidate that is neither None nor empty."""
    for value in candidates:
        if value:
            return value
    return default


def select_content(template, ab_config: Optional[ABConfig], variant: Optional[str]) -> MessageContent:
    """
    Effective subject and body for a send: the variant override when the
    send carries a variant and the A/B config supplies one, else the
    template's default, else an empty string.
    """
    override = ab_config.content_for(variant) if ab_config else None
    return MessageContent(
        subject=first_present(override.subject if override else None, template.subject),
        body_html=first_present(override.body_html if override else None, template.body_html),
        # Variant overrides never carry a text body; a stale one would not match the HTML
        body_text="" if override and override.body_html else (template.body_text or ""),
    )


def _text(value) -> str:
    return "" if value is None else str(value)


def build_lead_vars(lead: Lead, unsubscribe_url: Optional[str] = None) -> Dict[str, str]:
    organization = lead.organization
    contact = lead.primary_contact
    owner = lead.assigned_to

    variables = {
        "leadName": _text(lead.title),
        "company": _text(organization.name if organization else None),
        "CompanyName": _text(organization.name if organization else None),
        "industry": _text(organization.industry if organization else None),
        "Industry": _text(organization.industry if organization else None),
        "assignedTo": _text(owner.name if owner else None),
        "nextStep": _text(lead.next_step),
        "amount": _text(lead.amount),
        "currency": _text(lead.currency),
        "source": _text(lead.source),
        "contactName": contact.full_name if contact else "",
        "contactFirstName": _text(contact.first_name if contact else None),
        "contactLastName": _text(contact.last_name if contact else None),
        "contactEmail": _text(contact.email if contact else None),
        "scheduleMeetingUrl": _text(settings.SCHEDULE_MEETING_URL),
    }
    if unsubscribe_url:
        variables["unsubscribeUrl"] = unsubscribe_url

    for key, value in (lead.custom_fields or {}).items():
        # Built-in variables win over custom fields with the same name
        variables.setdefault(str(key), _text(value))
    return variables


def render_template(content: MessageContent, variables: Dict[str, str]) -> RenderedMessage:
    subject, html, text = content.subject, content.body_html, content.body_text
    lookup: Dict[str, str] = {}
    for key, value in variables.items():
        lookup.setdefault(key.lower(), value)
    if lookup:
        # One pass over the original text; substituted values are never rescanned
        pattern = re.compile(
            r"\{\{(" + "|".join(re.escape(key) for key in lookup) + r")\}\}", re.IGNORECASE
        )

        def _replace(match: re.Match) -> str:
            return lookup[match.group(1).lower()]

        subject = pattern.sub(_replace, subject)
        html = pattern.sub(_replace, html)
        text = pattern.sub(_replace, text)
    if not text and html:
        text = html_to_text(html)
    return RenderedMessage(subject=subject, html=html, text=text)


def html_to_text(html: str) -> str:
    return _WS_RE.sub(" ", _TAG_RE.sub(" ", html)).strip()


def rewrite_links(
    html: str,
    make_tracking_url: Callable[[str], str],
    skip_urls: tuple = (),
) -> str:
    """Replace every absolute http(s) href with the URL returned by `make_tracking_url`."""

    def _replace(match: re.Match) -> str:
        prefix, quote, url = match.group(1), match.group(2), match.group(3)
        if url in skip_urls:
            return match.group(0)
        return f"{prefix}{quote}{make_tracking_url(url)}{quote}"

    return _HREF_RE.sub(_replace, html)


def open_pixel_url(tracking_token: str) -> str:
    return f"{settings.TRACKING_URL}/api/v1/t/open/{tracking_token}"


def click_url(link_id: str) -> str:
    return f"{settings.TRACKING_URL}/api/v1/t/click/{link_id}"


def unsubscribe_url(unsubscribe_token: str) -> str:
    return f"{settings.TRACKING_URL}/api/v1/unsubscribe/{unsubscribe_token}"


def append_tracking_pixel(html: str, tracking_token: str) -> str:
    return (
        (html or "")
        + f'<img src="{open_pixel_url(tracking_token)}" width="1" height="1" alt="" style="display:none" />'
    )
