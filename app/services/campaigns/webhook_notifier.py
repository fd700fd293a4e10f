# app/services/campaigns/webhook_notifier.py
"""
Outbound webhook notifier.

Posts `{event, timestamp, data}` JSON to every configured URL. When a secret
is configured the body is signed with HMAC-SHA256 in `X-Webhook-Signature`.
Delivery is best-effort: failures are logged and never raised.
"""

import hashlib
import hmac
import json
import logging
from typing import Any, Dict, List, Optional

import httpx

from app.core.config import settings
from app.utils.time import utcnow

logger = logging.getLogger(__name__)


def sign_payload(body: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def dispatch(
    event_name: str,
    data: Dict[str, Any],
    *,
    urls: Optional[List[str]] = None,
    client: Optional[httpx.Client] = None,
) -> int:
    """Deliver an event to every subscriber. Returns the number of 2xx responses."""
    targets = settings.WEBHOOK_URLS if urls is None else urls
    if not targets:
        return 0

    body = json.dumps(
        {"event": event_name, "timestamp": utcnow().isoformat(), "data": data},
        default=str,
    ).encode("utf-8")
    headers = {"Content-Type": "application/json", "X-Webhook-Event": event_name}
    if settings.WEBHOOK_SECRET:
        headers["X-Webhook-Signature"] = sign_payload(body, settings.WEBHOOK_SECRET)

    owns_client = client is None
    http = client or httpx.Client(timeout=settings.WEBHOOK_TIMEOUT_SECONDS)
    delivered = 0
    try:
        for url in targets:
            try:
                response = http.post(url, content=body, headers=headers)
                response.raise_for_status()
                delivered += 1
            except httpx.HTTPStatusError as e:
                logger.warning(
                    f"Webhook {event_name} to {url} rejected with {e.response.status_code}"
                )
            except httpx.HTTPError as e:
                logger.error(f"Webhook {event_name} to {url} failed: {e}")
    finally:
        if owns_client:
            http.close()
    return delivered
