import hashlib
import hmac
import json
from unittest.mock import patch

import httpx

from app.core.config import settings
from app.services.campaigns.webhook_notifier import dispatch, sign_payload


def _client(handler):
    return httpx.Client(transport=httpx.MockTransport(handler))


def test_posts_signed_event_to_every_subscriber():
    received = []

    def handler(request: httpx.Request):
        received.append(request)
        return httpx.Response(200)

    with patch.object(settings, "WEBHOOK_SECRET", "s3cret"):
        delivered = dispatch(
            "campaign.sent",
            {"campaign_id": "cmpn_1", "recipient_count": 3},
            urls=["https://hooks.example.com/a", "https://hooks.example.com/b"],
            client=_client(handler),
        )

    assert delivered == 2
    assert [str(r.url) for r in received] == ["https://hooks.example.com/a", "https://hooks.example.com/b"]
    body = received[0].content
    payload = json.loads(body)
    assert payload["event"] == "campaign.sent"
    assert payload["data"]["recipient_count"] == 3
    expected = "sha256=" + hmac.new(b"s3cret", body, hashlib.sha256).hexdigest()
    assert received[0].headers["X-Webhook-Signature"] == expected


def test_failures_are_counted_not_raised():
    def handler(request: httpx.Request):
        if request.url.path == "/down":
            raise httpx.ConnectError("refused", request=request)
        if request.url.path == "/rejects":
            return httpx.Response(500)
        return httpx.Response(204)

    delivered = dispatch(
        "campaign.sent",
        {},
        urls=["https://h.example.com/down", "https://h.example.com/rejects", "https://h.example.com/ok"],
        client=_client(handler),
    )

    assert delivered == 1


def test_no_subscribers():
    assert dispatch("campaign.sent", {}, urls=[]) == 0


def test_sign_payload_format():
    assert sign_payload(b"{}", "key").startswith("sha256=")
