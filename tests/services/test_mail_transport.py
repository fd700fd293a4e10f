import pytest
from unittest.mock import patch

from app.core.config import settings
from app.services.campaigns.mail_transport import MailTransportError, OutboundMessage, ResendTransport

MESSAGE = OutboundMessage(
    to="ada@example.com",
    subject="Hello",
    html="<p>Hello</p>",
    text="Hello",
    from_name="Sales",
    from_email="sales@example.com",
    reply_to=" replies@example.com ",
    list_unsubscribe_url="https://t.example.com/api/v1/unsubscribe/abc",
)


def test_send_builds_resend_params():
    with patch("app.services.campaigns.mail_transport.resend.Emails.send", return_value={"id": "re_123"}) as send:
        message_id = ResendTransport(api_key="re_test").send(MESSAGE)

    assert message_id == "re_123"
    params = send.call_args[0][0]
    assert params["from"] == "Sales <sales@example.com>"
    assert params["to"] == ["ada@example.com"]
    assert params["text"] == "Hello"
    assert params["reply_to"] == "replies@example.com"
    assert params["headers"]["List-Unsubscribe"] == "<https://t.example.com/api/v1/unsubscribe/abc>"


def test_provider_error_is_wrapped():
    with patch(
        "app.services.campaigns.mail_transport.resend.Emails.send", side_effect=RuntimeError("429 Too Many Requests")
    ):
        with pytest.raises(MailTransportError, match="429"):
            ResendTransport(api_key="re_test").send(MESSAGE)


def test_missing_message_id_is_an_error():
    with patch("app.services.campaigns.mail_transport.resend.Emails.send", return_value={}):
        with pytest.raises(MailTransportError):
            ResendTransport(api_key="re_test").send(MESSAGE)


def test_missing_api_key():
    with patch.object(settings, "RESEND_API_KEY", None):
        with pytest.raises(MailTransportError):
            ResendTransport().send(MESSAGE)
