"""
Tests for the per-send delivery job body.

A fake transport stands in for Resend so that the tests can assert on the
outgoing message and simulate provider failures.
"""

import pytest

from app.models.activity import Activity
from app.models.tracking import TrackingLink
from app.services.campaigns.delivery import DeliveryOutcome, deliver_campaign_send, mark_send_failed
from app.services.campaigns.mail_transport import MailTransport, MailTransportError
from app.utils.time import utcnow
from tests.utils.crm import (
    create_campaign_send,
    create_random_campaign,
    create_random_contact,
    create_random_lead,
    create_random_segment,
    create_random_template,
)


class FakeTransport(MailTransport):
    def __init__(self, fail_with=None):
        self.sent = []
        self.fail_with = fail_with

    def send(self, message):
        if self.fail_with:
            raise self.fail_with
        self.sent.append(message)
        return f"msg_{len(self.sent)}"


@pytest.fixture
def pending_send(db_session):
    contact = create_random_contact(db_session, email="ada@example.com", first_name="Ada")
    lead = create_random_lead(db_session, contact=contact)
    campaign = create_random_campaign(
        db_session,
        create_random_segment(db_session),
        create_random_template(db_session),
        status="sending",
        reply_to="sales@example.com",
    )
    return create_campaign_send(db_session, campaign, lead)


def test_delivers_rendered_message(db_session, pending_send):
    transport = FakeTransport()

    outcome = deliver_campaign_send(db_session, pending_send.id, user_id="user_123", transport=transport)

    assert outcome == DeliveryOutcome.SENT
    assert len(transport.sent) == 1
    message = transport.sent[0]
    assert message.to == "ada@example.com"
    assert message.subject == "Hello Ada"
    assert message.reply_to == "sales@example.com"
    assert f"/api/v1/t/open/{pending_send.tracking_token}" in message.html
    assert "https://example.com/offer" not in message.html
    assert message.list_unsubscribe_url.endswith(f"/api/v1/unsubscribe/{pending_send.contact.unsubscribe_token}")

    db_session.refresh(pending_send)
    assert pending_send.sent_at is not None
    assert pending_send.message_id == "msg_1"
    assert pending_send.failed_at is None

    link = db_session.query(TrackingLink).filter_by(campaign_send_id=pending_send.id).one()
    assert link.url == "https://example.com/offer"
    assert f"/api/v1/t/click/{link.id}" in message.html

    activity = db_session.query(Activity).filter_by(lead_id=pending_send.lead_id).one()
    assert activity.type == "email"
    assert activity.user_id == "user_123"
    assert activity.activity_metadata["campaign_send_id"] == pending_send.id


def test_redelivered_job_does_not_send_twice(db_session, pending_send):
    transport = FakeTransport()

    deliver_campaign_send(db_session, pending_send.id, transport=transport)
    outcome = deliver_campaign_send(db_session, pending_send.id, transport=transport)

    assert outcome == DeliveryOutcome.ALREADY_SENT
    assert len(transport.sent) == 1


def test_failed_send_is_not_retried(db_session, pending_send):
    transport = FakeTransport()
    mark_send_failed(db_session, pending_send.id, "boom")

    assert deliver_campaign_send(db_session, pending_send.id, transport=transport) == DeliveryOutcome.ALREADY_FAILED
    assert transport.sent == []


def test_unknown_send_is_dropped(db_session):
    assert deliver_campaign_send(db_session, "csnd_missing", transport=FakeTransport()) == DeliveryOutcome.NOT_FOUND


def test_deleted_lead_marks_send_failed_without_raising(db_session, pending_send):
    pending_send.lead.deleted_at = utcnow()
    db_session.commit()
    transport = FakeTransport()

    outcome = deliver_campaign_send(db_session, pending_send.id, transport=transport)

    assert outcome == DeliveryOutcome.SKIPPED
    assert transport.sent == []
    db_session.refresh(pending_send)
    assert pending_send.failed_at is not None
    assert pending_send.last_error == "Lead no longer exists"


def test_missing_template_marks_send_failed(db_session, pending_send):
    pending_send.campaign.template_id = None
    db_session.commit()

    outcome = deliver_campaign_send(db_session, pending_send.id, transport=FakeTransport())

    assert outcome == DeliveryOutcome.SKIPPED
    db_session.refresh(pending_send)
    assert pending_send.last_error == "Email template no longer exists"


def test_transport_error_propagates_and_leaves_send_pending(db_session, pending_send):
    transport = FakeTransport(fail_with=MailTransportError("provider down"))

    with pytest.raises(MailTransportError):
        deliver_campaign_send(db_session, pending_send.id, transport=transport)

    db_session.refresh(pending_send)
    assert pending_send.sent_at is None
    assert pending_send.failed_at is None


def test_mark_send_failed_never_overwrites_sent(db_session, pending_send):
    deliver_campaign_send(db_session, pending_send.id, transport=FakeTransport())

    assert mark_send_failed(db_session, pending_send.id, "late failure") is False
    db_session.refresh(pending_send)
    assert pending_send.failed_at is None
    assert pending_send.last_error is None


def test_variant_override_is_used(db_session, pending_send):
    campaign = pending_send.campaign
    campaign.ab_config = {"split_percent": 50, "variant_b": {"subject": "B for {{contactFirstName}}"}}
    pending_send.variant = "B"
    db_session.commit()
    transport = FakeTransport()

    deliver_campaign_send(db_session, pending_send.id, transport=transport)

    assert transport.sent[0].subject == "B for Ada"
