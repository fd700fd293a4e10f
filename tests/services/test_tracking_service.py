from datetime import timedelta
from unittest.mock import patch

from app.core.config import settings
from app.crud.crud_tracking import tracking_link as tracking_link_crud
from app.models.contact import Contact
from app.models.tracking import EmailTrackingEvent
from app.services.campaigns.tracking_service import (
    OpenOutcome,
    is_token_expired,
    record_click,
    record_open,
    unsubscribe,
)
from app.utils.time import utcnow
from tests.utils.crm import (
    create_campaign_send,
    create_random_campaign,
    create_random_lead,
    create_random_segment,
    create_random_template,
)


def _sent_send(db_session, sent_at=None):
    lead = create_random_lead(db_session)
    campaign = create_random_campaign(
        db_session, create_random_segment(db_session), create_random_template(db_session), status="sent"
    )
    return create_campaign_send(db_session, campaign, lead, sent_at=sent_at or utcnow())


def test_first_open_is_recorded_once(db_session):
    send = _sent_send(db_session)

    assert record_open(db_session, token=send.tracking_token, ip_address="1.2.3.4") == OpenOutcome.RECORDED
    assert record_open(db_session, token=send.tracking_token) == OpenOutcome.DUPLICATE

    events = db_session.query(EmailTrackingEvent).filter_by(campaign_send_id=send.id).all()
    assert len(events) == 1
    assert events[0].type == "open"
    assert events[0].ip_address == "1.2.3.4"
    assert events[0].contact_id == send.contact_id


def test_unknown_token(db_session):
    assert record_open(db_session, token="nope") == OpenOutcome.NOT_FOUND


def test_every_click_is_recorded(db_session):
    send = _sent_send(db_session)
    link = tracking_link_crud.get_or_create(db_session, campaign_send_id=send.id, url="https://example.com/x")
    db_session.commit()

    assert record_click(db_session, link_id=link.id) == "https://example.com/x"
    assert record_click(db_session, link_id=link.id) == "https://example.com/x"

    clicks = db_session.query(EmailTrackingEvent).filter_by(type="click").all()
    assert len(clicks) == 2
    assert all(c.tracking_link_id == link.id for c in clicks)


def test_unknown_link(db_session):
    assert record_click(db_session, link_id="tlnk_missing") is None


def test_expired_token_still_redirects_but_records_nothing(db_session):
    sent_at = utcnow() - timedelta(days=40)
    send = _sent_send(db_session, sent_at=sent_at)
    link = tracking_link_crud.get_or_create(db_session, campaign_send_id=send.id, url="https://example.com/x")
    db_session.commit()

    assert is_token_expired(send, expiry_days=30)
    assert not is_token_expired(send, expiry_days=None)
    assert not is_token_expired(send, expiry_days=60)

    with patch.object(settings, "TRACKING_TOKEN_EXPIRY_DAYS", 30):
        assert record_open(db_session, token=send.tracking_token) == OpenOutcome.EXPIRED
        assert record_click(db_session, link_id=link.id) == "https://example.com/x"

    assert db_session.query(EmailTrackingEvent).count() == 0


def test_unsubscribe_is_idempotent(db_session):
    lead = create_random_lead(db_session)
    contact = db_session.get(Contact, lead.primary_contact_id)
    token = contact.unsubscribe_token

    assert unsubscribe(db_session, token=token)
    db_session.refresh(contact)
    first = contact.unsubscribed_at
    assert first is not None

    assert unsubscribe(db_session, token=token)
    db_session.refresh(contact)
    assert contact.unsubscribed_at == first

    assert not unsubscribe(db_session, token="unknown")
