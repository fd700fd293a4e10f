"""
Tests for the Celery delivery task: retry scheduling on transient errors and
the permanent failure marker on the last attempt.
"""

import pytest
from unittest.mock import MagicMock, patch

from celery.exceptions import Retry

from app.core.config import settings
from app.services.campaigns.delivery import DeliveryOutcome
from app.services.campaigns.mail_transport import MailTransportError
from app.tasks.delivery_tasks import MAX_RETRIES, deliver_campaign_send_task, retry_countdown


@pytest.fixture
def task_session():
    session = MagicMock()
    with patch("app.tasks.delivery_tasks.SessionLocal", return_value=session):
        yield session


def _run(retries, *args):
    deliver_campaign_send_task.push_request(retries=retries)
    try:
        return deliver_campaign_send_task.run(*args)
    finally:
        deliver_campaign_send_task.pop_request()


def test_retry_countdown_is_exponential():
    with patch.object(settings, "CAMPAIGN_SEND_BACKOFF_SECONDS", 2):
        assert [retry_countdown(n) for n in range(3)] == [2, 4, 8]


def test_successful_delivery_returns_outcome(task_session):
    with patch(
        "app.tasks.delivery_tasks.deliver_campaign_send", return_value=DeliveryOutcome.SENT
    ) as deliver:
        assert _run(0, "csnd_1", "user_123") == "sent"

    deliver.assert_called_once_with(task_session, "csnd_1", user_id="user_123")
    task_session.close.assert_called_once()


def test_transient_error_is_retried(task_session):
    error = MailTransportError("provider down")
    with patch("app.tasks.delivery_tasks.deliver_campaign_send", side_effect=error), patch(
        "app.tasks.delivery_tasks.mark_send_failed"
    ) as mark_failed, patch.object(
        deliver_campaign_send_task, "retry", side_effect=Retry()
    ) as retry:
        with pytest.raises(Retry):
            _run(0, "csnd_1", None)

    retry.assert_called_once_with(exc=error, countdown=retry_countdown(0))
    mark_failed.assert_not_called()
    task_session.rollback.assert_called_once()
    task_session.close.assert_called_once()


def test_last_attempt_marks_send_failed(task_session):
    error = MailTransportError("provider down")
    with patch("app.tasks.delivery_tasks.deliver_campaign_send", side_effect=error), patch(
        "app.tasks.delivery_tasks.mark_send_failed"
    ) as mark_failed, patch.object(deliver_campaign_send_task, "retry") as retry:
        with pytest.raises(MailTransportError):
            _run(MAX_RETRIES, "csnd_1", None)

    retry.assert_not_called()
    mark_failed.assert_called_once_with(task_session, "csnd_1", "provider down")
    task_session.close.assert_called_once()
