from datetime import timedelta
from unittest.mock import patch

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from app.background_tasks import campaign_tasks
from app.models.campaign_send import CampaignSend
from app.utils.time import utcnow
from tests.utils.crm import (
    create_open_event,
    create_random_lead,
    create_random_segment,
    create_random_template,
)


def _create_campaign(test_client, db_session, **extra):
    segment = create_random_segment(db_session)
    template = create_random_template(db_session)
    response = test_client.post(
        "/api/v1/campaigns",
        json={"name": "Spring launch", "segment_id": segment.id, "template_id": template.id, **extra},
    )
    assert response.status_code == 201
    return response.json()


def test_campaign_send_lifecycle(test_client: TestClient, db_session: Session, enqueued_jobs):
    create_random_lead(db_session)
    create_random_lead(db_session)

    # 1. CREATE a draft
    campaign = _create_campaign(test_client, db_session)
    assert campaign["status"] == "draft"
    assert campaign["created_by_user_id"] == "user_123"
    campaign_id = campaign["id"]

    # 2. SEND now
    response = test_client.post(f"/api/v1/campaigns/{campaign_id}/send")
    assert response.status_code == 200
    assert response.json()["recipient_count"] == 2
    assert len(enqueued_jobs) == 2
    assert test_client.get(f"/api/v1/campaigns/{campaign_id}").json()["status"] == "sending"

    # 3. A second send is a state error
    response = test_client.post(f"/api/v1/campaigns/{campaign_id}/send")
    assert response.status_code == 400

    # 4. STATS while pending
    stats = test_client.get(f"/api/v1/campaigns/{campaign_id}/stats").json()
    assert (stats["total"], stats["sent"], stats["pending"]) == (2, 0, 2)

    # 5. Sending campaigns cannot be edited or deleted
    assert test_client.patch(f"/api/v1/campaigns/{campaign_id}", json={"name": "x"}).status_code == 400
    assert test_client.delete(f"/api/v1/campaigns/{campaign_id}").status_code == 400


def test_schedule_and_unschedule(test_client: TestClient, db_session: Session):
    campaign = _create_campaign(test_client, db_session)
    when = (utcnow() + timedelta(days=2)).isoformat()

    response = test_client.post(f"/api/v1/campaigns/{campaign['id']}/schedule", json={"scheduled_at": when})
    assert response.status_code == 200
    assert response.json()["status"] == "scheduled"

    response = test_client.patch(f"/api/v1/campaigns/{campaign['id']}", json={"scheduled_at": None})
    assert response.status_code == 200
    assert response.json()["status"] == "draft"


def test_past_schedule_is_rejected(test_client: TestClient, db_session: Session):
    campaign = _create_campaign(test_client, db_session)
    when = (utcnow() - timedelta(hours=1)).isoformat()

    response = test_client.post(f"/api/v1/campaigns/{campaign['id']}/schedule", json={"scheduled_at": when})

    assert response.status_code == 400


def test_send_with_empty_segment_is_rejected(test_client: TestClient, db_session: Session):
    campaign = _create_campaign(test_client, db_session)

    response = test_client.post(f"/api/v1/campaigns/{campaign['id']}/send")

    assert response.status_code == 400
    assert "No recipients" in response.json()["detail"]


def test_unknown_campaign_is_404(test_client: TestClient):
    assert test_client.get("/api/v1/campaigns/cmpn_missing").status_code == 404
    assert test_client.post("/api/v1/campaigns/cmpn_missing/send").status_code == 404


def test_clone(test_client: TestClient, db_session: Session):
    campaign = _create_campaign(test_client, db_session, ab_config={"split_percent": 40})

    response = test_client.post(f"/api/v1/campaigns/{campaign['id']}/clone")

    assert response.status_code == 201
    clone = response.json()
    assert clone["id"] != campaign["id"]
    assert clone["status"] == "draft"
    assert clone["ab_config"]["split_percent"] == 40


def test_ab_endpoints_and_reports(test_client: TestClient, db_session: Session):
    for _ in range(4):
        create_random_lead(db_session)
    campaign = _create_campaign(test_client, db_session, ab_config={"split_percent": 50})
    campaign_id = campaign["id"]
    test_client.post(f"/api/v1/campaigns/{campaign_id}/send")

    sends = db_session.query(CampaignSend).filter_by(campaign_id=campaign_id).all()
    for send in sends:
        send.sent_at = utcnow()
    db_session.commit()
    create_open_event(db_session, next(s for s in sends if s.variant == "B"))

    with patch.object(campaign_tasks, "SessionLocal", return_value=db_session), patch.object(db_session, "close"):
        assert campaign_tasks.finalize_sending_campaigns() == 1

    summary = test_client.get(f"/api/v1/campaigns/{campaign_id}/ab-summary").json()
    assert summary["has_ab"] is True
    assert summary["winner"] == "B"

    response = test_client.post(f"/api/v1/campaigns/{campaign_id}/apply-ab-winner")
    assert response.status_code == 200
    assert response.json() == {"winner": "B"}

    response = test_client.post(f"/api/v1/campaigns/{campaign_id}/send-remainder")
    assert response.status_code == 200
    assert response.json()["recipient_count"] == 2

    log = test_client.get(f"/api/v1/campaigns/{campaign_id}/send-log").json()
    assert len(log["sends"]) == 6

    response = test_client.get(f"/api/v1/campaigns/{campaign_id}/send-log", params={"format": "csv"})
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "attachment" in response.headers["content-disposition"]
    assert response.text.splitlines()[0] == "email,sent_at,variant,opened,clicked"

    assert test_client.get(f"/api/v1/campaigns/{campaign_id}/link-clicks").json() == []
    assert test_client.get(f"/api/v1/campaigns/{campaign_id}/failed-sends").json() == []


def test_list_campaigns_by_status(test_client: TestClient, db_session: Session):
    _create_campaign(test_client, db_session)
    _create_campaign(test_client, db_session, scheduled_at=(utcnow() + timedelta(days=1)).isoformat())

    response = test_client.get("/api/v1/campaigns", params={"status": "scheduled"})

    assert response.status_code == 200
    assert [c["status"] for c in response.json()] == ["scheduled"]


def test_campaign_endpoints_require_auth(anonymous_client: TestClient):
    assert anonymous_client.get("/api/v1/campaigns").status_code == 401
