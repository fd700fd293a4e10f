from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from app.models.segment import Segment
from tests.utils.crm import create_random_campaign, create_random_lead, create_random_template


def test_segment_lifecycle(test_client: TestClient, db_session: Session):
    create_random_lead(db_session, source="webinar")
    create_random_lead(db_session, source="ads")

    # 1. CREATE
    response = test_client.post(
        "/api/v1/segments",
        json={
            "name": "Webinar leads",
            "filters": {"predicates": [{"kind": "source", "value": "webinar"}]},
        },
    )
    assert response.status_code == 201
    segment = response.json()
    assert segment["filters"]["predicates"][0]["kind"] == "source"
    segment_id = segment["id"]

    # 2. COUNT and PREVIEW
    response = test_client.get(f"/api/v1/segments/{segment_id}/recipients/count")
    assert response.status_code == 200
    assert response.json() == {"segment_id": segment_id, "count": 1}

    response = test_client.get(f"/api/v1/segments/{segment_id}/recipients/preview")
    assert response.status_code == 200
    assert len(response.json()) == 1

    # 3. UPDATE
    response = test_client.patch(f"/api/v1/segments/{segment_id}", json={"name": "Renamed"})
    assert response.status_code == 200
    assert response.json()["name"] == "Renamed"

    # 4. DELETE
    response = test_client.delete(f"/api/v1/segments/{segment_id}")
    assert response.status_code == 204
    assert test_client.get(f"/api/v1/segments/{segment_id}").status_code == 404


def test_unknown_predicate_kind_is_rejected(test_client: TestClient):
    response = test_client.post(
        "/api/v1/segments",
        json={"name": "Bad", "filters": {"predicates": [{"kind": "zodiac_sign", "value": "leo"}]}},
    )

    assert response.status_code == 422


def test_exclusion_cycle_is_rejected(test_client: TestClient):
    first = test_client.post("/api/v1/segments", json={"name": "First"}).json()
    second = test_client.post(
        "/api/v1/segments", json={"name": "Second", "exclude_segment_id": first["id"]}
    ).json()

    response = test_client.patch(
        f"/api/v1/segments/{first['id']}", json={"exclude_segment_id": second["id"]}
    )

    assert response.status_code == 400
    assert "cycle" in response.json()["detail"]


def test_segment_used_by_campaign_cannot_be_deleted(test_client: TestClient, db_session: Session):
    segment = test_client.post("/api/v1/segments", json={"name": "In use"}).json()
    create_random_campaign(
        db_session, db_session.get(Segment, segment["id"]), create_random_template(db_session)
    )

    response = test_client.delete(f"/api/v1/segments/{segment['id']}")

    assert response.status_code == 400


def test_count_for_unknown_segment(test_client: TestClient):
    assert test_client.get("/api/v1/segments/seg_missing/recipients/count").status_code == 404
