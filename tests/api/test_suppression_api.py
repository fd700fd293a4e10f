from fastapi.testclient import TestClient


def test_suppression_lifecycle(test_client: TestClient):
    response = test_client.post("/api/v1/suppression", json={"type": "email", "value": "  Stop@Example.COM "})
    assert response.status_code == 201
    entry = response.json()
    assert entry["value"] == "stop@example.com"

    # Adding the same value again returns the existing entry
    again = test_client.post("/api/v1/suppression", json={"type": "email", "value": "stop@example.com"})
    assert again.status_code == 201
    assert again.json()["id"] == entry["id"]

    test_client.post("/api/v1/suppression", json={"type": "domain", "value": "blocked.com"})
    listed = test_client.get("/api/v1/suppression", params={"type": "domain"}).json()
    assert [e["value"] for e in listed] == ["blocked.com"]

    assert test_client.delete(f"/api/v1/suppression/{entry['id']}").status_code == 204
    assert test_client.delete(f"/api/v1/suppression/{entry['id']}").status_code == 404


def test_invalid_values_are_rejected(test_client: TestClient):
    assert test_client.post("/api/v1/suppression", json={"type": "email", "value": "no-at-sign"}).status_code == 422
    assert test_client.post("/api/v1/suppression", json={"type": "domain", "value": "a@b.com"}).status_code == 422
    assert test_client.post("/api/v1/suppression", json={"type": "phone", "value": "123"}).status_code == 422


def test_health(test_client: TestClient):
    response = test_client.get("/api/v1/health")

    assert response.status_code == 200
    assert response.json()["scheduler"]["status"] == "not_initialized"
