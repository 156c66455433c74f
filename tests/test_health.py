def test_health_check(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_openapi_served_under_api_prefix(client):
    response = client.get("/api/openapi.json")
    assert response.status_code == 200
    assert "/api/forms" in response.json()["paths"]


def test_api_forms_mounted(client):
    """Forms router is mounted and guarded by the session check."""
    response = client.get("/api/forms")
    assert response.status_code == 401


def test_api_responses_mounted(client):
    response = client.post("/api/responses/import", json=[])
    assert response.status_code == 401
