def test_health_check(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_api_v1_forms(client, auth_headers):
    response = client.get("/api/v1/forms/", headers=auth_headers)
    assert response.status_code == 200


def test_api_v1_auth(client):
    """Auth router is mounted — login with an unknown account is rejected."""
    response = client.post(
        "/api/v1/auth/login",
        json={"email": "nobody@example.com", "password": "whatever"},
    )
    assert response.status_code == 401
