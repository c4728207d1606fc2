# tests/test_app.py


def test_health_includes_request_id(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.headers["X-Request-ID"]


def test_request_id_is_propagated(client):
    response = client.get("/api/v1/health", headers={"X-Request-ID": "abc123"})

    assert response.headers["X-Request-ID"] == "abc123"
    assert set(response.json()["modules"]) == {"transfers", "inventory"}


def test_domain_errors_use_error_response_shape(client, seed, auth_headers):
    response = client.get("/api/v1/transfers/no-existe", headers=auth_headers(seed.gm))

    assert response.status_code == 404
    body = response.json()
    assert body["success"] is False
    assert body["errorCode"] == "NOT_FOUND"
    assert "timestamp" in body
    assert body["message"]


def test_invalid_if_match_is_400(client, seed, auth_headers):
    response = client.put(
        "/api/v1/transfers/cualquiera/approve",
        json={"approvedQuantity": 1},
        headers=auth_headers(seed.gm, {"If-Match": "abc"})
    )

    assert response.status_code == 400
    assert response.json()["errorCode"] == "VALIDATION_ERROR"
