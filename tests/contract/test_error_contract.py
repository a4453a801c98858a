from tests.helpers import actor_headers


async def test_error_contract_unauthorized(app_client):
    r = await app_client.get("/api/v1/blood-requests/mine")  # no actor headers
    assert r.status_code == 401
    data = r.json()
    assert {"code", "message"} <= set(data.keys()) <= {"code", "message", "details", "correlation_id"}
    assert data["code"] == "unauthorized"


async def test_error_contract_malformed_actor(app_client):
    r = await app_client.get(
        "/api/v1/blood-requests/mine",
        headers={"X-Actor-Type": "donor", "X-Actor-Id": "1", "X-Request-ID": "req-123"},
    )
    assert r.status_code == 401
    assert r.json()["correlation_id"] == "req-123"
    assert r.headers["X-Request-ID"] == "req-123"


async def test_error_contract_not_found(app_client, seed):
    user = await seed.user()
    r = await app_client.get("/api/v1/blood-requests/424242", headers=actor_headers(user))
    assert r.status_code == 404
    assert r.json()["code"] == "not_found"
    assert "424242" in r.json()["message"]
