from __future__ import annotations

from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from middleware.rate_limiting import TokenBucket


def test_token_bucket_drains_and_refuses():
    bucket = TokenBucket(capacity=2, refill_rate=0.001)

    assert bucket.consume()
    assert bucket.consume()
    assert not bucket.consume()


def test_credential_endpoints_have_their_own_budget(monkeypatch):
    monkeypatch.setenv("RATE_LIMIT_CREDENTIAL_REQUESTS_PER_MINUTE", "2")
    from main import create_app

    with TestClient(create_app(mongo_client=AsyncMongoMockClient())) as client:
        statuses = [client.post("/api/auth/login", json={}).status_code for _ in range(3)]
        assert statuses == [400, 400, 429]

        throttled = client.post("/api/auth/login", json={})
        assert throttled.json()["success"] is False
        assert "Retry-After" in throttled.headers

        # Other endpoints still draw from the general bucket
        assert client.get("/api/users/me").status_code == 401
