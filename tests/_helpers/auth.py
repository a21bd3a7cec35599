from __future__ import annotations

from fastapi.testclient import TestClient


def register_user(client: TestClient, **overrides) -> dict:
    payload = {
        "name": "Test User",
        "email": "test@example.com",
        "username": "testuser",
        "password": "password123",
    }
    payload.update(overrides)
    r = client.post("/api/auth/register", json=payload)
    assert r.status_code == 201, r.text
    return r.json()["data"]


def auth_header(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
