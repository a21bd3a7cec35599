from __future__ import annotations

import pytest

from beanie import init_beanie
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from client.config import ClientSettings
from client.session import AuthSession
from tests._helpers.fake_api import FakeApi


@pytest.fixture(autouse=True)
def _test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ACCESS_TOKEN_SECRET_KEY", "test-access-secret")
    monkeypatch.setenv("REFRESH_TOKEN_SECRET_KEY", "test-refresh-secret")
    monkeypatch.setenv("ACCESS_TOKEN_EXPIRE_MINUTES", "10080")
    monkeypatch.setenv("REFRESH_TOKEN_EXPIRE_DAYS", "30")
    # Minimum bcrypt cost keeps the suite fast
    monkeypatch.setenv("PASSWORD_HASH_ROUNDS", "4")
    monkeypatch.setenv("RATE_LIMIT_REQUESTS_PER_MINUTE", "100000")
    monkeypatch.setenv("RATE_LIMIT_BUCKET_CAPACITY", "100000")
    monkeypatch.setenv("RATE_LIMIT_CREDENTIAL_REQUESTS_PER_MINUTE", "100000")
    monkeypatch.delenv("LOGFIRE_WRITE_TOKEN", raising=False)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def client() -> TestClient:
    from main import create_app

    app = create_app(mongo_client=AsyncMongoMockClient())
    with TestClient(app) as c:
        yield c


@pytest.fixture
async def asgi_app():
    """The API on an in-memory database, for driving with `httpx.ASGITransport`."""
    from main import create_app
    from models.users import User

    mongo = AsyncMongoMockClient()
    await init_beanie(database=mongo["mercury_test"], document_models=[User])
    return create_app(mongo_client=mongo)


@pytest.fixture
def fake_api() -> FakeApi:
    return FakeApi()


@pytest.fixture
def settings() -> ClientSettings:
    return ClientSettings(base_url="http://testserver/api")


@pytest.fixture
def session(fake_api: FakeApi) -> AuthSession:
    session = AuthSession()
    session.store_tokens(fake_api.access_token, fake_api.refresh_token)
    return session
