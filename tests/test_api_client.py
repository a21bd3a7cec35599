from __future__ import annotations

import asyncio

import httpx
import pytest

from client.api import MercuryClient
from client.errors import (
    SESSION_EXPIRED_MESSAGE,
    SOFT_AUTH_MESSAGE,
    AuthenticationError,
    SoftAuthenticationError,
    TransientError,
)
from client.events import AUTH_ERROR
from client.session import AuthSession

pytestmark = pytest.mark.anyio


@pytest.fixture
async def api(session, settings, fake_api):
    async with MercuryClient(session, settings, transport=httpx.MockTransport(fake_api.handler)) as api:
        yield api


@pytest.fixture
def auth_errors(session):
    received = []
    session.events.subscribe(AUTH_ERROR, received.append)
    return received


async def test_attaches_stored_access_token(api, fake_api):
    response = await api.get("/posts")

    assert response.status_code == 200
    assert fake_api.calls == [("GET", "/api/posts", "Bearer access-1")]


async def test_anonymous_request_has_no_authorization_header(settings, fake_api):
    async with MercuryClient(AuthSession(), settings, transport=httpx.MockTransport(fake_api.handler)) as api:
        await api.post("/auth/login", json={"email": "a@x.com", "password": "bad"})

    assert fake_api.calls[0][2] is None


async def test_stale_token_is_refreshed_and_request_resent(api, session, fake_api, auth_errors):
    fake_api.access_token = "access-rotated-elsewhere"
    fake_api.refresh_token = "refresh-1"

    response = await api.get("/posts")

    assert response.status_code == 200
    assert [call[2] for call in fake_api.calls_to("/posts")] == ["Bearer access-1", "Bearer access-2"]
    assert fake_api.refresh_calls == 1
    assert session.tokens.get_access_token() == "access-2"
    assert auth_errors == []


async def test_request_is_retried_at_most_once(api, session, fake_api, auth_errors):
    fake_api.reject_all = True

    with pytest.raises(AuthenticationError) as excinfo:
        await api.get("/posts")

    assert excinfo.value.message == SESSION_EXPIRED_MESSAGE
    assert len(fake_api.calls_to("/posts")) == 2
    assert fake_api.refresh_calls == 1
    assert session.tokens.get_access_token() is None
    assert auth_errors == [{"message": SESSION_EXPIRED_MESSAGE}]


async def test_rejected_refresh_signs_out_once(api, session, fake_api, auth_errors):
    fake_api.access_token = "expired-elsewhere"
    fake_api.refresh_status = 401

    with pytest.raises(AuthenticationError):
        await api.get("/posts")

    assert session.tokens.get_refresh_token() is None
    assert len(auth_errors) == 1

    # Later failures while signed out stay quiet
    with pytest.raises(AuthenticationError):
        await api.get("/posts")
    assert len(auth_errors) == 1


async def test_transient_refresh_failure_keeps_session(api, session, fake_api, auth_errors):
    fake_api.access_token = "expired-elsewhere"
    fake_api.refresh_status = 503

    with pytest.raises(TransientError):
        await api.get("/posts")

    assert session.tokens.get_access_token() == "access-1"
    assert session.tokens.get_refresh_token() == "refresh-1"
    assert auth_errors == []


async def test_network_error_keeps_session(api, session, fake_api, auth_errors):
    fake_api.request_error = httpx.ConnectError("offline")

    with pytest.raises(TransientError):
        await api.get("/posts")

    assert session.tokens.get_access_token() == "access-1"
    assert fake_api.refresh_calls == 0
    assert auth_errors == []


async def test_soft_request_never_signs_out(api, session, fake_api, auth_errors):
    fake_api.reject_all = True

    with pytest.raises(SoftAuthenticationError) as excinfo:
        await api.post("/posts/p1/bookmark")

    assert excinfo.value.message == SOFT_AUTH_MESSAGE
    assert auth_errors == []


async def test_credential_endpoints_are_not_retried(api, fake_api):
    response = await api.post("/auth/login", json={"email": "a@x.com", "password": "bad"})

    assert response.status_code == 401
    assert fake_api.refresh_calls == 0


async def test_unauthorized_without_refresh_token(settings, fake_api):
    session = AuthSession()
    received = []
    session.events.subscribe(AUTH_ERROR, received.append)

    async with MercuryClient(session, settings, transport=httpx.MockTransport(fake_api.handler)) as api:
        with pytest.raises(AuthenticationError):
            await api.get("/posts")

    assert fake_api.refresh_calls == 0
    assert received == []


@pytest.mark.parametrize("status_code", [403, 404, 429, 500, 503])
async def test_other_error_statuses_are_returned(api, session, fake_api, status_code):
    response = await api.get(f"/status/{status_code}")

    assert response.status_code == status_code
    assert fake_api.refresh_calls == 0
    assert session.tokens.get_access_token() == "access-1"


async def test_concurrent_unauthorized_requests_share_one_refresh(session, settings, fake_api, auth_errors):
    fake_api.access_token = "expired-elsewhere"
    fake_api.refresh_token = "refresh-1"

    async def slow_handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(0.02)
        return fake_api.handler(request)

    async with MercuryClient(session, settings, transport=httpx.MockTransport(slow_handler)) as api:
        responses = await asyncio.gather(*(api.get(f"/posts/{i}") for i in range(4)))

    assert [response.status_code for response in responses] == [200] * 4
    assert fake_api.refresh_calls == 1
    assert session.tokens.get_access_token() == "access-2"
    assert auth_errors == []


async def test_soft_request_after_rejected_refresh(api, session, fake_api, auth_errors):
    fake_api.access_token = "expired-elsewhere"
    fake_api.refresh_status = 401

    with pytest.raises(SoftAuthenticationError):
        await api.post("/posts/p1/bookmark")

    assert fake_api.refresh_calls == 1
    assert session.tokens.get_refresh_token() is None
    assert auth_errors == []
