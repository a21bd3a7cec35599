from __future__ import annotations

import json

from client.events import AUTH_ERROR, AuthEvents
from client.session import AuthSession
from client.storage import (
    AuthCheckStatus,
    FileStorage,
    MemoryStorage,
    SessionState,
    TokenStore,
)


def test_token_store_round_trip():
    store = TokenStore(MemoryStorage())
    assert store.get_access_token() is None
    assert store.get_refresh_token() is None

    store.set_tokens("access", "refresh")

    assert store.get_access_token() == "access"
    assert store.get_refresh_token() == "refresh"


def test_clear_tokens_drops_cached_user():
    store = TokenStore(MemoryStorage())
    store.set_tokens("access", "refresh")
    store.set_cached_user({"_id": "u1"})

    assert store.clear_tokens() is True
    assert store.get_access_token() is None
    assert store.get_refresh_token() is None
    assert store.get_cached_user() is None
    assert store.clear_tokens() is False


def test_corrupt_cached_user_is_discarded():
    storage = MemoryStorage()
    storage.set_item("cached_user_data", "{not json")

    assert TokenStore(storage).get_cached_user() is None
    assert storage.get_item("cached_user_data") is None


def test_file_storage_survives_restart(tmp_path):
    path = tmp_path / "session.json"
    TokenStore(FileStorage(path)).set_tokens("access", "refresh")

    reopened = TokenStore(FileStorage(path))

    assert reopened.get_access_token() == "access"
    assert json.loads(path.read_text())["refresh_token"] == "refresh"


def test_file_storage_ignores_unreadable_file(tmp_path):
    path = tmp_path / "session.json"
    path.write_text("{broken")

    storage = FileStorage(path)
    assert storage.get_item("access_token") is None

    storage.set_item("access_token", "fresh")
    assert json.loads(path.read_text()) == {"access_token": "fresh"}


def test_session_state_tracks_refresh_and_status():
    state = SessionState()
    assert state.get_last_refresh_time() is None
    assert state.get_auth_check_status() is None

    state.record_refresh(now=1000.5)
    state.set_auth_check_status(AuthCheckStatus.SUCCESS)

    assert state.get_last_refresh_time() == 1000.5
    assert state.get_auth_check_status() is AuthCheckStatus.SUCCESS


def test_persistent_session_keeps_flags_in_memory(tmp_path):
    path = tmp_path / "session.json"
    session = AuthSession.persistent(path)
    session.store_tokens("access", "refresh")
    session.state.record_refresh(now=1.0)

    assert AuthSession.persistent(path).tokens.get_access_token() == "access"
    assert AuthSession.persistent(path).state.get_last_refresh_time() is None


def test_events_deliver_and_unsubscribe():
    events = AuthEvents()
    received = []
    unsubscribe = events.subscribe(AUTH_ERROR, received.append)

    assert events.publish(AUTH_ERROR, {"message": "bye"}) == 1
    unsubscribe()
    assert events.publish(AUTH_ERROR, {"message": "again"}) == 0
    assert received == [{"message": "bye"}]


def test_failing_listener_does_not_block_others():
    events = AuthEvents()
    received = []

    def broken(payload):
        raise RuntimeError("listener bug")

    events.subscribe(AUTH_ERROR, broken)
    events.subscribe(AUTH_ERROR, received.append)

    assert events.publish(AUTH_ERROR, "payload") == 1
    assert received == ["payload"]


def test_auth_error_is_signalled_once_per_session():
    session = AuthSession()
    received = []
    session.events.subscribe(AUTH_ERROR, received.append)
    session.store_tokens("access", "refresh")

    assert session.signal_auth_error() is True
    assert session.signal_auth_error() is False
    assert session.tokens.get_access_token() is None
    assert len(received) == 1

    # A new sign in re-arms the signal
    session.store_tokens("access-2", "refresh-2")
    assert session.signal_auth_error() is True
    assert len(received) == 2


def test_file_storage_drops_non_string_values(tmp_path):
    path = tmp_path / "session.json"
    path.write_text(json.dumps({"access_token": None, "refresh_token": "refresh"}))

    store = TokenStore(FileStorage(path))

    assert store.get_access_token() is None
    assert store.get_refresh_token() == "refresh"
