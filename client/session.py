"""The session context shared by the request client, the refresher and
the scheduler.
"""
from pathlib import Path

import logfire

from .errors import SESSION_EXPIRED_MESSAGE
from .events import AUTH_ERROR, AuthEvents
from .storage import FileStorage, MemoryStorage, SessionState, TokenStore


class AuthSession:
    """Token store, session flags and event bus for one signed in user.

    Pass one instance to every component instead of relying on module
    level state.
    """

    def __init__(
        self,
        tokens: TokenStore | None = None,
        state: SessionState | None = None,
        events: AuthEvents | None = None,
    ):
        self.tokens = tokens if tokens is not None else TokenStore(MemoryStorage())
        self.state = state if state is not None else SessionState()
        self.events = events if events is not None else AuthEvents()
        self._auth_error_sent = False

    @classmethod
    def persistent(cls, path: str | Path) -> "AuthSession":
        """Tokens in a JSON file at `path`, session flags in memory."""
        return cls(tokens=TokenStore(FileStorage(path)))

    def store_tokens(self, access_token: str, refresh_token: str) -> None:
        self.tokens.set_tokens(access_token, refresh_token)
        self._auth_error_sent = False

    def signal_auth_error(self, message: str = SESSION_EXPIRED_MESSAGE) -> bool:
        """Clear tokens and publish `AUTH_ERROR` once per lost session.

        Returns:
            bool: True if the event was published by this call.
        """
        self.tokens.clear_tokens()
        if self._auth_error_sent:
            return False
        self._auth_error_sent = True
        logfire.warning("Session is no longer accepted by the server; signing out")
        self.events.publish(AUTH_ERROR, {"message": message})
        return True
