"""Sign in, sign out and restore a session on startup."""
from typing import Any, Optional

import logfire

from .api import MercuryClient
from .errors import AuthenticationError, MercuryClientError, TransientError, raise_for_api_error
from .events import AUTH_ERROR, LOGGED_OUT
from .scheduler import RefreshScheduler
from .storage import AuthCheckStatus

# Statuses from the profile check that mean the stored tokens are useless
INVALID_SESSION_STATUSES = frozenset({400, 401, 403})


class AuthManager:
    """Keeps track of the signed in user.

    Drops the user when the session publishes `AUTH_ERROR`.
    """

    def __init__(self, client: MercuryClient, scheduler: RefreshScheduler | None = None):
        self.client = client
        self.session = client.session
        self.scheduler = scheduler
        self.current_user: Optional[dict] = None
        self._unsubscribe = self.session.events.subscribe(AUTH_ERROR, self._on_auth_error)

    def close(self) -> None:
        self._unsubscribe()

    def _on_auth_error(self, payload: Any) -> None:
        self.current_user = None
        self.session.state.set_auth_check_status(AuthCheckStatus.FAILED)

    def _start_session(self, data: dict) -> dict:
        tokens = data["tokens"]
        user = data["user"]
        self.session.store_tokens(tokens["accessToken"], tokens["refreshToken"])
        self.session.state.record_refresh()
        self.session.tokens.set_cached_user(user)
        self.session.state.set_auth_check_status(AuthCheckStatus.SUCCESS)
        self.current_user = user
        if self.scheduler is not None:
            self.scheduler.start()
        return user

    async def register(self, name: str, email: str, username: str, password: str) -> dict:
        """Create an account and sign in as it.

        Raises:
            APIResponseError: Missing fields or the account already exists.
            TransientError: The server could not be reached.
        """
        response = await self.client.post(
            "/auth/register",
            json={"name": name, "email": email, "username": username, "password": password},
        )
        raise_for_api_error(response)
        logfire.info(f"Registration successful for {email}")
        return self._start_session(response.json()["data"])

    async def login(self, email: str, password: str) -> dict:
        """Sign in with email and password.

        Raises:
            APIResponseError: Unknown email (404) or wrong password (401).
            TransientError: The server could not be reached.
        """
        response = await self.client.post("/auth/login", json={"email": email, "password": password})
        raise_for_api_error(response)
        logfire.info(f"Login successful for {email}")
        return self._start_session(response.json()["data"])

    async def logout(self) -> None:
        """Revoke the session on the server if possible; always forget it locally."""
        try:
            if self.session.tokens.get_access_token():
                response = await self.client.post("/auth/logout")
                if response.is_error:
                    logfire.warning(f"Logout request failed with status {response.status_code}")
        except MercuryClientError as e:
            logfire.warning(f"Logout request failed: {e.message}")
        finally:
            if self.scheduler is not None:
                await self.scheduler.stop()
            self.current_user = None
            self.session.tokens.clear_tokens()
            self.session.state.set_auth_check_status(AuthCheckStatus.FAILED)
            self.session.events.publish(LOGGED_OUT, None)

    async def check_auth_status(self) -> Optional[dict]:
        """Restore the signed in user on startup.

        The cached profile is made available immediately, then confirmed
        against `/users/me`. Tokens are only dropped when the server
        rejects them, never on a network or server failure.

        Returns:
            Optional[dict]: The current user, or None when signed out.
        """
        self.session.state.set_auth_check_status(AuthCheckStatus.PENDING)

        if not self.session.tokens.get_access_token():
            self.current_user = None
            self.session.state.set_auth_check_status(AuthCheckStatus.FAILED)
            return None

        cached = self.session.tokens.get_cached_user()
        if cached is not None:
            self.current_user = cached

        try:
            response = await self.client.get("/users/me")
        except TransientError as e:
            logfire.warning(f"Could not confirm session, keeping tokens: {e.message}")
            return self.current_user
        except AuthenticationError:
            self.session.tokens.clear_tokens()
            self.current_user = None
            self.session.state.set_auth_check_status(AuthCheckStatus.FAILED)
            return None

        if response.status_code in INVALID_SESSION_STATUSES:
            logfire.info(f"Stored session rejected with status {response.status_code}; clearing tokens")
            self.session.tokens.clear_tokens()
            self.current_user = None
            self.session.state.set_auth_check_status(AuthCheckStatus.FAILED)
            return None

        if response.is_error:
            logfire.warning(f"Session check failed with status {response.status_code}; keeping tokens")
            return self.current_user

        user = response.json()
        self.current_user = user
        self.session.tokens.set_cached_user(user)
        self.session.state.set_auth_check_status(AuthCheckStatus.SUCCESS)

        if self.scheduler is not None:
            self.scheduler.start()
        return user
