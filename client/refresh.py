"""Exchange the stored refresh token for a new token pair.

The result distinguishes three outcomes so callers never confuse "the
server is unreachable" with "the server rejected us": only the latter
drops the stored tokens.
"""
import asyncio

from dataclasses import dataclass
from enum import Enum

import httpx
import logfire

from .config import ClientSettings
from .errors import NETWORK_ERROR_MESSAGE
from .events import TOKENS_REFRESHED
from .session import AuthSession

REFRESH_PATH = "/auth/refresh"

# Statuses that mean the refresh token itself was refused
AUTH_FAILURE_STATUSES = frozenset({401, 403})


def _is_token(value) -> bool:
    return isinstance(value, str) and bool(value)


class RefreshOutcome(str, Enum):
    SUCCESS = "success"
    TRANSIENT_FAILURE = "transient_failure"
    AUTH_FAILURE = "auth_failure"


@dataclass(frozen=True)
class RefreshResult:
    outcome: RefreshOutcome
    access_token: str | None = None
    status_code: int | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is RefreshOutcome.SUCCESS


class TokenRefresher:
    """Calls the refresh endpoint on its own HTTP client, bypassing the
    request interceptor so a failing refresh can never recurse.

    Concurrent `refresh()` calls share one in-flight request.
    """

    def __init__(
        self,
        session: AuthSession,
        settings: ClientSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.session = session
        self.settings = settings or ClientSettings.from_env()
        self._http = httpx.AsyncClient(
            base_url=self.settings.base_url,
            timeout=self.settings.refresh_timeout,
            transport=transport,
        )
        self._inflight: asyncio.Future | None = None
        self.requests_sent = 0

    async def aclose(self) -> None:
        await self._http.aclose()

    async def refresh(self) -> RefreshResult:
        """Refresh the token pair, joining an attempt already in flight."""
        if self._inflight is None or self._inflight.done():
            self._inflight = asyncio.ensure_future(self._refresh())
        # A cancelled waiter must not cancel the attempt other callers share
        return await asyncio.shield(self._inflight)

    async def _refresh(self) -> RefreshResult:
        refresh_token = self.session.tokens.get_refresh_token()
        if not refresh_token:
            logfire.info("No refresh token available")
            return RefreshResult(RefreshOutcome.AUTH_FAILURE, error="No refresh token available")

        self.requests_sent += 1
        try:
            response = await self._http.post(REFRESH_PATH, json={"refreshToken": refresh_token})
        except httpx.TransportError as e:
            logfire.warning(f"Token refresh failed to reach the server: {type(e).__name__}")
            return RefreshResult(RefreshOutcome.TRANSIENT_FAILURE, error=NETWORK_ERROR_MESSAGE)

        if response.status_code in AUTH_FAILURE_STATUSES:
            return self._handle_rejection(refresh_token, response.status_code)

        if response.status_code != 200:
            logfire.warning(f"Token refresh failed with status {response.status_code}; keeping tokens")
            return RefreshResult(
                RefreshOutcome.TRANSIENT_FAILURE,
                status_code=response.status_code,
                error=f"Token refresh failed with status {response.status_code}",
            )

        try:
            body = response.json()
            access_token = body["accessToken"]
            new_refresh_token = body["refreshToken"]
        except (ValueError, KeyError, TypeError):
            access_token = new_refresh_token = None

        if not _is_token(access_token) or not _is_token(new_refresh_token):
            logfire.error("Invalid refresh token response")
            return RefreshResult(
                RefreshOutcome.TRANSIENT_FAILURE, status_code=200, error="Invalid refresh token response"
            )

        self.session.store_tokens(access_token, new_refresh_token)
        self.session.state.record_refresh()
        self.session.events.publish(TOKENS_REFRESHED, None)
        logfire.info("Token refresh successful")
        return RefreshResult(RefreshOutcome.SUCCESS, access_token=access_token, status_code=200)

    def _handle_rejection(self, sent_token: str, status_code: int) -> RefreshResult:
        current_token = self.session.tokens.get_refresh_token()
        if current_token and current_token != sent_token:
            # Someone else rotated the pair while we waited; theirs is valid
            logfire.info("Refresh token was rotated concurrently; using the stored pair")
            return RefreshResult(
                RefreshOutcome.SUCCESS,
                access_token=self.session.tokens.get_access_token(),
                status_code=status_code,
            )

        logfire.warning(f"Refresh token rejected with status {status_code}; clearing tokens")
        self.session.tokens.clear_tokens()
        return RefreshResult(
            RefreshOutcome.AUTH_FAILURE,
            status_code=status_code,
            error="Refresh token rejected",
        )
