"""HTTP client for the Mercury API.

Attaches the stored access token to every request and, on a 401, renews
the token pair once and resends. Network failures never touch the stored
tokens.
"""
from dataclasses import dataclass

import httpx
import logfire

from .config import ClientSettings
from .errors import (
    NETWORK_ERROR_MESSAGE,
    SESSION_EXPIRED_MESSAGE,
    SOFT_AUTH_MESSAGE,
    AuthenticationError,
    SoftAuthenticationError,
    TransientError,
)
from .refresh import RefreshOutcome, TokenRefresher
from .session import AuthSession

STATUS_LOG_MESSAGES = {
    403: "Permission denied",
    429: "Rate limited. Too many requests.",
    503: "Service unavailable. The server might be down or overloaded.",
}


@dataclass
class PendingRequest:
    """A request on its way out, and whether it was already resent after a refresh."""

    request: httpx.Request
    attempted: bool = False


class MercuryClient:
    def __init__(
        self,
        session: AuthSession,
        settings: ClientSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        refresher: TokenRefresher | None = None,
    ):
        self.session = session
        self.settings = settings or ClientSettings.from_env()
        self._http = httpx.AsyncClient(
            base_url=self.settings.base_url,
            timeout=self.settings.request_timeout,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )
        self.refresher = refresher or TokenRefresher(session, self.settings, transport=transport)

    async def __aenter__(self) -> "MercuryClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()
        await self.refresher.aclose()

    def is_soft_request(self, request: httpx.Request) -> bool:
        """Low stakes requests whose auth failures must not sign the user out."""
        path = request.url.path
        return any(marker in path for marker in self.settings.soft_path_markers)

    def _is_retryable(self, request: httpx.Request) -> bool:
        path = request.url.path
        return not any(path.endswith(suffix) for suffix in self.settings.unretried_paths)

    def _authorize(self, request: httpx.Request) -> None:
        # Read the store on every send; a refresh may have replaced the token
        access_token = self.session.tokens.get_access_token()
        if access_token:
            request.headers["Authorization"] = f"Bearer {access_token}"
        elif "Authorization" in request.headers:
            del request.headers["Authorization"]

    async def request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Send a request to `path` (relative to `base_url`).

        Raises:
            TransientError: The server could not be reached, or a needed
                token refresh failed for a non authentication reason.
            SoftAuthenticationError: A soft request could not be
                authenticated; the session is left in place.
            AuthenticationError: The session is no longer valid.

        Returns:
            httpx.Response: Any other response, including error statuses.
        """
        pending = PendingRequest(self._http.build_request(method, path, **kwargs))
        return await self._send(pending)

    async def get(self, path: str, **kwargs) -> httpx.Response:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs) -> httpx.Response:
        return await self.request("POST", path, **kwargs)

    async def put(self, path: str, **kwargs) -> httpx.Response:
        return await self.request("PUT", path, **kwargs)

    async def delete(self, path: str, **kwargs) -> httpx.Response:
        return await self.request("DELETE", path, **kwargs)

    async def _send(self, pending: PendingRequest) -> httpx.Response:
        request = pending.request
        self._authorize(request)
        try:
            response = await self._http.send(request)
        except httpx.TransportError as e:
            logfire.warning(f"Network error on {request.method} {request.url.path}: {type(e).__name__}")
            raise TransientError(NETWORK_ERROR_MESSAGE) from e

        if response.status_code == 401 and self._is_retryable(request):
            return await self._handle_unauthorized(pending, response)

        if response.is_error:
            reason = STATUS_LOG_MESSAGES.get(response.status_code, "Request failed")
            logfire.warning(f"{reason}: {request.method} {request.url.path} -> {response.status_code}")
        return response

    async def _handle_unauthorized(self, pending: PendingRequest, response: httpx.Response) -> httpx.Response:
        soft = self.is_soft_request(pending.request)

        if pending.attempted:
            # Fresh credentials were rejected as well
            logfire.warning(f"Retried request to {pending.request.url.path} was rejected again")
            self._fail(soft, response, signal=True)

        if not self.session.tokens.get_refresh_token():
            # Never signed in; nothing to renew and no session to end
            self._fail(soft, response, signal=False)

        pending.attempted = True
        logfire.info(f"Attempting to refresh token due to 401 on {pending.request.url.path}")
        result = await self.refresher.refresh()

        if result.outcome is RefreshOutcome.SUCCESS:
            await response.aclose()
            return await self._send(pending)

        if result.outcome is RefreshOutcome.TRANSIENT_FAILURE:
            raise TransientError(result.error or NETWORK_ERROR_MESSAGE, response=response)

        self._fail(soft, response, signal=True)

    def _fail(self, soft: bool, response: httpx.Response, signal: bool) -> None:
        if soft:
            logfire.warning("Authentication error during a soft operation. Not logging out user.")
            raise SoftAuthenticationError(SOFT_AUTH_MESSAGE, response=response)
        if signal:
            self.session.signal_auth_error(SESSION_EXPIRED_MESSAGE)
        raise AuthenticationError(SESSION_EXPIRED_MESSAGE, response=response)
