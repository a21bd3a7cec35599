"""Errors raised by the Mercury client.

`TransientError` and `AuthenticationError` are separate: only
the latter ever results in stored credentials being dropped.
"""
import httpx

NETWORK_ERROR_MESSAGE = "Network error. Please check your connection and try again."
SESSION_EXPIRED_MESSAGE = "Authentication failed. Please sign in again."
SOFT_AUTH_MESSAGE = "Please log in again to bookmark posts"


class MercuryClientError(Exception):
    def __init__(self, message: str, response: httpx.Response | None = None):
        super().__init__(message)
        self.message = message
        self.response = response

    @property
    def status_code(self) -> int | None:
        return self.response.status_code if self.response is not None else None


class TransientError(MercuryClientError):
    """The server could not be reached or failed on its side. Retry later."""


class AuthenticationError(MercuryClientError):
    """The server rejected our credentials and they could not be renewed."""


class SoftAuthenticationError(AuthenticationError):
    """Authentication failed on a low stakes request; the session is left alone."""


class APIResponseError(MercuryClientError):
    """The server answered with a client error for this request."""


def raise_for_api_error(response: httpx.Response) -> None:
    """Raise the matching client error for a non 2xx response."""
    if response.is_success:
        return

    message = f"Request failed with status {response.status_code}"
    try:
        body = response.json()
        if isinstance(body, dict) and body.get("message"):
            message = body["message"]
    except ValueError:
        pass

    if response.status_code >= 500:
        raise TransientError(message, response=response)
    raise APIResponseError(message, response=response)
